"""Errors raised across the chat relay.

Every error carries the HTTP status it maps to, so the API layer can convert
any of them into a structured response without knowing the concrete type.
"""


class ChatError(Exception):
    """Base class for chat errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ChatNotFoundError(ChatError):
    """The referenced chat does not exist."""

    status_code = 404

    def __init__(self, chat_id: str) -> None:
        self.chat_id = chat_id
        super().__init__(f"Chat {chat_id} not found")


class ChatValidationError(ChatError):
    """A required field is missing or malformed."""

    status_code = 400


class UpstreamFailure(ChatError):
    """The completion provider failed or disconnected."""


class PersistenceFailure(ChatError):
    """The chat store could not read or write a record."""
