from typing import List, Protocol

from streamchat.domain.chat import Chat, Turn


class ChatStore(Protocol):
    """Protocol for durable chat storage.

    Every operation is atomic for a single chat record. Operations addressing
    a chat id that does not exist raise ChatNotFoundError; failures to read or
    write the underlying storage raise PersistenceFailure.
    """

    def create(self, title: str, messages: List[Turn]) -> Chat:
        """Create a chat and assign it an id."""
        ...

    def get_chat(self, chat_id: str) -> Chat:
        """Get a chat by its ID."""
        ...

    def replace_messages(self, chat_id: str, messages: List[Turn]) -> Chat:
        """Replace the whole transcript of a chat."""
        ...

    def replace_title(self, chat_id: str, title: str) -> Chat:
        """Replace the title of a chat."""
        ...

    def delete(self, chat_id: str) -> None:
        """Delete a chat."""
        ...

    def list_all(self) -> List[Chat]:
        """Get all chats, newest first."""
        ...
