from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncContextManager, AsyncIterator, List, Protocol

import httpx

from streamchat.api.endpoints import CHAT_ID_HEADER
from streamchat.domain.chat import Chat, Turn
from streamchat.domain.exceptions import ChatError, ChatNotFoundError, ChatValidationError


@dataclass
class ReplyStream:
    """A reply being received from the server.

    Attributes:
        chat_id: The id of the chat the reply belongs to, if the server sent one.
        fragments: The reply text, in the order it arrives.
    """

    chat_id: str | None
    fragments: AsyncIterator[str]


class ChatApi(Protocol):
    """Protocol for the chat server as seen from a client."""

    async def list_chats(self) -> List[Chat]:
        """Get all chats, newest first."""
        ...

    async def get_chat(self, chat_id: str) -> Chat:
        """Get a chat by its ID."""
        ...

    def start_chat(self, messages: List[Turn]) -> AsyncContextManager[ReplyStream]:
        """Start a new chat and receive the reply to its first turns."""
        ...

    def continue_chat(self, chat_id: str, message: str) -> AsyncContextManager[ReplyStream]:
        """Send a message to an existing chat and receive the reply."""
        ...

    async def rename_chat(self, chat_id: str, title: str) -> Chat:
        """Replace the title of a chat."""
        ...

    async def delete_chat(self, chat_id: str) -> None:
        """Delete a chat."""
        ...


def _error_detail(response: httpx.Response) -> str:
    try:
        detail = response.json().get("detail")
    except ValueError:
        detail = None
    return str(detail or response.text or response.reason_phrase)


def _raise_for_status(response: httpx.Response, chat_id: str | None = None) -> None:
    if not response.is_error:
        return
    if response.status_code == 404 and chat_id is not None:
        raise ChatNotFoundError(chat_id)
    if response.status_code in (400, 422):
        raise ChatValidationError(_error_detail(response))
    raise ChatError(f"Server responded with {response.status_code}: {_error_detail(response)}")


class HttpChatApi(ChatApi):
    """Chat server client speaking the HTTP interface of streamchat.api."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    async def list_chats(self) -> List[Chat]:
        response = await self.client.get("/api/stream/chat")
        _raise_for_status(response)
        return [Chat.model_validate(chat) for chat in response.json()]

    async def get_chat(self, chat_id: str) -> Chat:
        response = await self.client.get(f"/api/stream/chat/{chat_id}")
        _raise_for_status(response, chat_id)
        return Chat.model_validate(response.json())

    @asynccontextmanager
    async def start_chat(self, messages: List[Turn]) -> AsyncIterator[ReplyStream]:
        payload = {"messages": [m.model_dump() for m in messages]}
        async with self.client.stream("POST", "/api/stream/chat", json=payload) as response:
            if response.is_error:
                await response.aread()
                _raise_for_status(response)
            yield ReplyStream(
                chat_id=response.headers.get(CHAT_ID_HEADER),
                fragments=response.aiter_text(),
            )

    @asynccontextmanager
    async def continue_chat(self, chat_id: str, message: str) -> AsyncIterator[ReplyStream]:
        async with self.client.stream(
            "POST", f"/api/stream/chat/{chat_id}", json={"message": message}
        ) as response:
            if response.is_error:
                await response.aread()
                _raise_for_status(response, chat_id)
            yield ReplyStream(chat_id=chat_id, fragments=response.aiter_text())

    async def rename_chat(self, chat_id: str, title: str) -> Chat:
        response = await self.client.put(f"/api/stream/chat/{chat_id}/title", json={"title": title})
        _raise_for_status(response, chat_id)
        return Chat.model_validate(response.json())

    async def delete_chat(self, chat_id: str) -> None:
        response = await self.client.delete(f"/api/stream/chat/{chat_id}")
        _raise_for_status(response, chat_id)
