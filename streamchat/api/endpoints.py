import asyncio
from typing import AsyncGenerator, List

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse
from loguru import logger
from starlette.background import BackgroundTask

from streamchat.api.schemas import ContinueChatRequest, RenameChatRequest, StartChatRequest
from streamchat.chat_stores.base import ChatStore
from streamchat.domain.chat import Chat
from streamchat.domain.exceptions import ChatError
from streamchat.relay import ChatStream, StreamRelay

CHAT_ID_HEADER = "X-Chat-ID"


async def stream_response(stream: ChatStream) -> AsyncGenerator[str, None]:
    """Forward the raw reply fragments, unframed.

    A provider failing mid-stream aborts the response body, since the status
    line has already been sent. The provider stream is closed however the
    response ends.
    """
    try:
        async for fragment in stream:
            yield fragment
    finally:
        await stream.aclose()
    logger.debug(f"Relayed {len(stream.reply)} characters for chat {stream.chat_id}")


def _streaming_response(
    stream: ChatStream, headers: dict[str, str] | None = None
) -> StreamingResponse:
    return StreamingResponse(
        stream_response(stream),
        media_type="text/plain",
        headers={"Cache-Control": "no-cache", **(headers or {})},
        # Covers a body that was never iterated
        background=BackgroundTask(stream.aclose),
    )


def _http_error(error: Exception, action: str) -> HTTPException:
    if isinstance(error, ChatError):
        logger.error(f"Error {action}: {error.message}")
        return HTTPException(status_code=error.status_code, detail=error.message)
    logger.exception(f"Unexpected error {action}: {error}")
    return HTTPException(status_code=500, detail="Internal server error")


def _create_start_chat_endpoint(relay: StreamRelay):
    """Create the endpoint starting a new chat."""

    async def start_chat(body: StartChatRequest) -> StreamingResponse:
        try:
            stream = await relay.start_chat(body.messages)
        except Exception as e:
            raise _http_error(e, "starting chat") from e

        return _streaming_response(stream, headers={CHAT_ID_HEADER: stream.chat_id})

    return start_chat


def _create_continue_chat_endpoint(relay: StreamRelay):
    """Create the endpoint continuing an existing chat."""

    async def continue_chat(chat_id: str, body: ContinueChatRequest) -> StreamingResponse:
        try:
            stream = await relay.continue_chat(chat_id, body.message)
        except Exception as e:
            raise _http_error(e, f"continuing chat {chat_id}") from e

        return _streaming_response(stream)

    return continue_chat


def get_endpoints_router(*, relay: StreamRelay, chat_store: ChatStore) -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    async def health_check():
        return {"status": "healthy"}

    @router.get("/api/stream/chat", response_model=List[Chat])
    async def list_chats():
        try:
            return await asyncio.to_thread(chat_store.list_all)
        except Exception as e:
            raise _http_error(e, "listing chats") from e

    @router.get("/api/stream/chat/{chat_id}", response_model=Chat)
    async def get_chat(chat_id: str):
        try:
            return await asyncio.to_thread(chat_store.get_chat, chat_id)
        except Exception as e:
            raise _http_error(e, f"fetching chat {chat_id}") from e

    @router.put("/api/stream/chat/{chat_id}/title", response_model=Chat)
    async def rename_chat(chat_id: str, body: RenameChatRequest):
        try:
            chat = await asyncio.to_thread(chat_store.replace_title, chat_id, body.title)
        except Exception as e:
            raise _http_error(e, f"renaming chat {chat_id}") from e
        logger.info(f"Renamed chat {chat_id} to '{chat.title}'")
        return chat

    @router.delete("/api/stream/chat/{chat_id}")
    async def delete_chat(chat_id: str):
        try:
            await asyncio.to_thread(chat_store.delete, chat_id)
        except Exception as e:
            raise _http_error(e, f"deleting chat {chat_id}") from e
        logger.info(f"Deleted chat {chat_id}")
        return {"success": True}

    router.post("/api/stream/chat")(_create_start_chat_endpoint(relay))
    router.post("/api/stream/chat/{chat_id}")(_create_continue_chat_endpoint(relay))

    return router
