"""Relay replies from the completion provider to the caller and into the chat store.

A relayed reply is forwarded fragment by fragment while it is accumulated;
once the provider ends the stream, the transcript including the full reply
replaces the stored one. Store calls run in a worker thread so a slow write
does not hold up other streams. Continuations of the same chat are not
serialised, so the last one to finish wins.
"""

import asyncio
from typing import AsyncGenerator, AsyncIterator, List

from loguru import logger

from streamchat.chat_stores.base import ChatStore
from streamchat.domain.chat import Turn, derive_title
from streamchat.domain.exceptions import ChatError, ChatValidationError, UpstreamFailure
from streamchat.llms.base import CompletionProvider


class ChatStream:
    """The live reply to one chat request.

    Iterate over it to receive the fragments; it can only be consumed once.
    """

    def __init__(
        self,
        *,
        chat_id: str,
        messages: List[Turn],
        fragments: AsyncIterator[str],
        chat_store: ChatStore,
    ) -> None:
        self.chat_id = chat_id
        self.messages = messages
        self.persisted = False
        self._fragments = fragments
        self._chat_store = chat_store
        self._parts: List[str] = []
        self._first: str | None = None
        self._exhausted = False
        self._iterator: AsyncGenerator[str, None] | None = None
        self._closed = False

    @property
    def reply(self) -> str:
        """The reply accumulated so far."""
        return "".join(self._parts)

    async def open(self) -> None:
        """Wait for the first fragment.

        Providers failing before they produce anything fail here, before any
        fragment has been forwarded to the caller.
        """
        try:
            self._first = await self._fragments.__anext__()
        except StopAsyncIteration:
            self._exhausted = True
        except UpstreamFailure as e:
            logger.error(f"Completion stream for chat {self.chat_id} failed to open: {e}")
            raise
        except Exception as e:
            logger.error(f"Completion stream for chat {self.chat_id} failed to open: {e}")
            raise UpstreamFailure(str(e)) from e

    def __aiter__(self) -> AsyncGenerator[str, None]:
        if self._iterator is not None or self._closed:
            raise RuntimeError(f"Stream for chat {self.chat_id} was already consumed")
        self._iterator = self._iterate()
        return self._iterator

    async def aclose(self) -> None:
        """Stop relaying and close the provider stream.

        Safe to call more than once, and before iteration has started.
        """
        if self._closed:
            return
        self._closed = True
        if self._iterator is not None:
            await self._iterator.aclose()
        await self._close_fragments()

    async def _iterate(self) -> AsyncGenerator[str, None]:
        try:
            if self._first is not None:
                self._parts.append(self._first)
                yield self._first
            if not self._exhausted:
                async for fragment in self._fragments:
                    self._parts.append(fragment)
                    yield fragment
        except UpstreamFailure as e:
            logger.error(f"Completion stream for chat {self.chat_id} failed: {e}")
            raise
        except Exception as e:
            logger.error(f"Completion stream for chat {self.chat_id} failed: {e}")
            raise UpstreamFailure(str(e)) from e
        finally:
            await self._close_fragments()

        await self._persist()

    async def _persist(self) -> None:
        final_messages = [*self.messages, Turn(role="assistant", content=self.reply)]
        try:
            await asyncio.to_thread(self._chat_store.replace_messages, self.chat_id, final_messages)
        except ChatError as e:
            # The caller has already received the whole reply.
            logger.error(f"Could not persist reply for chat {self.chat_id}: {e}")
            return
        self.persisted = True
        logger.debug(f"Persisted {len(final_messages)} messages for chat {self.chat_id}")

    async def _close_fragments(self) -> None:
        aclose = getattr(self._fragments, "aclose", None)
        if aclose is not None:
            await aclose()


class StreamRelay:
    def __init__(
        self,
        *,
        chat_store: ChatStore,
        completion_provider: CompletionProvider,
        model: str,
        temperature: float,
    ) -> None:
        self.chat_store = chat_store
        self.completion_provider = completion_provider
        self.model = model
        self.temperature = temperature

    async def start_chat(self, messages: List[Turn]) -> ChatStream:
        """Create a chat from its first turns and open the reply stream.

        The chat is created before the provider is called, so its id is known
        when the first fragment is delivered. If the provider fails before
        producing anything, the new chat is removed again.
        """
        if not messages:
            raise ChatValidationError("At least one message is required")

        chat = await asyncio.to_thread(self.chat_store.create, derive_title(messages), messages)
        logger.info(f"Started chat {chat.id} titled '{chat.title}'")
        try:
            return await self._open(chat.id, list(messages))
        except UpstreamFailure:
            await self._discard(chat.id)
            raise

    async def continue_chat(self, chat_id: str, message: str) -> ChatStream:
        """Append a user turn to an existing chat and open the reply stream."""
        chat = await asyncio.to_thread(self.chat_store.get_chat, chat_id)
        updated_messages = [*chat.messages, Turn(role="user", content=message)]
        logger.info(f"Continuing chat {chat_id} with {len(updated_messages)} messages")
        return await self._open(chat_id, updated_messages)

    async def _open(self, chat_id: str, messages: List[Turn]) -> ChatStream:
        fragments = self.completion_provider.stream_completion(
            messages, model=self.model, temperature=self.temperature
        )
        stream = ChatStream(
            chat_id=chat_id,
            messages=messages,
            fragments=fragments,
            chat_store=self.chat_store,
        )
        await stream.open()
        return stream

    async def _discard(self, chat_id: str) -> None:
        try:
            await asyncio.to_thread(self.chat_store.delete, chat_id)
        except ChatError as e:
            logger.warning(f"Could not remove chat {chat_id} after a failed start: {e}")
