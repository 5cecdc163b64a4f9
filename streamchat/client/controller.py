"""Client-side conversation state.

The controller keeps a local, possibly stale copy of the chats for display.
Sending a message updates that copy optimistically and walks through the
phases below; any failure restores the view from before the message was
submitted.

    IDLE -> SENDING -> STREAMING -> RECONCILING -> IDLE
    SENDING | STREAMING | RECONCILING -> FAILED -> IDLE
"""

import asyncio
from enum import Enum
from typing import Callable, Dict, List, Set

from loguru import logger
from pydantic import BaseModel

from streamchat.client.api import ChatApi
from streamchat.domain.chat import Chat, Turn, derive_title
from streamchat.domain.exceptions import ChatError


class Phase(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    RECONCILING = "reconciling"
    FAILED = "failed"


TRANSITIONS: Dict[Phase, Set[Phase]] = {
    Phase.IDLE: {Phase.SENDING},
    Phase.SENDING: {Phase.STREAMING, Phase.FAILED},
    Phase.STREAMING: {Phase.RECONCILING, Phase.FAILED},
    Phase.RECONCILING: {Phase.IDLE, Phase.FAILED},
    Phase.FAILED: {Phase.IDLE},
}


class InvalidTransitionError(RuntimeError):
    """Raised when an operation is not allowed in the current phase."""


class ConversationState(BaseModel):
    chats: List[Chat] = []
    active_chat_id: str | None = None
    active_messages: List[Turn] = []
    streaming_buffer: str = ""
    phase: Phase = Phase.IDLE
    draft: str = ""
    error: str | None = None


class _SendSnapshot(BaseModel):
    active_chat_id: str | None
    active_messages: List[Turn]
    draft: str


class ConversationController:
    def __init__(
        self,
        api: ChatApi,
        on_change: Callable[[ConversationState], None] | None = None,
    ) -> None:
        self.api = api
        self.state = ConversationState()
        self._on_change = on_change

    def visible_messages(self) -> List[Turn]:
        """The active messages as they should be displayed.

        While a reply streams, the placeholder turn shows what has been
        received so far.
        """
        messages = list(self.state.active_messages)
        if self.state.phase is Phase.STREAMING and messages:
            messages[-1] = Turn(role="assistant", content=self.state.streaming_buffer)
        return messages

    def set_draft(self, text: str) -> None:
        self.state.draft = text
        self._notify()

    async def send_message(self, text: str) -> bool:
        """Send a message in the active chat, starting a new chat if there is none.

        Returns:
            True if the reply was received in full, False if the message was
            blank or sending failed.
        """
        if not text.strip():
            return False
        self._require_idle("send a message")

        snapshot = _SendSnapshot(
            active_chat_id=self.state.active_chat_id,
            active_messages=list(self.state.active_messages),
            draft=self.state.draft,
        )
        chat_id = self.state.active_chat_id
        user_turn = Turn(role="user", content=text)

        self._transition(Phase.SENDING)
        self.state.active_messages = [*self.state.active_messages, user_turn]
        self.state.draft = ""
        self.state.error = None
        self._notify()

        try:
            if chat_id is None:
                reply_context = self.api.start_chat([user_turn])
            else:
                reply_context = self.api.continue_chat(chat_id, text)

            async with reply_context as reply:
                reply_chat_id = chat_id or reply.chat_id
                if reply_chat_id is None:
                    raise ChatError("Server did not return an id for the new chat")

                self.state.streaming_buffer = ""
                self.state.active_messages = [
                    *self.state.active_messages,
                    Turn(role="assistant", content=""),
                ]
                self._transition(Phase.STREAMING)

                async for fragment in reply.fragments:
                    self.state.streaming_buffer += fragment
                    self._notify()

            self._transition(Phase.RECONCILING)
            self._reconcile(reply_chat_id, is_new_chat=chat_id is None)
            self._transition(Phase.IDLE)
            return True
        except asyncio.CancelledError:
            self._fail(snapshot, "Sending was cancelled")
            raise
        except Exception as e:
            logger.error(f"Error sending message: {e}")
            self._fail(snapshot, str(e))
            return False

    async def load_chats(self) -> bool:
        try:
            chats = await self.api.list_chats()
        except Exception as e:
            logger.error(f"Error loading chats: {e}")
            self.state.error = str(e)
            self._notify()
            return False

        self.state.chats = chats
        self._notify()
        return True

    async def select_chat(self, chat_id: str) -> bool:
        """Make a chat active, using the server's copy of its transcript."""
        self._require_idle("select a chat")
        try:
            chat = await self.api.get_chat(chat_id)
        except Exception as e:
            logger.error(f"Error loading chat {chat_id}: {e}")
            self.state.error = str(e)
            self._notify()
            return False

        self.state.active_chat_id = chat.id
        self.state.active_messages = list(chat.messages)
        self.state.chats = [chat if c.id == chat.id else c for c in self.state.chats]
        self._notify()
        return True

    def new_chat(self) -> None:
        self._require_idle("start a new chat")
        self.state.active_chat_id = None
        self.state.active_messages = []
        self.state.streaming_buffer = ""
        self._notify()

    async def rename_chat(self, chat_id: str, title: str) -> bool:
        if not title.strip():
            return False
        try:
            chat = await self.api.rename_chat(chat_id, title)
        except Exception as e:
            logger.error(f"Error updating title of chat {chat_id}: {e}")
            return False

        self.state.chats = [
            c.model_copy(update={"title": chat.title}) if c.id == chat_id else c
            for c in self.state.chats
        ]
        self._notify()
        return True

    async def delete_chat(self, chat_id: str) -> bool:
        is_active = chat_id == self.state.active_chat_id
        if is_active and self.state.phase is not Phase.IDLE:
            logger.warning(f"Not deleting chat {chat_id} while a message is being sent to it")
            return False
        try:
            await self.api.delete_chat(chat_id)
        except Exception as e:
            logger.error(f"Error deleting chat {chat_id}: {e}")
            return False

        self.state.chats = [c for c in self.state.chats if c.id != chat_id]
        if is_active:
            self.state.active_chat_id = None
            self.state.active_messages = []
        self._notify()
        return True

    def _reconcile(self, chat_id: str, *, is_new_chat: bool) -> None:
        messages = [
            *self.state.active_messages[:-1],
            Turn(role="assistant", content=self.state.streaming_buffer),
        ]
        self.state.active_messages = messages
        self.state.streaming_buffer = ""

        if is_new_chat:
            self.state.active_chat_id = chat_id
            # Titled the same way the server titles new chats.
            summary = Chat(id=chat_id, title=derive_title(messages), messages=messages)
            self.state.chats = [summary, *self.state.chats]
        else:
            self.state.chats = [
                c.model_copy(update={"messages": messages}) if c.id == chat_id else c
                for c in self.state.chats
            ]
        self._notify()

    def _fail(self, snapshot: _SendSnapshot, error: str) -> None:
        self._transition(Phase.FAILED)
        self.state.active_chat_id = snapshot.active_chat_id
        self.state.active_messages = snapshot.active_messages
        self.state.draft = snapshot.draft
        self.state.streaming_buffer = ""
        self.state.error = error
        self._transition(Phase.IDLE)

    def _require_idle(self, action: str) -> None:
        if self.state.phase is not Phase.IDLE:
            raise InvalidTransitionError(f"Cannot {action} while {self.state.phase.value}")

    def _transition(self, phase: Phase) -> None:
        if phase not in TRANSITIONS[self.state.phase]:
            raise InvalidTransitionError(
                f"Cannot go from {self.state.phase.value} to {phase.value}"
            )
        logger.debug(f"Conversation {self.state.phase.value} -> {phase.value}")
        self.state.phase = phase
        self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.state)
