import json
import os
import tempfile
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

from loguru import logger
from pydantic import ValidationError

from streamchat.chat_stores.base import ChatStore
from streamchat.domain.chat import Chat, Turn
from streamchat.domain.exceptions import ChatNotFoundError, PersistenceFailure


class LocalChatStore(ChatStore):
    """Local chat store that keeps every chat in a single JSON file.

    Records are held as the raw JSON documents they were read as, and are
    validated into Chat models whenever they are read back.
    """

    def __init__(self, filepath: str | Path | None = None) -> None:
        """Initialize LocalChatStore.

        Args:
            filepath: Path to the chat store file. If provided and exists, will auto-load.
                     If provided and doesn't exist, it is created on the first write.
                     If not provided, the store lives in memory only.
        """
        self._filepath = Path(filepath) if filepath else None

        if self._filepath and self._filepath.exists():
            try:
                with open(self._filepath, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise PersistenceFailure(f"Could not load chats from {self._filepath}: {e}") from e
            chats = data.get("chats", {}) if isinstance(data, dict) else None
            if not isinstance(chats, dict):
                raise PersistenceFailure(f"{self._filepath} does not hold a chats object")
            self._records: Dict[str, dict] = dict(chats)
            logger.info(f"Loaded {len(self._records)} chats from {self._filepath}")
        else:
            self._records = {}
        self._lock = threading.Lock()

    @classmethod
    def from_chats(cls, chats: List[Chat]) -> "LocalChatStore":
        """Create an in-memory LocalChatStore holding the given chats (useful for testing)."""
        instance = cls(filepath=None)
        instance._records = {chat.id: chat.to_record() for chat in chats}
        return instance

    def create(self, title: str, messages: List[Turn]) -> Chat:
        chat = Chat(
            id=uuid.uuid4().hex,
            title=title,
            messages=messages,
            created_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._commit({**self._records, chat.id: chat.to_record()})
        logger.debug(f"Created chat {chat.id}")
        return chat

    def get_chat(self, chat_id: str) -> Chat:
        records = self._records
        if chat_id not in records:
            raise ChatNotFoundError(chat_id)
        return self._validate(chat_id, records[chat_id])

    def replace_messages(self, chat_id: str, messages: List[Turn]) -> Chat:
        with self._lock:
            chat = self.get_chat(chat_id).model_copy(update={"messages": list(messages)})
            self._commit({**self._records, chat_id: chat.to_record()})
        return chat

    def replace_title(self, chat_id: str, title: str) -> Chat:
        with self._lock:
            chat = self.get_chat(chat_id).model_copy(update={"title": title})
            self._commit({**self._records, chat_id: chat.to_record()})
        return chat

    def delete(self, chat_id: str) -> None:
        with self._lock:
            if chat_id not in self._records:
                raise ChatNotFoundError(chat_id)
            self._commit({k: v for k, v in self._records.items() if k != chat_id})

    def list_all(self) -> List[Chat]:
        chats = []
        for chat_id, record in self._records.items():
            try:
                chats.append(self._validate(chat_id, record))
            except PersistenceFailure as e:
                logger.warning(f"Skipping malformed chat record: {e}")
        return sorted(chats, key=lambda chat: chat.created_at, reverse=True)

    def _validate(self, chat_id: str, record: dict) -> Chat:
        if not isinstance(record, dict):
            raise PersistenceFailure(f"Chat {chat_id} is malformed: not an object")
        try:
            return Chat.model_validate({**record, "id": chat_id})
        except ValidationError as e:
            raise PersistenceFailure(f"Chat {chat_id} is malformed: {e}") from e

    def _commit(self, records: Dict[str, dict]) -> None:
        """Write records to disk, then make them the current state.

        The file is replaced in one step, and in-memory state is left untouched
        when the write fails. Callers hold the lock.
        """
        if self._filepath:
            self._write(self._filepath, records)
        self._records = records

    @staticmethod
    def _write(filepath: Path, records: Dict[str, dict]) -> None:
        try:
            filepath.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=filepath.parent, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump({"chats": records}, f)
                os.replace(tmp_path, filepath)
            except BaseException:
                os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PersistenceFailure(f"Could not save chats to {filepath}: {e}") from e
