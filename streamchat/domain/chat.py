from datetime import datetime, timezone
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_CHAT_TITLE = "New Chat"
TITLE_WORD_COUNT = 4
TITLE_ELLIPSIS = "..."


class Turn(BaseModel):
    """One message of a conversation."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Chat(BaseModel):
    """A persisted conversation.

    Fields added after the first release must have defaults, since records
    written by older versions are read back as they are.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str = DEFAULT_CHAT_TITLE
    messages: List[Turn] = []
    created_at: datetime = Field(default_factory=_now, alias="createdAt")

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        # Records written without an offset are UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


def derive_title(messages: List[Turn]) -> str:
    """Title a chat after the first few words of its first user turn.

    The ellipsis marker is added only when the words kept are shorter than the
    original content.
    """
    first_user_turn = next((m for m in messages if m.role == "user"), None)
    if first_user_turn is None:
        return DEFAULT_CHAT_TITLE

    content = first_user_turn.content
    title = " ".join(content.split()[:TITLE_WORD_COUNT])
    if not title:
        return DEFAULT_CHAT_TITLE
    if len(content) > len(title):
        title += TITLE_ELLIPSIS
    return title
