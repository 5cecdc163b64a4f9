from typing import List

from pydantic import BaseModel, Field, StrictStr, field_validator

from streamchat.domain.chat import Turn


class StartChatRequest(BaseModel):
    messages: List[Turn] = Field(..., min_length=1)


class ContinueChatRequest(BaseModel):
    message: StrictStr


class RenameChatRequest(BaseModel):
    title: StrictStr

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, title: str) -> str:
        if not title.strip():
            raise ValueError("Title is required")
        return title
