from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

TRANSCRIPT_VERSION = 1

MessageRole = Literal["user", "assistant", "system"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)


class Transcript(BaseModel):
    """Versioned, ordered message log persisted on an AI conversation."""

    model_config = ConfigDict(frozen=True)

    version: Literal[1] = TRANSCRIPT_VERSION
    messages: List[ConversationMessage] = Field(default_factory=list)

    def append(self, *messages: ConversationMessage) -> "Transcript":
        return Transcript(version=self.version, messages=[*self.messages, *messages])

    def __len__(self) -> int:
        return len(self.messages)


class ConversationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    user_id: int
    title: str
    status: str
    token_count: int
    forecast_id: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    @field_validator("status", mode="before")
    @classmethod
    def _status_value(cls, v):
        return getattr(v, "value", v)


class ConversationDetailOut(ConversationOut):
    messages: List[ConversationMessage]
