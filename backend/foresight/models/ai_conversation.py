from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import relationship

from foresight.db.base import Base
from foresight.db.types import TranscriptJSON
from foresight.models.enums import AIConversationStatus, enum_column_type


class AIConversation(Base):
    __tablename__ = "ai_conversations"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(60), nullable=False)
    transcript = Column(TranscriptJSON, nullable=False)
    token_count = Column(Integer, nullable=False, default=0)
    status = Column(
        enum_column_type(AIConversationStatus, "ai_conversation_status"),
        nullable=False,
        default=AIConversationStatus.IN_PROGRESS,
    )
    forecast_id = Column(Integer, ForeignKey("forecasts.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    organization = relationship("Organization")
    user = relationship("User")
    forecast = relationship("Forecast")

    __table_args__ = (
        Index("ix_ai_conversations_user_created", "user_id", "created_at"),
    )

    @property
    def messages(self):
        return list(self.transcript.messages)
