from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, Text, func
from sqlalchemy.orm import relationship

from foresight.config import get_settings
from foresight.db.base import Base


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)

    # AES-256-GCM "iv:authTag:ciphertext"; never the plaintext key
    encrypted_api_key = Column(Text, nullable=True)
    ai_token_limit = Column(
        Integer, nullable=False, default=lambda: get_settings().AI_TOKEN_LIMIT_DEFAULT
    )
    ai_tokens_used_this_month = Column(Integer, nullable=False, default=0)
    ai_tokens_reset_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    users = relationship("User", back_populates="organization")
    groups = relationship("Group", back_populates="organization", cascade="all, delete-orphan")
    categories = relationship("Category", back_populates="organization", cascade="all, delete-orphan")
