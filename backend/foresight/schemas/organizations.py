from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from foresight.config import get_settings


ORG_NAME_MIN = 2


class UpdateOrganizationIn(BaseModel):
    name: str = Field(min_length=ORG_NAME_MIN, max_length=100)
    description: Optional[str] = Field(default=None, max_length=600)

    @field_validator("name")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if len(v) < ORG_NAME_MIN:
            raise ValueError(f"Organization name must be at least {ORG_NAME_MIN} characters long")
        return v


class ApiKeyIn(BaseModel):
    api_key: str = Field(min_length=1)

    @field_validator("api_key")
    @classmethod
    def _openai_format(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith("sk-"):
            raise ValueError("Invalid OpenAI API key format")
        return v


class TokenLimitIn(BaseModel):
    token_limit: int

    @field_validator("token_limit")
    @classmethod
    def _bounds(cls, v: int) -> int:
        settings = get_settings()
        if v < settings.AI_TOKEN_LIMIT_MIN:
            raise ValueError(f"Token limit must be at least {settings.AI_TOKEN_LIMIT_MIN:,}")
        if v > settings.AI_TOKEN_LIMIT_MAX:
            raise ValueError(f"Token limit cannot exceed {settings.AI_TOKEN_LIMIT_MAX:,}")
        return v


class AIUsageOut(BaseModel):
    token_limit: int
    tokens_used: int
    tokens_remaining: int
    has_api_key: bool


class OrganizationOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    ai_usage: AIUsageOut
