from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

GROUP_NAME_MIN = 2
GROUP_NAME_MAX = 100
GROUP_DESCRIPTION_MAX = 600


def _clean_description(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


class CreateGroupIn(BaseModel):
    name: str = Field(min_length=GROUP_NAME_MIN, max_length=GROUP_NAME_MAX)
    description: Optional[str] = Field(default=None, max_length=GROUP_DESCRIPTION_MAX)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < GROUP_NAME_MIN:
            raise ValueError(f"Group name must be at least {GROUP_NAME_MIN} characters long")
        return v

    @field_validator("description")
    @classmethod
    def _strip_description(cls, v: Optional[str]) -> Optional[str]:
        return _clean_description(v)


class UpdateGroupIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=GROUP_NAME_MIN, max_length=GROUP_NAME_MAX)
    description: Optional[str] = Field(default=None, max_length=GROUP_DESCRIPTION_MAX)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if len(v) < GROUP_NAME_MIN:
            raise ValueError(f"Group name must be at least {GROUP_NAME_MIN} characters long")
        return v

    @field_validator("description")
    @classmethod
    def _strip_description(cls, v: Optional[str]) -> Optional[str]:
        return _clean_description(v)


class AddGroupMemberIn(BaseModel):
    user_id: int


class MemberOut(BaseModel):
    user_id: int
    name: Optional[str] = None
    email: str
    joined_at: datetime


class GroupOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    organization_id: int
    created_at: datetime


class GroupSummaryOut(GroupOut):
    member_count: int = 0
    prediction_count: int = 0


class GroupDetailOut(GroupSummaryOut):
    members: List[MemberOut] = Field(default_factory=list)
