from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class LoginIn(BaseModel):
    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def _lower(cls, v: str) -> str:
        return v.lower()


class SignupIn(LoginIn):
    password: str = Field(min_length=8)
    name: Optional[str] = Field(default=None, max_length=255)


class RefreshIn(BaseModel):
    refresh_token: str


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class UserOut(BaseModel):
    """The signed-in user; ``is_org_admin`` drives which settings screens a client shows."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: EmailStr
    name: Optional[str] = None
    role: str
    organization_id: Optional[int] = None
    organization_name: Optional[str] = None
    is_org_admin: bool = False
    is_active: bool

    @field_validator("role", mode="before")
    @classmethod
    def _role_value(cls, v):
        return getattr(v, "value", v)
