from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, Field

from leaddesk.core.policy import Role


class LoginRequest(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str


class AccessToken(BaseModel):
    access_token: str


class MeRead(BaseModel):
    user_id: UUID
    email: str
    role: Role
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    department_id: UUID | None = None
