from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from leaddesk.core.policy import Role


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    role: Role = Role.EMPLOYEE
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    department_id: UUID | None = None


class UserUpdate(BaseModel):
    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=6)
    role: Role | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    is_active: bool | None = None
    department_id: UUID | None = None


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    role: Role
    first_name: str
    last_name: str
    phone: str
    is_active: bool
    last_login_at: datetime | None
    department_id: UUID | None
    created_at: datetime
    updated_at: datetime


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    role: Role
    first_name: str
    last_name: str
