from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from leaddesk.users.schemas import UserRead


class DepartmentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    manager_id: UUID | None = None


class DepartmentUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    # An empty string clears the manager.
    manager_id: UUID | Literal[""] | None = None


class DepartmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    manager_id: UUID | None
    created_at: datetime
    updated_at: datetime


class DepartmentDetail(DepartmentRead):
    manager: UserRead | None = None
    employees: list[UserRead] = Field(default_factory=list)
    employees_count: int = 0
    statuses_count: int = 0
    sites_count: int = 0
