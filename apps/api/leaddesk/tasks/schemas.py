from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class TaskStatusCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    color: str | None = None
    is_completed: bool = False
    department_id: UUID


class TaskStatusUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    color: str | None = None
    is_completed: bool | None = None


class TaskStatusRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    color: str
    order: int
    is_completed: bool
    department_id: UUID
    created_at: datetime
    updated_at: datetime


class TaskPriorityCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    color: str | None = None
    department_id: UUID


class TaskPriorityUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    color: str | None = None


class TaskPriorityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    color: str
    order: int
    department_id: UUID
    created_at: datetime
    updated_at: datetime


class BoardTaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: str | None = None
    department_id: UUID
    status_id: UUID | None = None
    priority_id: UUID | None = None
    assignee_id: UUID | None = None
    due_at: datetime | None = None


class BoardTaskUpdate(BaseModel):
    """Partial update; an empty string clears the column, priority, assignee or due date."""

    title: str | None = Field(default=None, min_length=1, max_length=500)
    description: str | None = None
    status_id: UUID | Literal[""] | None = None
    priority_id: UUID | Literal[""] | None = None
    assignee_id: UUID | Literal[""] | None = None
    due_at: datetime | Literal[""] | None = None


class BoardTaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str
    department_id: UUID
    status_id: UUID | None
    status_name: str | None = None
    status_color: str | None = None
    priority_id: UUID | None
    priority_name: str | None = None
    priority_color: str | None = None
    assignee_id: UUID | None
    assignee_name: str | None = None
    due_at: datetime | None
    order: int
    created_by: UUID
    created_at: datetime
    updated_at: datetime


class ReorderTasksRequest(BaseModel):
    status_id: UUID | Literal[""] | None = None
    task_ids: list[UUID] = Field(min_length=1)
