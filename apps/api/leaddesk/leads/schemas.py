from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

LEAD_SORT_FIELDS = ("name", "phone", "email", "created_at", "status_id")


class LeadSourceMeta(BaseModel):
    ip: str | None = None
    user_agent: str | None = None
    referrer: str | None = None
    screen: str | None = None
    language: str | None = None
    platform: str | None = None
    timezone: str | None = None
    device_memory: str | None = None
    hardware_concurrency: str | None = None
    extra: dict[str, Any] | None = None


class LeadCreate(BaseModel):
    name: str = Field(min_length=1)
    last_name: str | None = None
    phone: str | None = None
    phone2: str | None = None
    email: str | None = None
    email2: str | None = None
    comment: str | None = None
    department_id: UUID
    status_id: UUID | None = None
    source: str | None = None
    site_id: UUID | None = None
    source_meta: LeadSourceMeta | None = None
    assigned_to: list[UUID] | None = None


class LeadUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    last_name: str | None = None
    phone: str | None = None
    phone2: str | None = None
    email: str | None = None
    email2: str | None = None
    comment: str | None = None
    status_id: UUID | Literal[""] | None = None
    assigned_to: list[UUID] | None = None


class LeadFromSite(BaseModel):
    token: str = Field(min_length=1)
    name: str = Field(min_length=1)
    phone: str | None = None
    email: str | None = None
    additional_info: str | None = None
    source_meta: LeadSourceMeta | None = None


class LeadRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    last_name: str
    phone: str
    phone2: str
    email: str
    email2: str
    comment: str
    department_id: UUID
    status_id: UUID | None
    assigned_to: list[UUID]
    source: str
    site_id: UUID | None
    source_meta: dict[str, Any] | None
    created_by: UUID | None
    created_at: datetime
    updated_at: datetime


class LeadListItem(LeadRead):
    status_name: str | None = None
    department_name: str | None = None


class LeadPage(BaseModel):
    items: list[LeadListItem]
    total: int
    skip: int
    limit: int


class BulkCreateItem(BaseModel):
    # Blank items are dropped by the service, not rejected.
    name: str = ""
    phone: str = ""


class BulkCreateRequest(BaseModel):
    department_id: UUID
    items: list[BulkCreateItem] = Field(min_length=1)


class BulkCreateResult(BaseModel):
    added: int
    duplicates: int


class BulkUpdateRequest(BaseModel):
    lead_ids: list[UUID] = Field(min_length=1)
    status_id: UUID | Literal[""] | None = None
    assigned_to: list[UUID] | None = None


class BulkUpdateResult(BaseModel):
    updated: int


class BulkDeleteRequest(BaseModel):
    lead_ids: list[UUID] = Field(min_length=1)


class BulkDeleteResult(BaseModel):
    deleted: int


class LeadHistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    lead_id: UUID
    action: str
    user_id: UUID | None
    user_display_name: str | None = None
    meta: dict[str, Any] | None
    created_at: datetime


class NoteCreate(BaseModel):
    content: str


class NoteUpdate(BaseModel):
    content: str


class NoteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    lead_id: UUID
    author_id: UUID
    content: str
    created_at: datetime
    updated_at: datetime


class LeadTaskCreate(BaseModel):
    title: str
    due_at: datetime | None = None


class LeadTaskUpdate(BaseModel):
    title: str | None = None
    due_at: datetime | None = None
    completed: bool | None = None


class LeadTaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    lead_id: UUID
    title: str
    due_at: datetime | None
    completed: bool
    created_by: UUID
    created_at: datetime
    updated_at: datetime


class ReminderCreate(BaseModel):
    title: str
    remind_at: datetime


class ReminderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    lead_id: UUID
    title: str
    remind_at: datetime
    done: bool
    created_by: UUID
    created_at: datetime
    updated_at: datetime


class UpcomingReminderRead(ReminderRead):
    lead_name: str


class StatusCount(BaseModel):
    status_id: UUID | None
    status_name: str
    count: int


class StatsStatus(BaseModel):
    id: UUID
    name: str
    order: int


class StatsRow(BaseModel):
    assignee_id: UUID
    assignee_name: str
    is_manager: bool
    by_status: list[StatusCount]
    total: int


class LeadStatsFilters(BaseModel):
    date_from: str | None = None
    date_to: str | None = None
    status_id: UUID | None = None


class LeadStats(BaseModel):
    department_id: UUID
    department_name: str
    statuses: list[StatsStatus]
    rows: list[StatsRow]
    filters: LeadStatsFilters


class DayCount(BaseModel):
    date: str
    count: int


class UserLeadStats(BaseModel):
    total: int
    by_status: list[StatusCount]
    over_time: list[DayCount]
