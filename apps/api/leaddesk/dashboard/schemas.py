from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel


class DashboardSummary(BaseModel):
    users_count: int
    departments_count: int
    leads_count: int


class LeadsByStatusItem(BaseModel):
    status_id: UUID | None
    status_name: str
    count: int


class RecentLeadItem(BaseModel):
    id: UUID
    name: str
    last_name: str
    status_name: str
    department_name: str
    created_at: datetime


class DepartmentSummaryItem(BaseModel):
    department_id: UUID
    department_name: str
    leads_count: int


class TopAssigneeItem(BaseModel):
    assignee_id: UUID
    assignee_name: str
    leads_count: int


class AttentionCounts(BaseModel):
    leads_without_status: int
    leads_unassigned: int


class WeekEventItem(BaseModel):
    type: Literal["reminder", "task"]
    id: UUID
    lead_id: UUID
    lead_name: str | None
    title: str
    date: str
    date_time: datetime
