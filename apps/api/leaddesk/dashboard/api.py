from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from leaddesk.core.auth import ActorUser, get_current_user
from leaddesk.core.database import get_db
from leaddesk.core.responses import Envelope, ok
from leaddesk.dashboard.schemas import (
    AttentionCounts,
    DashboardSummary,
    DepartmentSummaryItem,
    LeadsByStatusItem,
    RecentLeadItem,
    TopAssigneeItem,
    WeekEventItem,
)
from leaddesk.dashboard.service import dashboard_service
from leaddesk.leads.schemas import DayCount

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/summary", response_model=Envelope[DashboardSummary])
def summary(db: Session = Depends(get_db), user: ActorUser = Depends(get_current_user)) -> dict[str, Any]:
    return ok(dashboard_service.summary(db, user))


@router.get("/leads-by-status", response_model=Envelope[list[LeadsByStatusItem]])
def leads_by_status(db: Session = Depends(get_db), user: ActorUser = Depends(get_current_user)) -> dict[str, Any]:
    return ok(dashboard_service.leads_by_status(db, user))


@router.get("/leads-over-time", response_model=Envelope[list[DayCount]])
def leads_over_time(
    days: int = Query(default=14),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(dashboard_service.leads_over_time(db, user, min(90, max(7, days))))


@router.get("/recent-leads", response_model=Envelope[list[RecentLeadItem]])
def recent_leads(
    limit: int = Query(default=10),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(dashboard_service.recent_leads(db, user, min(20, max(1, limit))))


@router.get("/departments-summary", response_model=Envelope[list[DepartmentSummaryItem]])
def departments_summary(db: Session = Depends(get_db), user: ActorUser = Depends(get_current_user)) -> dict[str, Any]:
    return ok(dashboard_service.departments_summary(db, user))


@router.get("/top-assignees", response_model=Envelope[list[TopAssigneeItem]])
def top_assignees(
    limit: int = Query(default=5),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(dashboard_service.top_assignees(db, user, min(10, max(1, limit))))


@router.get("/attention-counts", response_model=Envelope[AttentionCounts])
def attention_counts(db: Session = Depends(get_db), user: ActorUser = Depends(get_current_user)) -> dict[str, Any]:
    return ok(dashboard_service.attention_counts(db, user))


@router.get("/week-events", response_model=Envelope[list[WeekEventItem]])
def week_events(db: Session = Depends(get_db), user: ActorUser = Depends(get_current_user)) -> dict[str, Any]:
    return ok(dashboard_service.week_events(db, user))
