from __future__ import annotations

import uuid
from collections import Counter
from datetime import datetime, time, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from leaddesk.core.auth import ActorUser
from leaddesk.core.database import as_utc, utcnow
from leaddesk.core.policy import GLOBAL_READ_ROLES
from leaddesk.dashboard.schemas import (
    AttentionCounts,
    DashboardSummary,
    DepartmentSummaryItem,
    LeadsByStatusItem,
    RecentLeadItem,
    TopAssigneeItem,
    WeekEventItem,
)
from leaddesk.departments.access import department_access
from leaddesk.departments.models import Department
from leaddesk.departments.service import department_service
from leaddesk.leads.models import Lead, LeadAssignee, LeadReminder, LeadTask
from leaddesk.leads.reporting import day_key, zero_filled_days
from leaddesk.leads.schemas import DayCount
from leaddesk.leads.service import NO_STATUS_NAME
from leaddesk.statuses.service import status_service
from leaddesk.users.models import User
from leaddesk.users.service import user_service


def week_bounds(now: datetime | None = None) -> tuple[datetime, datetime]:
    """Monday 00:00 through Sunday 23:59:59.999 of the current UTC week."""
    today = (now or utcnow()).astimezone(timezone.utc).date()
    monday = today - timedelta(days=today.weekday())
    start = datetime.combine(monday, time.min, tzinfo=timezone.utc)
    end = datetime.combine(monday + timedelta(days=6), time(23, 59, 59, 999000), tzinfo=timezone.utc)
    return start, end


class DashboardService:
    def summary(self, session: Session, actor_user: ActorUser) -> DashboardSummary:
        department_ids = department_access.allowed_department_ids(session, actor_user)
        if actor_user.role in GLOBAL_READ_ROLES:
            users_count = session.scalar(select(func.count()).select_from(User)) or 0
            departments_count = session.scalar(select(func.count()).select_from(Department)) or 0
        elif department_ids:
            users_count = (
                session.scalar(select(func.count()).select_from(User).where(User.department_id.in_(department_ids)))
                or 0
            )
            departments_count = len(department_ids)
        else:
            users_count = 0
            departments_count = 0

        leads_count = 0
        if department_ids:
            leads_count = (
                session.scalar(select(func.count()).select_from(Lead).where(Lead.department_id.in_(department_ids)))
                or 0
            )
        return DashboardSummary(
            users_count=int(users_count),
            departments_count=int(departments_count),
            leads_count=int(leads_count),
        )

    def leads_by_status(self, session: Session, actor_user: ActorUser) -> list[LeadsByStatusItem]:
        department_ids = department_access.allowed_department_ids(session, actor_user)
        if not department_ids:
            return []
        rows = session.execute(
            select(Lead.status_id, func.count())
            .where(Lead.department_id.in_(department_ids))
            .group_by(Lead.status_id)
        ).all()
        names = status_service.names_by_id(session, {row[0] for row in rows if row[0] is not None})
        return [
            LeadsByStatusItem(
                status_id=row[0],
                status_name=names.get(row[0], NO_STATUS_NAME) if row[0] is not None else NO_STATUS_NAME,
                count=int(row[1]),
            )
            for row in rows
        ]

    def leads_over_time(self, session: Session, actor_user: ActorUser, days: int = 14) -> list[DayCount]:
        department_ids = department_access.allowed_department_ids(session, actor_user)
        if not department_ids:
            return []
        today = utcnow().date()
        since = datetime.combine(today - timedelta(days=days - 1), time.min, tzinfo=timezone.utc)
        created = session.scalars(
            select(Lead.created_at).where(Lead.department_id.in_(department_ids), Lead.created_at >= since)
        ).all()
        return zero_filled_days(Counter(day_key(value) for value in created), days, today)

    def recent_leads(self, session: Session, actor_user: ActorUser, limit: int = 10) -> list[RecentLeadItem]:
        department_ids = department_access.allowed_department_ids(session, actor_user)
        if not department_ids:
            return []
        leads = session.scalars(
            select(Lead)
            .where(Lead.department_id.in_(department_ids))
            .order_by(Lead.created_at.desc())
            .limit(limit)
        ).all()
        status_names = status_service.names_by_id(session, {lead.status_id for lead in leads if lead.status_id})
        department_names = department_service.names_by_id(session, {lead.department_id for lead in leads})
        return [
            RecentLeadItem(
                id=lead.id,
                name=lead.name,
                last_name=lead.last_name,
                status_name=status_names.get(lead.status_id, NO_STATUS_NAME) if lead.status_id else NO_STATUS_NAME,
                department_name=department_names.get(lead.department_id, ""),
                created_at=lead.created_at,
            )
            for lead in leads
        ]

    def departments_summary(self, session: Session, actor_user: ActorUser) -> list[DepartmentSummaryItem]:
        department_ids = department_access.allowed_department_ids(session, actor_user)
        if not department_ids:
            return []
        departments = session.scalars(
            select(Department).where(Department.id.in_(department_ids)).order_by(Department.created_at.asc())
        ).all()
        counts = dict(
            session.execute(
                select(Lead.department_id, func.count())
                .where(Lead.department_id.in_(department_ids))
                .group_by(Lead.department_id)
            ).all()
        )
        return [
            DepartmentSummaryItem(
                department_id=department.id,
                department_name=department.name,
                leads_count=int(counts.get(department.id, 0)),
            )
            for department in departments
        ]

    def top_assignees(self, session: Session, actor_user: ActorUser, limit: int = 5) -> list[TopAssigneeItem]:
        department_ids = department_access.allowed_department_ids(session, actor_user)
        if not department_ids:
            return []
        lead_count = func.count(LeadAssignee.lead_id)
        rows = session.execute(
            select(LeadAssignee.user_id, lead_count)
            .join(Lead, Lead.id == LeadAssignee.lead_id)
            .where(Lead.department_id.in_(department_ids))
            .group_by(LeadAssignee.user_id)
            .order_by(lead_count.desc())
            .limit(limit)
        ).all()
        names = user_service.display_names(session, {row[0] for row in rows})
        return [
            TopAssigneeItem(assignee_id=row[0], assignee_name=names.get(row[0], str(row[0])), leads_count=int(row[1]))
            for row in rows
        ]

    def attention_counts(self, session: Session, actor_user: ActorUser) -> AttentionCounts:
        department_ids = department_access.allowed_department_ids(session, actor_user)
        if not department_ids:
            return AttentionCounts(leads_without_status=0, leads_unassigned=0)
        in_scope = Lead.department_id.in_(department_ids)
        without_status = session.scalar(
            select(func.count()).select_from(Lead).where(in_scope, Lead.status_id.is_(None))
        )
        unassigned = session.scalar(
            select(func.count()).select_from(Lead).where(in_scope, ~Lead.id.in_(select(LeadAssignee.lead_id)))
        )
        return AttentionCounts(leads_without_status=int(without_status or 0), leads_unassigned=int(unassigned or 0))

    def week_events(self, session: Session, actor_user: ActorUser, now: datetime | None = None) -> list[WeekEventItem]:
        department_ids = department_access.allowed_department_ids(session, actor_user)
        if not department_ids:
            return []
        start, end = week_bounds(now)
        in_scope = Lead.department_id.in_(department_ids)

        reminders = session.execute(
            select(LeadReminder, Lead.name)
            .join(Lead, Lead.id == LeadReminder.lead_id)
            .where(in_scope, LeadReminder.done.is_(False), LeadReminder.remind_at >= start, LeadReminder.remind_at <= end)
        ).all()
        tasks = session.execute(
            select(LeadTask, Lead.name)
            .join(Lead, Lead.id == LeadTask.lead_id)
            .where(in_scope, LeadTask.completed.is_(False), LeadTask.due_at >= start, LeadTask.due_at <= end)
        ).all()

        events = [
            self._week_event("reminder", reminder.id, reminder.lead_id, lead_name, reminder.title, reminder.remind_at)
            for reminder, lead_name in reminders
        ]
        events.extend(
            self._week_event("task", task.id, task.lead_id, lead_name, task.title, task.due_at)
            for task, lead_name in tasks
        )
        events.sort(key=lambda item: item.date_time)
        return events

    def _week_event(
        self,
        kind: str,
        item_id: uuid.UUID,
        lead_id: uuid.UUID,
        lead_name: str | None,
        title: str,
        moment: datetime,
    ) -> WeekEventItem:
        moment = as_utc(moment)
        return WeekEventItem(
            type=kind,
            id=item_id,
            lead_id=lead_id,
            lead_name=lead_name,
            title=title,
            date=moment.date().isoformat(),
            date_time=moment,
        )


dashboard_service = DashboardService()
