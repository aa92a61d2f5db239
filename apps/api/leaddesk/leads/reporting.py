from __future__ import annotations

import uuid
from collections import Counter
from datetime import date, datetime, timedelta, timezone

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from leaddesk.core.auth import ActorUser
from leaddesk.core.database import as_utc, utcnow
from leaddesk.core.policy import Role, may_export_leads, may_list_users
from leaddesk.departments.access import department_access
from leaddesk.departments.service import department_service
from leaddesk.leads.models import Lead, LeadAssignee
from leaddesk.leads.schemas import (
    DayCount,
    LeadPage,
    LeadRead,
    LeadStats,
    LeadStatsFilters,
    StatsRow,
    StatsStatus,
    StatusCount,
    UserLeadStats,
)
from leaddesk.leads.service import NO_STATUS_NAME, lead_service
from leaddesk.statuses.service import status_service
from leaddesk.users.service import user_service

EXPORT_LIMIT = 10_000
MANAGER_FALLBACK_NAME = "Manager"


def day_key(value: datetime) -> str:
    return as_utc(value).date().isoformat()


def zero_filled_days(counts: Counter[str], days: int, today: date | None = None) -> list[DayCount]:
    end = today or utcnow().date()
    series = []
    for offset in range(days - 1, -1, -1):
        key = (end - timedelta(days=offset)).isoformat()
        series.append(DayCount(date=key, count=counts.get(key, 0)))
    return series


class LeadReportingService:
    def get_stats(
        self,
        session: Session,
        actor_user: ActorUser,
        department_id: uuid.UUID | None,
        date_from: str | None = None,
        date_to: str | None = None,
        status_id: uuid.UUID | None = None,
    ) -> LeadStats:
        if department_id is None:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="department_id is required")
        self._require_department_reporting(
            session,
            actor_user,
            department_id,
            detail="Department statistics are available only to the manager of this department",
        )
        department = department_service.require(session, department_id)
        statuses = status_service.list_by_department(session, department_id)

        assignee_ids: list[uuid.UUID] = []
        if department.manager_id is not None:
            assignee_ids.append(department.manager_id)
        employees = user_service.list_by_department(session, department_id)
        assignee_ids.extend(user.id for user in employees if user.id not in assignee_ids)

        conditions = [Lead.department_id == department_id]
        conditions.extend(
            lead_service.filter_conditions(status_id=status_id, date_from=date_from, date_to=date_to)
        )
        counts: dict[tuple[uuid.UUID, uuid.UUID | None], int] = {}
        if assignee_ids:
            rows = session.execute(
                select(LeadAssignee.user_id, Lead.status_id, func.count())
                .join(Lead, Lead.id == LeadAssignee.lead_id)
                .where(*conditions, LeadAssignee.user_id.in_(assignee_ids))
                .group_by(LeadAssignee.user_id, Lead.status_id)
            ).all()
            counts = {(row[0], row[1]): int(row[2]) for row in rows}

        def build_row(user_id: uuid.UUID, name: str, is_manager: bool) -> StatsRow:
            by_status = [
                StatusCount(status_id=item.id, status_name=item.name, count=counts.get((user_id, item.id), 0))
                for item in statuses
            ]
            return StatsRow(
                assignee_id=user_id,
                assignee_name=name,
                is_manager=is_manager,
                by_status=by_status,
                total=sum(entry.count for entry in by_status),
            )

        stats_rows: list[StatsRow] = []
        if department.manager_id is not None:
            manager = user_service.find_by_id(session, department.manager_id)
            manager_name = manager.display_name if manager is not None else MANAGER_FALLBACK_NAME
            stats_rows.append(build_row(department.manager_id, manager_name, True))
        for employee in employees:
            if employee.id == department.manager_id:
                continue
            stats_rows.append(build_row(employee.id, employee.display_name, False))

        return LeadStats(
            department_id=department.id,
            department_name=department.name,
            statuses=[StatsStatus(id=item.id, name=item.name, order=item.order) for item in statuses],
            rows=stats_rows,
            filters=LeadStatsFilters(date_from=date_from, date_to=date_to, status_id=status_id),
        )

    def export(
        self,
        session: Session,
        actor_user: ActorUser,
        department_id: uuid.UUID | None,
        date_from: str | None = None,
        date_to: str | None = None,
        status_id: uuid.UUID | None = None,
        assigned_to: uuid.UUID | None = None,
    ) -> list[LeadRead]:
        if not may_export_leads(actor_user.role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Export is available only to managers, admins and super",
            )
        if department_id is None:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="department_id is required")
        self._require_department_reporting(
            session,
            actor_user,
            department_id,
            detail="Department export is available only to the manager of this department",
        )
        conditions = [Lead.department_id == department_id]
        conditions.extend(
            lead_service.filter_conditions(
                status_id=status_id,
                assigned_to=assigned_to,
                date_from=date_from,
                date_to=date_to,
            )
        )
        rows = session.scalars(
            select(Lead).where(*conditions).order_by(Lead.created_at.desc()).limit(EXPORT_LIMIT)
        ).all()
        return [LeadRead.model_validate(row) for row in rows]

    def user_leads(
        self,
        session: Session,
        actor_user: ActorUser,
        user_id: uuid.UUID,
        skip: int = 0,
        limit: int = 25,
        name: str | None = None,
        phone: str | None = None,
        email: str | None = None,
        status_id: uuid.UUID | None = None,
        department_id: uuid.UUID | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
    ) -> LeadPage:
        self._require_user_reporting(session, actor_user, user_id)
        skip = max(0, skip)
        limit = min(100, max(1, limit))

        department_ids = department_access.allowed_department_ids(session, actor_user)
        if department_id is not None:
            department_ids = [item for item in department_ids if item == department_id]
        if not department_ids:
            return LeadPage(items=[], total=0, skip=skip, limit=limit)

        conditions = [Lead.department_id.in_(department_ids)]
        conditions.extend(
            lead_service.filter_conditions(
                name=name,
                phone=phone,
                email=email,
                status_id=status_id,
                assigned_to=user_id,
            )
        )
        total = session.scalar(select(func.count()).select_from(Lead).where(*conditions)) or 0
        rows = session.scalars(
            select(Lead)
            .where(*conditions)
            .order_by(lead_service.sort_clause(sort_by, sort_order))
            .offset(skip)
            .limit(limit)
        ).all()
        return LeadPage(items=lead_service.to_list_items(session, rows), total=int(total), skip=skip, limit=limit)

    def user_stats(self, session: Session, actor_user: ActorUser, user_id: uuid.UUID, days: int = 14) -> UserLeadStats:
        self._require_user_reporting(session, actor_user, user_id)
        days = min(90, max(7, days))
        department_ids = department_access.allowed_department_ids(session, actor_user)
        if not department_ids:
            return UserLeadStats(total=0, by_status=[], over_time=[])

        conditions = [
            Lead.department_id.in_(department_ids),
            Lead.id.in_(select(LeadAssignee.lead_id).where(LeadAssignee.user_id == user_id)),
        ]
        total = session.scalar(select(func.count()).select_from(Lead).where(*conditions)) or 0
        status_rows = session.execute(
            select(Lead.status_id, func.count()).where(*conditions).group_by(Lead.status_id)
        ).all()
        status_names = status_service.names_by_id(session, {row[0] for row in status_rows if row[0] is not None})
        by_status = [
            StatusCount(
                status_id=row[0],
                status_name=status_names.get(row[0], NO_STATUS_NAME) if row[0] is not None else NO_STATUS_NAME,
                count=int(row[1]),
            )
            for row in status_rows
        ]

        today = utcnow().date()
        since = datetime.combine(today - timedelta(days=days - 1), datetime.min.time(), tzinfo=timezone.utc)
        created = session.scalars(select(Lead.created_at).where(*conditions, Lead.created_at >= since)).all()
        over_time = zero_filled_days(Counter(day_key(value) for value in created), days, today)
        return UserLeadStats(total=int(total), by_status=by_status, over_time=over_time)

    def _require_department_reporting(
        self,
        session: Session,
        actor_user: ActorUser,
        department_id: uuid.UUID,
        detail: str,
    ) -> None:
        department_access.require_view(session, actor_user, department_id, detail="Access denied to this department")
        if actor_user.role is Role.MANAGER and not department_access.can_manage(session, actor_user, department_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

    def _require_user_reporting(self, session: Session, actor_user: ActorUser, user_id: uuid.UUID) -> None:
        if actor_user.user_id != user_id and not may_list_users(actor_user.role):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        if user_service.find_by_id(session, user_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")


lead_reporting_service = LeadReportingService()
