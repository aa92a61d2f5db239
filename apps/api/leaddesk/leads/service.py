from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, time, timezone
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import ColumnElement, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from leaddesk import events
from leaddesk.core.auth import ActorUser
from leaddesk.core.policy import Role
from leaddesk.departments.access import department_access
from leaddesk.departments.models import Department
from leaddesk.departments.service import department_service
from leaddesk.leads.models import LEAD_SOURCE_MANUAL, LEAD_SOURCE_SITE, Lead, LeadAssignee, LeadHistory
from leaddesk.leads.schemas import (
    LEAD_SORT_FIELDS,
    BulkCreateItem,
    BulkCreateResult,
    BulkDeleteResult,
    BulkUpdateResult,
    LeadCreate,
    LeadFromSite,
    LeadHistoryRead,
    LeadListItem,
    LeadPage,
    LeadRead,
    LeadSourceMeta,
    LeadUpdate,
)
from leaddesk.metrics import observe_bulk_items, observe_lead_created
from leaddesk.otel import get_tracer
from leaddesk.sites.service import site_service
from leaddesk.statuses.service import status_service
from leaddesk.users.service import user_service

logger = logging.getLogger("leaddesk.leads")
tracer = get_tracer("leaddesk.leads")

ASSIGNEE_REJECTED_DETAIL = "Only department employees or its manager can be assigned"
DUPLICATE_PHONE_DETAIL = "Lead with this phone already exists"
DUPLICATE_EMAIL_DETAIL = "Lead with this email already exists"
NO_STATUS_NAME = "No status"

_UPDATED_FIELDS = ("name", "last_name", "phone", "phone2", "email", "email2", "comment")


def normalize_source_meta(meta: LeadSourceMeta | dict[str, Any] | None) -> dict[str, Any] | None:
    """Trim string values and drop empties; an all-empty meta collapses to None."""
    if meta is None:
        return None
    raw = meta.model_dump() if isinstance(meta, LeadSourceMeta) else dict(meta)
    normalized: dict[str, Any] = {}
    for key, value in raw.items():
        if key == "extra":
            if isinstance(value, dict) and value:
                normalized[key] = value
            continue
        if value is None:
            continue
        text = str(value).strip()
        if text:
            normalized[key] = text
    return normalized or None


def day_start(value: str | None) -> datetime | None:
    """Start of the given UTC day; unparseable input yields None and the bound is ignored."""
    day = _parse_day(value)
    return datetime.combine(day, time.min, tzinfo=timezone.utc) if day is not None else None


def day_end(value: str | None) -> datetime | None:
    day = _parse_day(value)
    return datetime.combine(day, time(23, 59, 59, 999000), tzinfo=timezone.utc) if day is not None else None


def _parse_day(value: str | None) -> date | None:
    if not value or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def contains_ci(column: Any, value: str) -> ColumnElement[bool]:
    return column.ilike(f"%{escape_like(value.strip())}%", escape="\\")


class LeadService:
    def create(self, session: Session, actor_user: ActorUser, dto: LeadCreate) -> LeadRead:
        if not department_access.can_create_in(session, actor_user, dto.department_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only create leads in your department or need super role",
            )
        if session.get(Department, dto.department_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")

        assigned_to = self._validated_assignees(session, dto.department_id, dto.assigned_to or [])
        if dto.status_id is not None:
            self._require_status_in_department(session, dto.status_id, dto.department_id)

        lead = Lead(
            name=dto.name.strip(),
            last_name=(dto.last_name or "").strip(),
            phone=(dto.phone or "").strip(),
            phone2=(dto.phone2 or "").strip(),
            email=(dto.email or "").strip().lower(),
            email2=(dto.email2 or "").strip().lower(),
            comment=(dto.comment or "").strip(),
            department_id=dto.department_id,
            status_id=dto.status_id,
            source=(dto.source or "").strip() or LEAD_SOURCE_MANUAL,
            site_id=dto.site_id,
            source_meta=normalize_source_meta(dto.source_meta),
            created_by=actor_user.user_id,
        )
        lead.assigned_to = assigned_to
        return self._insert(session, lead, actor_user.user_id, extra_history={})

    def create_from_site(
        self,
        session: Session,
        dto: LeadFromSite,
        client_ip: str | None = None,
        user_agent: str | None = None,
        referrer: str | None = None,
    ) -> LeadRead:
        site = site_service.find_by_token(session, dto.token)
        if site is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Site not found")
        name = dto.name.strip()
        if not name:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name is required")

        meta = normalize_source_meta(dto.source_meta) or {}
        for key, value in (("ip", client_ip), ("user_agent", user_agent), ("referrer", referrer)):
            if not meta.get(key) and value and value.strip():
                meta[key] = value.strip()

        lead = Lead(
            name=name,
            phone=(dto.phone or "").strip(),
            email=(dto.email or "").strip().lower(),
            comment=(dto.additional_info or "").strip(),
            department_id=site.department_id,
            source=LEAD_SOURCE_SITE,
            site_id=site.id,
            source_meta=meta or None,
            created_by=None,
        )
        return self._insert(session, lead, None, extra_history={"site_id": str(site.id)})

    def bulk_create(
        self,
        session: Session,
        actor_user: ActorUser,
        department_id: uuid.UUID,
        items: list[BulkCreateItem],
    ) -> BulkCreateResult:
        if not department_access.can_create_in(session, actor_user, department_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only create leads in your department or need super role",
            )
        if session.get(Department, department_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")

        with tracer.start_as_current_span("leads.bulk_create") as span:
            span.set_attribute("leads.department_id", str(department_id))
            span.set_attribute("leads.requested", len(items))
            normalized = [
                (item.name.strip(), item.phone.strip())
                for item in items
                if item.name.strip() and item.phone.strip()
            ]
            if not normalized:
                return BulkCreateResult(added=0, duplicates=0)

            seen: set[str] = set()
            deduped: list[tuple[str, str]] = []
            for name, phone in normalized:
                if phone in seen:
                    continue
                seen.add(phone)
                deduped.append((name, phone))

            existing = set(
                session.scalars(
                    select(Lead.phone).where(Lead.department_id == department_id, Lead.phone.in_(list(seen)))
                ).all()
            )
            to_create = [(name, phone) for name, phone in deduped if phone not in existing]
            duplicates = len(normalized) - len(to_create)

            leads = [
                Lead(
                    name=name,
                    phone=phone,
                    department_id=department_id,
                    source=LEAD_SOURCE_MANUAL,
                    created_by=actor_user.user_id,
                )
                for name, phone in to_create
            ]
            session.add_all(leads)
            session.commit()
            for lead in leads:
                session.add(
                    LeadHistory(
                        lead_id=lead.id,
                        action="created",
                        user_id=actor_user.user_id,
                        meta={"name": lead.name, "phone": lead.phone, "assigned_to": []},
                    )
                )
            session.commit()

            span.set_attribute("leads.added", len(leads))
            span.set_attribute("leads.duplicates", duplicates)
            observe_lead_created(LEAD_SOURCE_MANUAL, len(leads))
            observe_bulk_items("create", len(leads), duplicates)
            logger.info(
                "leads.bulk_create",
                extra={
                    "department_id": str(department_id),
                    "user_id": str(actor_user.user_id),
                    "requested": len(items),
                    "applied": len(leads),
                },
            )
            return BulkCreateResult(added=len(leads), duplicates=duplicates)

    def list_by_department(
        self,
        session: Session,
        actor_user: ActorUser,
        department_id: uuid.UUID | None,
        skip: int = 0,
        limit: int = 50,
        name: str | None = None,
        phone: str | None = None,
        email: str | None = None,
        status_id: uuid.UUID | None = None,
        assigned_to: uuid.UUID | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
    ) -> LeadPage:
        if department_id is None:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="department_id is required")
        department_access.require_view(session, actor_user, department_id, detail="Access denied to this department")

        skip = max(0, skip)
        limit = min(100, max(1, limit))
        conditions = [Lead.department_id == department_id]
        conditions.extend(
            self.filter_conditions(
                name=name,
                phone=phone,
                email=email,
                status_id=status_id,
                assigned_to=assigned_to,
                date_from=date_from,
                date_to=date_to,
            )
        )

        total = session.scalar(select(func.count()).select_from(Lead).where(*conditions)) or 0
        rows = session.scalars(
            select(Lead)
            .where(*conditions)
            .order_by(self.sort_clause(sort_by, sort_order))
            .offset(skip)
            .limit(limit)
        ).all()
        return LeadPage(items=self.to_list_items(session, rows), total=int(total), skip=skip, limit=limit)

    def get_lead(self, session: Session, actor_user: ActorUser, lead_id: uuid.UUID) -> LeadRead:
        lead = session.get(Lead, lead_id)
        if lead is None or not department_access.can_view(session, actor_user, lead.department_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lead not found")
        return self._to_read(lead)

    def update(self, session: Session, actor_user: ActorUser, lead_id: uuid.UUID, dto: LeadUpdate) -> LeadRead:
        lead = self.require_editable(session, actor_user, lead_id, detail="You cannot edit this lead")
        provided = dto.model_dump(exclude_unset=True)
        old_status_id = lead.status_id
        old_assigned_to = list(lead.assigned_to)
        old_values = {field: getattr(lead, field) for field in _UPDATED_FIELDS}

        if "assigned_to" in provided:
            requested = dto.assigned_to or []
            if actor_user.role is Role.EMPLOYEE and requested != [actor_user.user_id]:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="An employee may only take a lead for themselves; only a manager can unassign or reassign",
                )
            lead.assigned_to = self._validated_assignees(session, lead.department_id, requested)

        if dto.phone is not None:
            phone = dto.phone.strip()
            if phone and self._phone_taken(session, lead.department_id, phone, exclude_id=lead.id):
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=DUPLICATE_PHONE_DETAIL)
            lead.phone = phone
        if dto.email is not None:
            email = dto.email.strip().lower()
            if email and self._email_taken(session, lead.department_id, email, exclude_id=lead.id):
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=DUPLICATE_EMAIL_DETAIL)
            lead.email = email
        if dto.name is not None:
            lead.name = dto.name.strip()
        if dto.last_name is not None:
            lead.last_name = dto.last_name.strip()
        if dto.phone2 is not None:
            lead.phone2 = dto.phone2.strip()
        if dto.email2 is not None:
            lead.email2 = dto.email2.strip().lower()
        if dto.comment is not None:
            lead.comment = dto.comment.strip()
        if "status_id" in provided:
            new_status_id = dto.status_id or None
            if new_status_id is not None:
                self._require_status_in_department(session, new_status_id, lead.department_id)
            lead.status_id = new_status_id

        session.commit()
        session.refresh(lead)

        new_assigned_to = list(lead.assigned_to)
        if old_status_id != lead.status_id:
            self._append_history(
                session,
                lead.id,
                "status_changed",
                actor_user.user_id,
                {"old_status_id": _str_or_none(old_status_id), "new_status_id": _str_or_none(lead.status_id)},
            )
        if sorted(map(str, old_assigned_to)) != sorted(map(str, new_assigned_to)):
            self._append_history(
                session,
                lead.id,
                "assigned",
                actor_user.user_id,
                {
                    "old_assigned_to": [str(item) for item in old_assigned_to],
                    "new_assigned_to": [str(item) for item in new_assigned_to],
                },
            )
        changed = {
            field: getattr(lead, field) for field in _UPDATED_FIELDS if getattr(lead, field) != old_values[field]
        }
        if changed:
            self._append_history(session, lead.id, "updated", actor_user.user_id, changed)
        session.commit()

        lead_read = self._to_read(lead)
        events.emit(
            "lead.updated",
            actor_user.user_id,
            {"lead_id": str(lead.id), "department_id": str(lead.department_id), "fields": sorted(provided)},
        )
        return lead_read

    def bulk_update(
        self,
        session: Session,
        actor_user: ActorUser,
        lead_ids: list[uuid.UUID],
        patch: LeadUpdate,
    ) -> BulkUpdateResult:
        with tracer.start_as_current_span("leads.bulk_update") as span:
            span.set_attribute("leads.requested", len(lead_ids))
            updated = 0
            for lead_id in lead_ids:
                try:
                    self.update(session, actor_user, lead_id, patch)
                except HTTPException as exc:
                    self._skip_bulk_item(session, "update", lead_id, exc.status_code, str(exc.detail))
                    continue
                except SQLAlchemyError as exc:
                    self._skip_bulk_item(session, "update", lead_id, 500, str(exc))
                    continue
                updated += 1
            span.set_attribute("leads.updated", updated)
            observe_bulk_items("update", updated, len(lead_ids) - updated)
            return BulkUpdateResult(updated=updated)

    def delete(self, session: Session, actor_user: ActorUser, lead_id: uuid.UUID) -> None:
        lead = self.require_editable(session, actor_user, lead_id, detail="You cannot delete this lead")
        department_id = lead.department_id
        session.delete(lead)
        session.commit()
        events.emit(
            "lead.deleted",
            actor_user.user_id,
            {"lead_id": str(lead_id), "department_id": str(department_id)},
        )

    def bulk_delete(self, session: Session, actor_user: ActorUser, lead_ids: list[uuid.UUID]) -> BulkDeleteResult:
        with tracer.start_as_current_span("leads.bulk_delete") as span:
            span.set_attribute("leads.requested", len(lead_ids))
            deleted = 0
            for lead_id in lead_ids:
                try:
                    self.delete(session, actor_user, lead_id)
                except HTTPException as exc:
                    self._skip_bulk_item(session, "delete", lead_id, exc.status_code, str(exc.detail))
                    continue
                except SQLAlchemyError as exc:
                    self._skip_bulk_item(session, "delete", lead_id, 500, str(exc))
                    continue
                deleted += 1
            span.set_attribute("leads.deleted", deleted)
            observe_bulk_items("delete", deleted, len(lead_ids) - deleted)
            return BulkDeleteResult(deleted=deleted)

    def _skip_bulk_item(
        self, session: Session, operation: str, lead_id: uuid.UUID, status_code: int, error: str
    ) -> None:
        session.rollback()
        log = logger.warning if status_code >= 500 else logger.info
        log(
            f"leads.bulk_{operation}.skipped",
            extra={"lead_id": str(lead_id), "operation": operation, "status_code": status_code, "error": error},
        )

    def history(self, session: Session, actor_user: ActorUser, lead_id: uuid.UUID) -> list[LeadHistoryRead]:
        self.require_editable(session, actor_user, lead_id)
        rows = session.scalars(
            select(LeadHistory).where(LeadHistory.lead_id == lead_id).order_by(LeadHistory.created_at.asc())
        ).all()
        names = user_service.display_names(session, {row.user_id for row in rows if row.user_id is not None})
        return [
            LeadHistoryRead.model_validate(row).model_copy(
                update={"user_display_name": names.get(row.user_id) if row.user_id is not None else None}
            )
            for row in rows
        ]

    def require_editable(
        self,
        session: Session,
        actor_user: ActorUser,
        lead_id: uuid.UUID,
        detail: str = "Access denied to this lead",
    ) -> Lead:
        lead = session.get(Lead, lead_id)
        if lead is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lead not found")
        if not department_access.can_edit_lead(session, actor_user, lead.department_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
        return lead

    def remove_assignee_everywhere(self, session: Session, user_id: uuid.UUID) -> int:
        rows = session.scalars(select(LeadAssignee).where(LeadAssignee.user_id == user_id)).all()
        for row in rows:
            session.delete(row)
        session.commit()
        return len(rows)

    def filter_conditions(
        self,
        name: str | None = None,
        phone: str | None = None,
        email: str | None = None,
        status_id: uuid.UUID | None = None,
        assigned_to: uuid.UUID | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> list[ColumnElement[bool]]:
        conditions: list[ColumnElement[bool]] = []
        if name and name.strip():
            conditions.append(contains_ci(Lead.name, name))
        if phone and phone.strip():
            conditions.append(contains_ci(Lead.phone, phone))
        if email and email.strip():
            conditions.append(contains_ci(Lead.email, email))
        if status_id is not None:
            conditions.append(Lead.status_id == status_id)
        if assigned_to is not None:
            conditions.append(Lead.id.in_(select(LeadAssignee.lead_id).where(LeadAssignee.user_id == assigned_to)))
        created_from = day_start(date_from)
        if created_from is not None:
            conditions.append(Lead.created_at >= created_from)
        created_to = day_end(date_to)
        if created_to is not None:
            conditions.append(Lead.created_at <= created_to)
        return conditions

    def sort_clause(self, sort_by: str | None, sort_order: str | None) -> Any:
        field = (sort_by or "").strip()
        column = getattr(Lead, field) if field in LEAD_SORT_FIELDS else Lead.created_at
        if (sort_order or "").strip().lower() == "asc":
            return column.asc()
        return column.desc()

    def to_list_items(self, session: Session, leads: Any) -> list[LeadListItem]:
        leads = list(leads)
        status_names = status_service.names_by_id(
            session, {lead.status_id for lead in leads if lead.status_id is not None}
        )
        department_names = department_service.names_by_id(session, {lead.department_id for lead in leads})
        return [
            LeadListItem(
                **self._to_read(lead).model_dump(),
                status_name=status_names.get(lead.status_id, NO_STATUS_NAME) if lead.status_id else NO_STATUS_NAME,
                department_name=department_names.get(lead.department_id),
            )
            for lead in leads
        ]

    def _insert(
        self,
        session: Session,
        lead: Lead,
        history_user_id: uuid.UUID | None,
        extra_history: dict[str, Any],
    ) -> LeadRead:
        if lead.phone and self._phone_taken(session, lead.department_id, lead.phone):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=DUPLICATE_PHONE_DETAIL)
        if lead.email and self._email_taken(session, lead.department_id, lead.email):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=DUPLICATE_EMAIL_DETAIL)

        session.add(lead)
        session.commit()
        session.refresh(lead)
        self._append_history(
            session,
            lead.id,
            "created",
            history_user_id,
            {
                "name": lead.name,
                "last_name": lead.last_name,
                "phone": lead.phone,
                "email": lead.email,
                "status_id": _str_or_none(lead.status_id),
                "assigned_to": [str(item) for item in lead.assigned_to],
                **extra_history,
            },
        )
        session.commit()

        observe_lead_created(lead.source)
        events.emit(
            "lead.created",
            history_user_id,
            {"lead_id": str(lead.id), "department_id": str(lead.department_id), "source": lead.source},
        )
        logger.info(
            "lead.created",
            extra={"lead_id": str(lead.id), "department_id": str(lead.department_id), "operation": lead.source},
        )
        return self._to_read(lead)

    def _append_history(
        self,
        session: Session,
        lead_id: uuid.UUID,
        action: str,
        user_id: uuid.UUID | None,
        meta: dict[str, Any],
    ) -> None:
        session.add(LeadHistory(lead_id=lead_id, action=action, user_id=user_id, meta=meta))

    def _validated_assignees(
        self,
        session: Session,
        department_id: uuid.UUID,
        requested: list[uuid.UUID],
    ) -> list[uuid.UUID]:
        if not requested:
            return []
        allowed = department_access.allowed_assignee_ids(session, department_id)
        if any(user_id not in allowed for user_id in requested):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=ASSIGNEE_REJECTED_DETAIL)
        return list(dict.fromkeys(requested))

    def _require_status_in_department(self, session: Session, status_id: uuid.UUID, department_id: uuid.UUID) -> None:
        if not status_service.belongs_to(session, status_id, department_id):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Status does not belong to the lead's department",
            )

    def _phone_taken(
        self,
        session: Session,
        department_id: uuid.UUID,
        phone: str,
        exclude_id: uuid.UUID | None = None,
    ) -> bool:
        query = select(Lead.id).where(Lead.department_id == department_id, Lead.phone == phone)
        if exclude_id is not None:
            query = query.where(Lead.id != exclude_id)
        return session.scalar(query.limit(1)) is not None

    def _email_taken(
        self,
        session: Session,
        department_id: uuid.UUID,
        email: str,
        exclude_id: uuid.UUID | None = None,
    ) -> bool:
        query = select(Lead.id).where(Lead.department_id == department_id, func.lower(Lead.email) == email.lower())
        if exclude_id is not None:
            query = query.where(Lead.id != exclude_id)
        return session.scalar(query.limit(1)) is not None

    def _to_read(self, lead: Lead) -> LeadRead:
        return LeadRead.model_validate(lead)


def _str_or_none(value: uuid.UUID | None) -> str | None:
    return str(value) if value is not None else None


lead_service = LeadService()
