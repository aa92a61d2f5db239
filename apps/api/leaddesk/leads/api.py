from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from leaddesk.core.auth import ActorUser, get_current_user
from leaddesk.core.database import get_db
from leaddesk.core.policy import BULK_LEAD_ROLES
from leaddesk.core.rbac import require_roles
from leaddesk.core.responses import Envelope, MessageRead, deleted, ok
from leaddesk.leads.activity import lead_activity_service
from leaddesk.leads.reporting import lead_reporting_service
from leaddesk.leads.schemas import (
    BulkCreateRequest,
    BulkCreateResult,
    BulkDeleteRequest,
    BulkDeleteResult,
    BulkUpdateRequest,
    BulkUpdateResult,
    LeadCreate,
    LeadHistoryRead,
    LeadPage,
    LeadRead,
    LeadStats,
    LeadTaskCreate,
    LeadTaskRead,
    LeadTaskUpdate,
    LeadUpdate,
    NoteCreate,
    NoteRead,
    NoteUpdate,
    ReminderCreate,
    ReminderRead,
    UpcomingReminderRead,
)
from leaddesk.leads.service import lead_service

router = APIRouter(prefix="/api/leads", tags=["leads"])

bulk_actor = require_roles(*BULK_LEAD_ROLES)


@router.post("", response_model=Envelope[LeadRead], status_code=status.HTTP_201_CREATED)
def create_lead(
    dto: LeadCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(lead_service.create(db, user, dto), status.HTTP_201_CREATED)


@router.post("/bulk", response_model=Envelope[BulkCreateResult], status_code=status.HTTP_201_CREATED)
def bulk_create_leads(
    dto: BulkCreateRequest,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(bulk_actor),
) -> dict[str, Any]:
    return ok(lead_service.bulk_create(db, user, dto.department_id, dto.items), status.HTTP_201_CREATED)


@router.patch("/bulk", response_model=Envelope[BulkUpdateResult])
def bulk_update_leads(
    dto: BulkUpdateRequest,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(bulk_actor),
) -> dict[str, Any]:
    patch = LeadUpdate(**dto.model_dump(exclude_unset=True, exclude={"lead_ids"}))
    return ok(lead_service.bulk_update(db, user, dto.lead_ids, patch))


@router.post("/bulk-delete", response_model=Envelope[BulkDeleteResult])
def bulk_delete_leads(
    dto: BulkDeleteRequest,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(bulk_actor),
) -> dict[str, Any]:
    return ok(lead_service.bulk_delete(db, user, dto.lead_ids))


@router.get("", response_model=Envelope[LeadPage])
def list_leads(
    department_id: uuid.UUID | None = Query(default=None),
    skip: int = Query(default=0),
    limit: int = Query(default=50),
    name: str | None = Query(default=None),
    phone: str | None = Query(default=None),
    email: str | None = Query(default=None),
    status_id: uuid.UUID | None = Query(default=None),
    assigned_to: uuid.UUID | None = Query(default=None),
    date_from: str | None = Query(default=None),
    date_to: str | None = Query(default=None),
    sort_by: str | None = Query(default=None),
    sort_order: str | None = Query(default=None),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    page = lead_service.list_by_department(
        db,
        user,
        department_id,
        skip=skip,
        limit=limit,
        name=name,
        phone=phone,
        email=email,
        status_id=status_id,
        assigned_to=assigned_to,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return ok(page)


@router.get("/reminders/upcoming", response_model=Envelope[list[UpcomingReminderRead]])
def upcoming_reminders(
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(lead_activity_service.upcoming_reminders(db, user))


@router.get("/stats", response_model=Envelope[LeadStats])
def lead_stats(
    department_id: uuid.UUID | None = Query(default=None),
    date_from: str | None = Query(default=None),
    date_to: str | None = Query(default=None),
    status_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(lead_reporting_service.get_stats(db, user, department_id, date_from, date_to, status_id))


@router.get("/export", response_model=Envelope[list[LeadRead]])
def export_leads(
    department_id: uuid.UUID | None = Query(default=None),
    date_from: str | None = Query(default=None),
    date_to: str | None = Query(default=None),
    status_id: uuid.UUID | None = Query(default=None),
    assigned_to: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(
        lead_reporting_service.export(
            db,
            user,
            department_id,
            date_from=date_from,
            date_to=date_to,
            status_id=status_id,
            assigned_to=assigned_to,
        )
    )


@router.get("/{lead_id}/notes", response_model=Envelope[list[NoteRead]])
def list_notes(
    lead_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(lead_activity_service.list_notes(db, user, lead_id))


@router.post("/{lead_id}/notes", response_model=Envelope[NoteRead], status_code=status.HTTP_201_CREATED)
def add_note(
    lead_id: uuid.UUID,
    dto: NoteCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(lead_activity_service.add_note(db, user, lead_id, dto), status.HTTP_201_CREATED)


@router.patch("/{lead_id}/notes/{note_id}", response_model=Envelope[NoteRead])
def update_note(
    lead_id: uuid.UUID,
    note_id: uuid.UUID,
    dto: NoteUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(lead_activity_service.update_note(db, user, lead_id, note_id, dto))


@router.delete("/{lead_id}/notes/{note_id}", response_model=Envelope[MessageRead])
def delete_note(
    lead_id: uuid.UUID,
    note_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    lead_activity_service.delete_note(db, user, lead_id, note_id)
    return deleted("Note")


@router.get("/{lead_id}/history", response_model=Envelope[list[LeadHistoryRead]])
def lead_history(
    lead_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(lead_service.history(db, user, lead_id))


@router.get("/{lead_id}/tasks", response_model=Envelope[list[LeadTaskRead]])
def list_lead_tasks(
    lead_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(lead_activity_service.list_tasks(db, user, lead_id))


@router.post("/{lead_id}/tasks", response_model=Envelope[LeadTaskRead], status_code=status.HTTP_201_CREATED)
def add_lead_task(
    lead_id: uuid.UUID,
    dto: LeadTaskCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(lead_activity_service.add_task(db, user, lead_id, dto), status.HTTP_201_CREATED)


@router.patch("/{lead_id}/tasks/{task_id}", response_model=Envelope[LeadTaskRead])
def update_lead_task(
    lead_id: uuid.UUID,
    task_id: uuid.UUID,
    dto: LeadTaskUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(lead_activity_service.update_task(db, user, lead_id, task_id, dto))


@router.delete("/{lead_id}/tasks/{task_id}", response_model=Envelope[MessageRead])
def delete_lead_task(
    lead_id: uuid.UUID,
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    lead_activity_service.delete_task(db, user, lead_id, task_id)
    return deleted("Task")


@router.get("/{lead_id}/reminders", response_model=Envelope[list[ReminderRead]])
def list_reminders(
    lead_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(lead_activity_service.list_reminders(db, user, lead_id))


@router.post("/{lead_id}/reminders", response_model=Envelope[ReminderRead], status_code=status.HTTP_201_CREATED)
def add_reminder(
    lead_id: uuid.UUID,
    dto: ReminderCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(lead_activity_service.add_reminder(db, user, lead_id, dto), status.HTTP_201_CREATED)


@router.patch("/{lead_id}/reminders/{reminder_id}/done", response_model=Envelope[ReminderRead])
def mark_reminder_done(
    lead_id: uuid.UUID,
    reminder_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(lead_activity_service.mark_reminder_done(db, user, lead_id, reminder_id))


@router.delete("/{lead_id}/reminders/{reminder_id}", response_model=Envelope[MessageRead])
def delete_reminder(
    lead_id: uuid.UUID,
    reminder_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    lead_activity_service.delete_reminder(db, user, lead_id, reminder_id)
    return deleted("Reminder")


@router.get("/{lead_id}", response_model=Envelope[LeadRead])
def get_lead(
    lead_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(lead_service.get_lead(db, user, lead_id))


@router.patch("/{lead_id}", response_model=Envelope[LeadRead])
def update_lead(
    lead_id: uuid.UUID,
    dto: LeadUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(lead_service.update(db, user, lead_id, dto))


@router.delete("/{lead_id}", response_model=Envelope[MessageRead])
def delete_lead(
    lead_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    lead_service.delete(db, user, lead_id)
    return deleted("Lead")
