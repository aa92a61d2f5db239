from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from leaddesk.core.auth import ActorUser
from leaddesk.core.database import utcnow
from leaddesk.core.policy import may_moderate_notes
from leaddesk.departments.access import department_access
from leaddesk.leads.models import Lead, LeadHistory, LeadNote, LeadReminder, LeadTask
from leaddesk.leads.schemas import (
    LeadTaskCreate,
    LeadTaskRead,
    LeadTaskUpdate,
    NoteCreate,
    NoteRead,
    NoteUpdate,
    ReminderCreate,
    ReminderRead,
    UpcomingReminderRead,
)
from leaddesk.leads.service import lead_service

UPCOMING_WINDOW = timedelta(hours=24)
UPCOMING_LIMIT = 50


class LeadActivityService:
    """Notes, tasks and reminders attached to a lead.

    Every operation requires edit access to the lead's department and writes a
    history row after the primary change is committed.
    """

    def list_notes(self, session: Session, actor_user: ActorUser, lead_id: uuid.UUID) -> list[NoteRead]:
        lead_service.require_editable(session, actor_user, lead_id)
        rows = session.scalars(
            select(LeadNote).where(LeadNote.lead_id == lead_id).order_by(LeadNote.created_at.asc())
        ).all()
        return [NoteRead.model_validate(row) for row in rows]

    def add_note(self, session: Session, actor_user: ActorUser, lead_id: uuid.UUID, dto: NoteCreate) -> NoteRead:
        lead_service.require_editable(session, actor_user, lead_id)
        content = _required_text(dto.content, "Note content is required")
        note = LeadNote(lead_id=lead_id, author_id=actor_user.user_id, content=content)
        session.add(note)
        session.commit()
        session.refresh(note)
        self._history(session, lead_id, "note_added", actor_user, {"note_id": str(note.id), "content": content})
        return NoteRead.model_validate(note)

    def update_note(
        self,
        session: Session,
        actor_user: ActorUser,
        lead_id: uuid.UUID,
        note_id: uuid.UUID,
        dto: NoteUpdate,
    ) -> NoteRead:
        note = self._moderated_note(session, actor_user, lead_id, note_id, "edit")
        content = _required_text(dto.content, "Note content is required")
        note.content = content
        session.commit()
        session.refresh(note)
        self._history(session, lead_id, "note_edited", actor_user, {"note_id": str(note.id), "content": content})
        return NoteRead.model_validate(note)

    def delete_note(self, session: Session, actor_user: ActorUser, lead_id: uuid.UUID, note_id: uuid.UUID) -> None:
        note = self._moderated_note(session, actor_user, lead_id, note_id, "delete")
        session.delete(note)
        session.commit()
        self._history(session, lead_id, "note_deleted", actor_user, {"note_id": str(note_id)})

    def list_tasks(self, session: Session, actor_user: ActorUser, lead_id: uuid.UUID) -> list[LeadTaskRead]:
        lead_service.require_editable(session, actor_user, lead_id)
        rows = session.scalars(
            select(LeadTask).where(LeadTask.lead_id == lead_id).order_by(LeadTask.created_at.asc())
        ).all()
        return [LeadTaskRead.model_validate(row) for row in rows]

    def add_task(
        self,
        session: Session,
        actor_user: ActorUser,
        lead_id: uuid.UUID,
        dto: LeadTaskCreate,
    ) -> LeadTaskRead:
        lead_service.require_editable(session, actor_user, lead_id)
        title = _required_text(dto.title, "Task title is required")
        task = LeadTask(lead_id=lead_id, title=title, due_at=dto.due_at, created_by=actor_user.user_id)
        session.add(task)
        session.commit()
        session.refresh(task)
        self._history(
            session,
            lead_id,
            "task_added",
            actor_user,
            {"task_id": str(task.id), "title": title, "due_at": _iso_or_none(task.due_at)},
        )
        return LeadTaskRead.model_validate(task)

    def update_task(
        self,
        session: Session,
        actor_user: ActorUser,
        lead_id: uuid.UUID,
        task_id: uuid.UUID,
        dto: LeadTaskUpdate,
    ) -> LeadTaskRead:
        lead_service.require_editable(session, actor_user, lead_id)
        task = self._child(session, LeadTask, lead_id, task_id, "Task not found")
        provided = dto.model_dump(exclude_unset=True)
        if dto.title is not None and dto.title.strip():
            task.title = dto.title.strip()
        if "due_at" in provided:
            task.due_at = dto.due_at
        if dto.completed is not None:
            task.completed = dto.completed
        session.commit()
        session.refresh(task)
        self._history(
            session,
            lead_id,
            "task_updated",
            actor_user,
            {
                "task_id": str(task.id),
                "title": task.title,
                "due_at": _iso_or_none(task.due_at),
                "completed": task.completed,
            },
        )
        return LeadTaskRead.model_validate(task)

    def delete_task(self, session: Session, actor_user: ActorUser, lead_id: uuid.UUID, task_id: uuid.UUID) -> None:
        lead_service.require_editable(session, actor_user, lead_id)
        task = self._child(session, LeadTask, lead_id, task_id, "Task not found")
        title = task.title
        session.delete(task)
        session.commit()
        self._history(session, lead_id, "task_deleted", actor_user, {"task_id": str(task_id), "title": title})

    def list_reminders(self, session: Session, actor_user: ActorUser, lead_id: uuid.UUID) -> list[ReminderRead]:
        lead_service.require_editable(session, actor_user, lead_id)
        rows = session.scalars(
            select(LeadReminder).where(LeadReminder.lead_id == lead_id).order_by(LeadReminder.remind_at.asc())
        ).all()
        return [ReminderRead.model_validate(row) for row in rows]

    def add_reminder(
        self,
        session: Session,
        actor_user: ActorUser,
        lead_id: uuid.UUID,
        dto: ReminderCreate,
    ) -> ReminderRead:
        lead_service.require_editable(session, actor_user, lead_id)
        title = _required_text(dto.title, "Reminder title is required")
        reminder = LeadReminder(lead_id=lead_id, title=title, remind_at=dto.remind_at, created_by=actor_user.user_id)
        session.add(reminder)
        session.commit()
        session.refresh(reminder)
        self._history(
            session,
            lead_id,
            "reminder_added",
            actor_user,
            {"reminder_id": str(reminder.id), "title": title, "remind_at": _iso_or_none(reminder.remind_at)},
        )
        return ReminderRead.model_validate(reminder)

    def mark_reminder_done(
        self,
        session: Session,
        actor_user: ActorUser,
        lead_id: uuid.UUID,
        reminder_id: uuid.UUID,
    ) -> ReminderRead:
        lead_service.require_editable(session, actor_user, lead_id)
        reminder = self._child(session, LeadReminder, lead_id, reminder_id, "Reminder not found")
        reminder.done = True
        session.commit()
        session.refresh(reminder)
        self._history(
            session,
            lead_id,
            "reminder_done",
            actor_user,
            {"reminder_id": str(reminder.id), "title": reminder.title},
        )
        return ReminderRead.model_validate(reminder)

    def delete_reminder(
        self,
        session: Session,
        actor_user: ActorUser,
        lead_id: uuid.UUID,
        reminder_id: uuid.UUID,
    ) -> None:
        lead_service.require_editable(session, actor_user, lead_id)
        reminder = self._child(session, LeadReminder, lead_id, reminder_id, "Reminder not found")
        title = reminder.title
        session.delete(reminder)
        session.commit()
        self._history(
            session,
            lead_id,
            "reminder_deleted",
            actor_user,
            {"reminder_id": str(reminder_id), "title": title},
        )

    def upcoming_reminders(self, session: Session, actor_user: ActorUser) -> list[UpcomingReminderRead]:
        horizon = utcnow() + UPCOMING_WINDOW
        rows = session.execute(
            select(LeadReminder, Lead.name, Lead.department_id)
            .join(Lead, Lead.id == LeadReminder.lead_id)
            .where(LeadReminder.done.is_(False), LeadReminder.remind_at <= horizon)
            .order_by(LeadReminder.remind_at.asc())
            .limit(UPCOMING_LIMIT)
        ).all()

        visible: dict[uuid.UUID, bool] = {}
        items: list[UpcomingReminderRead] = []
        for reminder, lead_name, department_id in rows:
            if department_id not in visible:
                visible[department_id] = department_access.can_view(session, actor_user, department_id)
            if not visible[department_id]:
                continue
            items.append(
                UpcomingReminderRead(**ReminderRead.model_validate(reminder).model_dump(), lead_name=lead_name)
            )
        return items

    def _moderated_note(
        self,
        session: Session,
        actor_user: ActorUser,
        lead_id: uuid.UUID,
        note_id: uuid.UUID,
        verb: str,
    ) -> LeadNote:
        lead_service.require_editable(session, actor_user, lead_id)
        note = self._child(session, LeadNote, lead_id, note_id, "Note not found")
        if note.author_id != actor_user.user_id and not may_moderate_notes(actor_user.role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Only the author or a manager can {verb} this note",
            )
        return note

    def _child(self, session: Session, model: Any, lead_id: uuid.UUID, child_id: uuid.UUID, detail: str) -> Any:
        row = session.get(model, child_id)
        if row is None or row.lead_id != lead_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)
        return row

    def _history(
        self,
        session: Session,
        lead_id: uuid.UUID,
        action: str,
        actor_user: ActorUser,
        meta: dict[str, Any],
    ) -> None:
        session.add(LeadHistory(lead_id=lead_id, action=action, user_id=actor_user.user_id, meta=meta))
        session.commit()


def _required_text(value: str | None, detail: str) -> str:
    text = (value or "").strip()
    if not text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
    return text


def _iso_or_none(value: Any) -> str | None:
    return value.isoformat() if value is not None else None


lead_activity_service = LeadActivityService()
