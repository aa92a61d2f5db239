from __future__ import annotations

import uuid

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from leaddesk import audit
from leaddesk.core.auth import ActorUser
from leaddesk.departments.access import department_access
from leaddesk.departments.models import Department
from leaddesk.statuses.models import DEFAULT_STATUS_COLOR, Status
from leaddesk.statuses.schemas import StatusCreate, StatusRead, StatusUpdate


class StatusService:
    entity_type = "status"

    def create_status(self, session: Session, actor_user: ActorUser, dto: StatusCreate) -> StatusRead:
        department_access.require_manage(
            session,
            actor_user,
            dto.department_id,
            detail="You can only create statuses for your department or need super role",
        )
        if session.get(Department, dto.department_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")

        last_order = session.scalar(select(func.max(Status.order)).where(Status.department_id == dto.department_id))
        item = Status(
            name=dto.name.strip(),
            description=(dto.description or "").strip(),
            color=(dto.color or DEFAULT_STATUS_COLOR).strip(),
            department_id=dto.department_id,
            order=last_order + 1 if last_order is not None else 0,
        )
        session.add(item)
        session.commit()
        session.refresh(item)
        status_read = self._to_read(item)
        self._audit(actor_user, item.id, "create", None, status_read)
        return status_read

    def list_by_department(self, session: Session, department_id: uuid.UUID) -> list[StatusRead]:
        rows = session.scalars(
            select(Status)
            .where(Status.department_id == department_id)
            .order_by(Status.order.asc(), Status.created_at.asc())
        ).all()
        return [self._to_read(item) for item in rows]

    def list_statuses(
        self,
        session: Session,
        actor_user: ActorUser,
        department_id: uuid.UUID | None,
    ) -> list[StatusRead]:
        if department_id is None:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="department_id is required")
        department_access.require_view(
            session,
            actor_user,
            department_id,
            detail="Access denied to this department statuses",
        )
        return self.list_by_department(session, department_id)

    def get(self, session: Session, status_id: uuid.UUID) -> Status | None:
        return session.get(Status, status_id)

    def get_status(self, session: Session, actor_user: ActorUser, status_id: uuid.UUID) -> StatusRead:
        item = self._require(session, status_id)
        department_access.require_view(session, actor_user, item.department_id, detail="Access denied")
        return self._to_read(item)

    def update_status(
        self,
        session: Session,
        actor_user: ActorUser,
        status_id: uuid.UUID,
        dto: StatusUpdate,
    ) -> StatusRead:
        item = self._require(session, status_id)
        department_access.require_manage(
            session,
            actor_user,
            item.department_id,
            detail="You can only edit statuses of your department or need super role",
        )
        before = self._to_read(item)
        if dto.department_id is not None and dto.department_id != item.department_id:
            department_access.require_manage(
                session,
                actor_user,
                dto.department_id,
                detail="Cannot assign status to that department",
            )
            item.department_id = dto.department_id
        if dto.name is not None:
            item.name = dto.name.strip()
        if dto.description is not None:
            item.description = dto.description.strip()
        if dto.color is not None:
            item.color = dto.color.strip()
        session.commit()
        session.refresh(item)
        status_read = self._to_read(item)
        self._audit(actor_user, item.id, "update", before, status_read)
        return status_read

    def delete_status(self, session: Session, actor_user: ActorUser, status_id: uuid.UUID) -> None:
        item = self._require(session, status_id)
        department_access.require_manage(
            session,
            actor_user,
            item.department_id,
            detail="You can only delete statuses of your department or need super role",
        )
        before = self._to_read(item)
        session.delete(item)
        session.commit()
        self._audit(actor_user, status_id, "delete", before, None)

    def belongs_to(self, session: Session, status_id: uuid.UUID, department_id: uuid.UUID) -> bool:
        found = session.scalar(
            select(Status.id).where(Status.id == status_id, Status.department_id == department_id)
        )
        return found is not None

    def names_by_id(self, session: Session, status_ids: set[uuid.UUID]) -> dict[uuid.UUID, str]:
        if not status_ids:
            return {}
        rows = session.execute(select(Status.id, Status.name).where(Status.id.in_(status_ids))).all()
        return {row.id: row.name for row in rows}

    def _require(self, session: Session, status_id: uuid.UUID) -> Status:
        item = self.get(session, status_id)
        if item is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Status not found")
        return item

    def _audit(
        self,
        actor_user: ActorUser,
        status_id: uuid.UUID,
        action: str,
        before: StatusRead | None,
        after: StatusRead | None,
    ) -> None:
        audit.record(
            actor_user,
            self.entity_type,
            status_id,
            action,
            before=before.model_dump(mode="json") if before is not None else None,
            after=after.model_dump(mode="json") if after is not None else None,
        )

    def _to_read(self, item: Status) -> StatusRead:
        return StatusRead.model_validate(item)


status_service = StatusService()
