from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from leaddesk import audit, events
from leaddesk.core.auth import ActorUser
from leaddesk.core.policy import GLOBAL_READ_ROLES, Role
from leaddesk.departments.models import Department
from leaddesk.departments.schemas import DepartmentCreate, DepartmentDetail, DepartmentRead, DepartmentUpdate
from leaddesk.metrics import observe_department_reconciliation
from leaddesk.sites.models import Site
from leaddesk.statuses.models import Status
from leaddesk.users.models import User
from leaddesk.users.schemas import UserRead
from leaddesk.users.service import user_service

logger = logging.getLogger("leaddesk.departments")


class DepartmentService:
    entity_type = "department"

    def create(self, session: Session, name: str, manager_id: uuid.UUID | None = None) -> DepartmentRead:
        trimmed = name.strip()
        if not trimmed:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Department name is required")
        if self._find_by_name(session, trimmed) is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Department with this name already exists")

        department = Department(name=trimmed, manager_id=manager_id)
        session.add(department)
        session.commit()
        session.refresh(department)
        item = self._to_read(department)

        if manager_id is not None:
            self._link_manager(session, department.id, manager_id)
        return item

    def create_department(self, session: Session, actor_user: ActorUser, dto: DepartmentCreate) -> DepartmentRead:
        if actor_user.role is not Role.SUPER:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only super can create departments")
        item = self.create(session, dto.name, dto.manager_id)
        audit.record(
            actor_user,
            self.entity_type,
            item.id,
            "create",
            after=item.model_dump(mode="json"),
        )
        if item.manager_id is not None:
            self._publish_manager_changed(actor_user, item.id, None, item.manager_id)
        return item

    def list_all(self, session: Session) -> list[DepartmentRead]:
        departments = session.scalars(select(Department).order_by(Department.created_at.asc())).all()
        return [self._to_read(item) for item in departments]

    def list_managed_by(self, session: Session, user_id: uuid.UUID) -> list[DepartmentRead]:
        departments = session.scalars(
            select(Department).where(Department.manager_id == user_id).order_by(Department.created_at.asc())
        ).all()
        return [self._to_read(item) for item in departments]

    def list_departments(self, session: Session, actor_user: ActorUser) -> list[DepartmentRead]:
        if actor_user.role in GLOBAL_READ_ROLES:
            return self.list_all(session)
        if actor_user.role is Role.MANAGER:
            return self.list_managed_by(session, actor_user.user_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")

    def get(self, session: Session, department_id: uuid.UUID) -> Department | None:
        return session.get(Department, department_id)

    def require(self, session: Session, department_id: uuid.UUID) -> Department:
        department = self.get(session, department_id)
        if department is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")
        return department

    def get_detail(self, session: Session, department_id: uuid.UUID) -> DepartmentDetail | None:
        department = self.get(session, department_id)
        if department is None:
            return None

        manager = user_service.find_by_id(session, department.manager_id) if department.manager_id else None
        if manager is not None and manager.department_id != department.id:
            # Repair-on-read: the manager link is written on both rows without a shared transaction.
            # A dangling manager_id has no user row to repair.
            self._link_manager(session, department.id, department.manager_id, step="repair_on_read")
            manager = user_service.find_by_id(session, department.manager_id)

        employees = user_service.list_by_department(session, department.id)
        statuses_count = session.scalar(
            select(func.count()).select_from(Status).where(Status.department_id == department.id)
        )
        sites_count = session.scalar(select(func.count()).select_from(Site).where(Site.department_id == department.id))
        return DepartmentDetail(
            **self._to_read(department).model_dump(),
            manager=UserRead.model_validate(manager) if manager is not None else None,
            employees=[UserRead.model_validate(item) for item in employees],
            employees_count=len(employees),
            statuses_count=int(statuses_count or 0),
            sites_count=int(sites_count or 0),
        )

    def get_department(self, session: Session, actor_user: ActorUser, department_id: uuid.UUID) -> DepartmentDetail:
        detail = self.get_detail(session, department_id)
        if detail is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")
        if actor_user.role in GLOBAL_READ_ROLES:
            return detail
        if actor_user.role is Role.MANAGER and detail.manager_id == actor_user.user_id:
            return detail
        if actor_user.role is Role.EMPLOYEE and user_service.department_of(session, actor_user.user_id) == department_id:
            return detail
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this department")

    def update(self, session: Session, department_id: uuid.UUID, patch: dict[str, Any]) -> DepartmentRead:
        department = self.require(session, department_id)
        previous_manager_id = department.manager_id
        manager_provided = "manager_id" in patch
        new_manager_id = _coerce_manager_id(patch.get("manager_id")) if manager_provided else previous_manager_id

        if patch.get("name") is not None:
            trimmed = str(patch["name"]).strip()
            existing = self._find_by_name(session, trimmed)
            if existing is not None and existing.id != department.id:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Department with this name already exists",
                )
            department.name = trimmed
        if manager_provided:
            department.manager_id = new_manager_id
        session.commit()
        session.refresh(department)
        item = self._to_read(department)

        if previous_manager_id is not None and previous_manager_id != new_manager_id:
            self._unlink_previous_manager(session, department.id, previous_manager_id)
        if new_manager_id is not None:
            self._link_manager(session, department.id, new_manager_id)
        return item

    def update_department(
        self,
        session: Session,
        actor_user: ActorUser,
        department_id: uuid.UUID,
        dto: DepartmentUpdate,
    ) -> DepartmentRead:
        department = self.require(session, department_id)
        is_manager_of_department = actor_user.role is Role.MANAGER and department.manager_id == actor_user.user_id
        if actor_user.role is not Role.SUPER and not is_manager_of_department:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only super or the department manager can update this department",
            )
        before = self._to_read(department).model_dump(mode="json")
        previous_manager_id = department.manager_id

        item = self.update(session, department_id, dto.model_dump(exclude_unset=True))
        audit.record(
            actor_user,
            self.entity_type,
            item.id,
            "update",
            before=before,
            after=item.model_dump(mode="json"),
        )
        if item.manager_id != previous_manager_id:
            self._publish_manager_changed(actor_user, item.id, previous_manager_id, item.manager_id)
        return item

    def delete(self, session: Session, department_id: uuid.UUID) -> None:
        department = self.require(session, department_id)
        user_service.clear_department_for_users(session, department.id)
        session.delete(department)
        session.commit()

    def delete_department(self, session: Session, actor_user: ActorUser, department_id: uuid.UUID) -> None:
        if actor_user.role is not Role.SUPER:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only super can delete departments")
        department = self.require(session, department_id)
        before = self._to_read(department).model_dump(mode="json")
        self.delete(session, department_id)
        audit.record(
            actor_user,
            self.entity_type,
            department_id,
            "delete",
            before=before,
        )

    def clear_manager(self, session: Session, user_id: uuid.UUID) -> int:
        result = session.execute(update(Department).where(Department.manager_id == user_id).values(manager_id=None))
        session.commit()
        return int(result.rowcount or 0)

    def names_by_id(self, session: Session, department_ids: set[uuid.UUID]) -> dict[uuid.UUID, str]:
        if not department_ids:
            return {}
        rows = session.execute(select(Department.id, Department.name).where(Department.id.in_(department_ids))).all()
        return {row.id: row.name for row in rows}

    def _link_manager(
        self,
        session: Session,
        department_id: uuid.UUID,
        manager_id: uuid.UUID,
        step: str = "link_manager",
    ) -> None:
        try:
            user_service.set_department(session, manager_id, department_id)
        except HTTPException as exc:
            session.rollback()
            observe_department_reconciliation(step, "failed")
            logger.warning(
                "department.manager_link_failed",
                extra={"department_id": str(department_id), "manager_id": str(manager_id), "error": str(exc.detail)},
            )
            return
        observe_department_reconciliation(step, "applied")

    def _unlink_previous_manager(self, session: Session, department_id: uuid.UUID, manager_id: uuid.UUID) -> None:
        try:
            previous = session.get(User, manager_id)
            if previous is None or previous.department_id != department_id:
                observe_department_reconciliation("unlink_previous_manager", "skipped")
                return
            user_service.set_department(session, manager_id, None)
        except HTTPException as exc:
            session.rollback()
            observe_department_reconciliation("unlink_previous_manager", "failed")
            logger.warning(
                "department.manager_unlink_failed",
                extra={"department_id": str(department_id), "manager_id": str(manager_id), "error": str(exc.detail)},
            )
            return
        observe_department_reconciliation("unlink_previous_manager", "applied")

    def _publish_manager_changed(
        self,
        actor_user: ActorUser,
        department_id: uuid.UUID,
        previous_manager_id: uuid.UUID | None,
        manager_id: uuid.UUID | None,
    ) -> None:
        events.emit(
            "department.manager_changed",
            actor_user.user_id,
            {
                "department_id": str(department_id),
                "previous_manager_id": str(previous_manager_id) if previous_manager_id else None,
                "manager_id": str(manager_id) if manager_id else None,
            },
        )

    def _find_by_name(self, session: Session, name: str) -> Department | None:
        return session.scalar(select(Department).where(Department.name == name))

    def _to_read(self, department: Department) -> DepartmentRead:
        return DepartmentRead.model_validate(department)


def _coerce_manager_id(value: Any) -> uuid.UUID | None:
    if value is None or value == "":
        return None
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value).strip())


department_service = DepartmentService()
