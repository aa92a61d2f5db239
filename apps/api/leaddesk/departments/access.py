from __future__ import annotations

import uuid
from dataclasses import dataclass

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from leaddesk.core.auth import ActorUser
from leaddesk.core.policy import (
    GLOBAL_READ_ROLES,
    Role,
    can_create_in_department,
    can_edit_lead,
    can_manage_department,
    can_view_department,
)
from leaddesk.departments.models import Department
from leaddesk.users.models import User


@dataclass(frozen=True)
class DepartmentRelation:
    department_id: uuid.UUID
    manager_id: uuid.UUID | None
    actor_department_id: uuid.UUID | None


class DepartmentAccess:
    """Resolves the actor's relationship to a department from storage on every call.

    Nothing is cached, so a manager reassignment or a membership change is
    visible to the very next authorization check.
    """

    def relation(self, session: Session, actor_user: ActorUser, department_id: uuid.UUID) -> DepartmentRelation:
        manager_id = session.scalar(select(Department.manager_id).where(Department.id == department_id))
        actor_department_id = session.scalar(select(User.department_id).where(User.id == actor_user.user_id))
        return DepartmentRelation(
            department_id=department_id,
            manager_id=manager_id,
            actor_department_id=actor_department_id,
        )

    def can_manage(self, session: Session, actor_user: ActorUser, department_id: uuid.UUID) -> bool:
        if actor_user.role is Role.SUPER:
            return True
        relation = self.relation(session, actor_user, department_id)
        return can_manage_department(actor_user.role, actor_user.user_id, relation.manager_id)

    def can_view(self, session: Session, actor_user: ActorUser, department_id: uuid.UUID) -> bool:
        if actor_user.role in GLOBAL_READ_ROLES:
            return True
        relation = self.relation(session, actor_user, department_id)
        return can_view_department(
            actor_user.role,
            actor_user.user_id,
            department_id,
            relation.manager_id,
            relation.actor_department_id,
        )

    def can_create_in(self, session: Session, actor_user: ActorUser, department_id: uuid.UUID) -> bool:
        relation = self.relation(session, actor_user, department_id)
        return can_create_in_department(
            actor_user.role,
            actor_user.user_id,
            department_id,
            relation.manager_id,
            relation.actor_department_id,
        )

    def can_edit_lead(self, session: Session, actor_user: ActorUser, department_id: uuid.UUID) -> bool:
        relation = self.relation(session, actor_user, department_id)
        return can_edit_lead(
            actor_user.role,
            actor_user.user_id,
            department_id,
            relation.manager_id,
            relation.actor_department_id,
        )

    def require_manage(
        self,
        session: Session,
        actor_user: ActorUser,
        department_id: uuid.UUID,
        detail: str = "Only super or the department manager can do this",
    ) -> None:
        if not self.can_manage(session, actor_user, department_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

    def require_view(
        self,
        session: Session,
        actor_user: ActorUser,
        department_id: uuid.UUID,
        detail: str = "Access denied to this department",
    ) -> None:
        if not self.can_view(session, actor_user, department_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

    def manages_exactly(self, session: Session, actor_user: ActorUser, department_id: uuid.UUID) -> bool:
        manager_id = session.scalar(select(Department.manager_id).where(Department.id == department_id))
        return manager_id is not None and manager_id == actor_user.user_id

    def allowed_department_ids(self, session: Session, actor_user: ActorUser) -> list[uuid.UUID]:
        if actor_user.role in GLOBAL_READ_ROLES:
            return list(session.scalars(select(Department.id)).all())
        if actor_user.role is Role.MANAGER:
            return list(session.scalars(select(Department.id).where(Department.manager_id == actor_user.user_id)).all())
        own_department_id = session.scalar(select(User.department_id).where(User.id == actor_user.user_id))
        return [own_department_id] if own_department_id is not None else []

    def allowed_assignee_ids(self, session: Session, department_id: uuid.UUID) -> set[uuid.UUID]:
        allowed = set(session.scalars(select(User.id).where(User.department_id == department_id)).all())
        manager_id = session.scalar(select(Department.manager_id).where(Department.id == department_id))
        if manager_id is not None:
            allowed.add(manager_id)
        return allowed


department_access = DepartmentAccess()
