from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from leaddesk import audit, events
from leaddesk.core.auth import ActorUser
from leaddesk.core.database import utcnow
from leaddesk.core.policy import Role, can_create_role, may_list_users, outranks_for_edit
from leaddesk.core.security import hash_password
from leaddesk.users.models import User
from leaddesk.users.schemas import UserCreate, UserRead, UserUpdate

logger = logging.getLogger("leaddesk.users")

_SELF_EDITABLE_FIELDS = ("email", "password", "first_name", "last_name", "phone", "is_active")


def normalize_email(value: str) -> str:
    return value.strip().lower()


class UserService:
    entity_type = "user"

    def register(self, session: Session, dto: UserCreate) -> User:
        email = normalize_email(str(dto.email))
        if self.find_by_email(session, email) is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User with this email already exists")

        user = User(
            email=email,
            password_hash=hash_password(dto.password),
            role=Role(dto.role).value,
            first_name=dto.first_name.strip(),
            last_name=dto.last_name.strip(),
            phone=dto.phone.strip(),
            department_id=dto.department_id,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    def create_user(self, session: Session, actor_user: ActorUser, dto: UserCreate) -> UserRead:
        if not can_create_role(actor_user.role, dto.role):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot create a user with this role")

        if actor_user.role is Role.MANAGER:
            manager_department_id = self.department_of(session, actor_user.user_id)
            if manager_department_id is None:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Manager must belong to a department",
                )
            dto = dto.model_copy(update={"department_id": manager_department_id})

        user = self.register(session, dto)
        user_read = self._to_read(user)
        audit.record(
            actor_user,
            self.entity_type,
            user.id,
            "create",
            after=user_read.model_dump(mode="json"),
        )
        events.emit(
            "user.created",
            actor_user.user_id,
            {"user_id": str(user.id), "role": user.role, "department_id": _str_or_none(user.department_id)},
        )
        return user_read

    def find_by_email(self, session: Session, email: str) -> User | None:
        return session.scalar(select(User).where(func.lower(User.email) == normalize_email(email)))

    def find_by_id(self, session: Session, user_id: uuid.UUID) -> User | None:
        return session.get(User, user_id)

    def department_of(self, session: Session, user_id: uuid.UUID) -> uuid.UUID | None:
        return session.scalar(select(User.department_id).where(User.id == user_id))

    def get_user(self, session: Session, actor_user: ActorUser, user_id: uuid.UUID) -> UserRead:
        if actor_user.user_id != user_id and not may_list_users(actor_user.role):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only super and admin can view other users")
        user = self.find_by_id(session, user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        return self._to_read(user)

    def list_users(self, session: Session, actor_user: ActorUser) -> list[UserRead]:
        if not may_list_users(actor_user.role):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only super and admin can list users")
        users = session.scalars(select(User).order_by(User.created_at.asc())).all()
        return [self._to_read(user) for user in users]

    def list_by_department(self, session: Session, department_id: uuid.UUID) -> list[User]:
        return list(
            session.scalars(
                select(User).where(User.department_id == department_id).order_by(User.created_at.asc())
            ).all()
        )

    def update(self, session: Session, user_id: uuid.UUID, patch: dict[str, Any]) -> User:
        user = self.find_by_id(session, user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

        if patch.get("email") is not None:
            email = normalize_email(str(patch["email"]))
            existing = self.find_by_email(session, email)
            if existing is not None and existing.id != user.id:
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User with this email already exists")
            patch["email"] = email
        if patch.get("password") is not None:
            user.password_hash = hash_password(str(patch.pop("password")))
        patch.pop("password", None)
        if patch.get("role") is not None:
            patch["role"] = Role(patch["role"]).value

        for key, value in patch.items():
            if value is None and key != "department_id":
                continue
            if isinstance(value, str) and key != "password_hash":
                value = value.strip()
            setattr(user, key, value)
        session.commit()
        session.refresh(user)
        return user

    def update_user(self, session: Session, actor_user: ActorUser, user_id: uuid.UUID, dto: UserUpdate) -> UserRead:
        payload = dto.model_dump(exclude_unset=True)
        target = self.find_by_id(session, user_id)

        if actor_user.user_id == user_id:
            if dto.role is not None and dto.role is not actor_user.role:
                raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot change your own role")
            payload = {key: value for key, value in payload.items() if key in _SELF_EDITABLE_FIELDS}
        else:
            if not may_list_users(actor_user.role):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Only super and admin can update other users",
                )
            if target is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
            if not outranks_for_edit(actor_user.role, target.role):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="You can only edit users with a lower rank (manager, employee)",
                )
            if dto.role is not None and not can_create_role(actor_user.role, dto.role):
                raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot assign this role")

        before = self._to_read(target).model_dump(mode="json") if target is not None else None
        user = self.update(session, user_id, payload)
        user_read = self._to_read(user)
        audit.record(
            actor_user,
            self.entity_type,
            user.id,
            "update",
            before=before,
            after=user_read.model_dump(mode="json"),
        )
        return user_read

    def update_last_login(self, session: Session, user_id: uuid.UUID) -> None:
        session.execute(update(User).where(User.id == user_id).values(last_login_at=utcnow()))
        session.commit()

    def authorize_delete(self, session: Session, actor_user: ActorUser, user_id: uuid.UUID) -> User:
        if actor_user.user_id == user_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot delete yourself")
        if not may_list_users(actor_user.role):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only super and admin can delete users")
        target = self.find_by_id(session, user_id)
        if target is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        if not outranks_for_edit(actor_user.role, target.role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only delete users with a lower rank (manager, employee)",
            )
        return target

    def delete(self, session: Session, user_id: uuid.UUID) -> None:
        user = self.find_by_id(session, user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        session.delete(user)
        session.commit()

    def clear_department_for_users(self, session: Session, department_id: uuid.UUID) -> int:
        result = session.execute(
            update(User).where(User.department_id == department_id).values(department_id=None)
        )
        session.commit()
        return int(result.rowcount or 0)

    def set_department(self, session: Session, user_id: uuid.UUID, department_id: uuid.UUID | None) -> None:
        self.update(session, user_id, {"department_id": department_id})

    def ensure_super_user(self, session: Session, email: str, password: str) -> User | None:
        if not email or not password:
            return None
        existing = self.find_by_email(session, email)
        if existing is not None:
            return existing
        user = self.register(session, UserCreate(email=email, password=password, role=Role.SUPER))
        logger.info("super_user_bootstrapped", extra={"user_id": str(user.id)})
        return user

    def display_names(self, session: Session, user_ids: set[uuid.UUID]) -> dict[uuid.UUID, str]:
        if not user_ids:
            return {}
        users = session.scalars(select(User).where(User.id.in_(user_ids))).all()
        return {user.id: user.display_name for user in users}

    def _to_read(self, user: User) -> UserRead:
        return UserRead.model_validate(user)


def _str_or_none(value: uuid.UUID | None) -> str | None:
    return str(value) if value is not None else None


user_service = UserService()
