from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from leaddesk import audit
from leaddesk.core.auth import ActorUser, get_current_user
from leaddesk.core.database import get_db
from leaddesk.core.responses import Envelope, MessageRead, deleted, ok
from leaddesk.departments.service import department_service
from leaddesk.leads.reporting import lead_reporting_service
from leaddesk.leads.schemas import LeadPage, UserLeadStats
from leaddesk.leads.service import lead_service
from leaddesk.users.schemas import UserCreate, UserRead, UserUpdate
from leaddesk.users.service import user_service

router = APIRouter(prefix="/api/users", tags=["users"])


@router.post("", response_model=Envelope[UserRead], status_code=status.HTTP_201_CREATED)
def create_user(
    dto: UserCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(user_service.create_user(db, user, dto), status.HTTP_201_CREATED)


@router.get("", response_model=Envelope[list[UserRead]])
def list_users(db: Session = Depends(get_db), user: ActorUser = Depends(get_current_user)) -> dict[str, Any]:
    return ok(user_service.list_users(db, user))


@router.get("/{user_id}/leads", response_model=Envelope[LeadPage])
def list_user_leads(
    user_id: uuid.UUID,
    skip: int = Query(default=0),
    limit: int = Query(default=25),
    name: str | None = Query(default=None),
    phone: str | None = Query(default=None),
    email: str | None = Query(default=None),
    status_id: uuid.UUID | None = Query(default=None),
    department_id: uuid.UUID | None = Query(default=None),
    sort_by: str | None = Query(default=None),
    sort_order: str | None = Query(default=None),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(
        lead_reporting_service.user_leads(
            db,
            user,
            user_id,
            skip=skip,
            limit=limit,
            name=name,
            phone=phone,
            email=email,
            status_id=status_id,
            department_id=department_id,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    )


@router.get("/{user_id}/lead-stats", response_model=Envelope[UserLeadStats])
def user_lead_stats(
    user_id: uuid.UUID,
    days: int = Query(default=14),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(lead_reporting_service.user_stats(db, user, user_id, days))


@router.get("/{user_id}", response_model=Envelope[UserRead])
def get_user(
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(user_service.get_user(db, user, user_id))


@router.patch("/{user_id}", response_model=Envelope[UserRead])
def update_user(
    user_id: uuid.UUID,
    dto: UserUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(user_service.update_user(db, user, user_id, dto))


@router.delete("/{user_id}", response_model=Envelope[MessageRead])
def delete_user(
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    target = user_service.authorize_delete(db, user, user_id)
    before = UserRead.model_validate(target).model_dump(mode="json")
    department_service.clear_manager(db, user_id)
    lead_service.remove_assignee_everywhere(db, user_id)
    user_service.delete(db, user_id)
    audit.record(
        user,
        user_service.entity_type,
        user_id,
        "delete",
        before=before,
    )
    return deleted("User")
