from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from leaddesk.core.auth import ActorUser, get_current_user
from leaddesk.core.database import get_db
from leaddesk.core.responses import Envelope, MessageRead, deleted, ok
from leaddesk.statuses.schemas import StatusCreate, StatusRead, StatusUpdate
from leaddesk.statuses.service import status_service

router = APIRouter(prefix="/api/statuses", tags=["statuses"])


@router.post("", response_model=Envelope[StatusRead], status_code=status.HTTP_201_CREATED)
def create_status(
    dto: StatusCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(status_service.create_status(db, user, dto), status.HTTP_201_CREATED)


@router.get("", response_model=Envelope[list[StatusRead]])
def list_statuses(
    department_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(status_service.list_statuses(db, user, department_id))


@router.get("/{status_id}", response_model=Envelope[StatusRead])
def get_status(
    status_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(status_service.get_status(db, user, status_id))


@router.patch("/{status_id}", response_model=Envelope[StatusRead])
def update_status(
    status_id: uuid.UUID,
    dto: StatusUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(status_service.update_status(db, user, status_id, dto))


@router.delete("/{status_id}", response_model=Envelope[MessageRead])
def delete_status(
    status_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    status_service.delete_status(db, user, status_id)
    return deleted("Status")
