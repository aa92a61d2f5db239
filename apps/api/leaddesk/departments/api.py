from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from leaddesk.core.auth import ActorUser, get_current_user
from leaddesk.core.database import get_db
from leaddesk.core.responses import Envelope, MessageRead, deleted, ok
from leaddesk.departments.schemas import DepartmentCreate, DepartmentDetail, DepartmentRead, DepartmentUpdate
from leaddesk.departments.service import department_service

router = APIRouter(prefix="/api/departments", tags=["departments"])


@router.post("", response_model=Envelope[DepartmentRead], status_code=status.HTTP_201_CREATED)
def create_department(
    dto: DepartmentCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(department_service.create_department(db, user, dto), status.HTTP_201_CREATED)


@router.get("", response_model=Envelope[list[DepartmentRead]])
def list_departments(db: Session = Depends(get_db), user: ActorUser = Depends(get_current_user)) -> dict[str, Any]:
    return ok(department_service.list_departments(db, user))


@router.get("/{department_id}", response_model=Envelope[DepartmentDetail])
def get_department(
    department_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(department_service.get_department(db, user, department_id))


@router.patch("/{department_id}", response_model=Envelope[DepartmentRead])
def update_department(
    department_id: uuid.UUID,
    dto: DepartmentUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    return ok(department_service.update_department(db, user, department_id, dto))


@router.delete("/{department_id}", response_model=Envelope[MessageRead])
def delete_department(
    department_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, Any]:
    department_service.delete_department(db, user, department_id)
    return deleted("Department")
