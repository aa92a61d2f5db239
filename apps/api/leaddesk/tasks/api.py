from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from leaddesk.core.auth import ActorUser
from leaddesk.core.database import get_db
from leaddesk.core.policy import Role
from leaddesk.core.rbac import require_roles
from leaddesk.core.responses import Envelope, MessageRead, deleted, ok
from leaddesk.tasks.schemas import (
    BoardTaskCreate,
    BoardTaskRead,
    BoardTaskUpdate,
    ReorderTasksRequest,
    TaskPriorityCreate,
    TaskPriorityRead,
    TaskPriorityUpdate,
    TaskStatusCreate,
    TaskStatusRead,
    TaskStatusUpdate,
)
from leaddesk.tasks.service import board_task_service, task_priority_service, task_status_service

tasks_router = APIRouter(prefix="/api/tasks", tags=["tasks"])
task_statuses_router = APIRouter(prefix="/api/task-statuses", tags=["tasks"])
task_priorities_router = APIRouter(prefix="/api/task-priorities", tags=["tasks"])

board_actor = require_roles(Role.SUPER)


def _required_department(department_id: uuid.UUID | None) -> uuid.UUID:
    if department_id is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="department_id is required")
    return department_id


@task_statuses_router.post("", response_model=Envelope[TaskStatusRead], status_code=status.HTTP_201_CREATED)
def create_task_status(
    dto: TaskStatusCreate,
    db: Session = Depends(get_db),
    _: ActorUser = Depends(board_actor),
) -> dict[str, Any]:
    return ok(task_status_service.create(db, dto), status.HTTP_201_CREATED)


@task_statuses_router.get("", response_model=Envelope[list[TaskStatusRead]])
def list_task_statuses(
    department_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    _: ActorUser = Depends(board_actor),
) -> dict[str, Any]:
    return ok(task_status_service.list_by_department(db, _required_department(department_id)))


@task_statuses_router.get("/{status_id}", response_model=Envelope[TaskStatusRead])
def get_task_status(
    status_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: ActorUser = Depends(board_actor),
) -> dict[str, Any]:
    return ok(task_status_service.get(db, status_id))


@task_statuses_router.patch("/{status_id}", response_model=Envelope[TaskStatusRead])
def update_task_status(
    status_id: uuid.UUID,
    dto: TaskStatusUpdate,
    db: Session = Depends(get_db),
    _: ActorUser = Depends(board_actor),
) -> dict[str, Any]:
    return ok(task_status_service.update(db, status_id, dto))


@task_statuses_router.delete("/{status_id}", response_model=Envelope[MessageRead])
def delete_task_status(
    status_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: ActorUser = Depends(board_actor),
) -> dict[str, Any]:
    task_status_service.delete(db, status_id)
    return deleted("Task status")


@task_priorities_router.post("", response_model=Envelope[TaskPriorityRead], status_code=status.HTTP_201_CREATED)
def create_task_priority(
    dto: TaskPriorityCreate,
    db: Session = Depends(get_db),
    _: ActorUser = Depends(board_actor),
) -> dict[str, Any]:
    return ok(task_priority_service.create(db, dto), status.HTTP_201_CREATED)


@task_priorities_router.get("", response_model=Envelope[list[TaskPriorityRead]])
def list_task_priorities(
    department_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    _: ActorUser = Depends(board_actor),
) -> dict[str, Any]:
    return ok(task_priority_service.list_by_department(db, _required_department(department_id)))


@task_priorities_router.get("/{priority_id}", response_model=Envelope[TaskPriorityRead])
def get_task_priority(
    priority_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: ActorUser = Depends(board_actor),
) -> dict[str, Any]:
    return ok(task_priority_service.get(db, priority_id))


@task_priorities_router.patch("/{priority_id}", response_model=Envelope[TaskPriorityRead])
def update_task_priority(
    priority_id: uuid.UUID,
    dto: TaskPriorityUpdate,
    db: Session = Depends(get_db),
    _: ActorUser = Depends(board_actor),
) -> dict[str, Any]:
    return ok(task_priority_service.update(db, priority_id, dto))


@task_priorities_router.delete("/{priority_id}", response_model=Envelope[MessageRead])
def delete_task_priority(
    priority_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: ActorUser = Depends(board_actor),
) -> dict[str, Any]:
    task_priority_service.delete(db, priority_id)
    return deleted("Task priority")


@tasks_router.post("", response_model=Envelope[BoardTaskRead], status_code=status.HTTP_201_CREATED)
def create_task(
    dto: BoardTaskCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(board_actor),
) -> dict[str, Any]:
    return ok(board_task_service.create(db, user, dto), status.HTTP_201_CREATED)


@tasks_router.post("/reorder", response_model=Envelope[MessageRead])
def reorder_tasks(
    dto: ReorderTasksRequest,
    department_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    _: ActorUser = Depends(board_actor),
) -> dict[str, Any]:
    board_task_service.reorder(db, _required_department(department_id), dto.status_id or None, dto.task_ids)
    return ok(MessageRead(message="OK"))


@tasks_router.get("", response_model=Envelope[list[BoardTaskRead]])
def list_tasks(
    department_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    _: ActorUser = Depends(board_actor),
) -> dict[str, Any]:
    return ok(board_task_service.list_by_department(db, _required_department(department_id)))


@tasks_router.get("/{task_id}", response_model=Envelope[BoardTaskRead])
def get_task(
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: ActorUser = Depends(board_actor),
) -> dict[str, Any]:
    return ok(board_task_service.get(db, task_id))


@tasks_router.patch("/{task_id}", response_model=Envelope[BoardTaskRead])
def update_task(
    task_id: uuid.UUID,
    dto: BoardTaskUpdate,
    db: Session = Depends(get_db),
    _: ActorUser = Depends(board_actor),
) -> dict[str, Any]:
    return ok(board_task_service.update(db, task_id, dto))


@tasks_router.delete("/{task_id}", response_model=Envelope[MessageRead])
def delete_task(
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: ActorUser = Depends(board_actor),
) -> dict[str, Any]:
    board_task_service.delete(db, task_id)
    return deleted("Task")
