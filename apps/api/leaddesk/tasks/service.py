from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from leaddesk.core.auth import ActorUser
from leaddesk.departments.models import Department
from leaddesk.tasks.models import DEFAULT_BOARD_COLOR, BoardTask, TaskPriority, TaskStatus
from leaddesk.tasks.schemas import (
    BoardTaskCreate,
    BoardTaskRead,
    BoardTaskUpdate,
    TaskPriorityCreate,
    TaskPriorityRead,
    TaskPriorityUpdate,
    TaskStatusCreate,
    TaskStatusRead,
    TaskStatusUpdate,
)
from leaddesk.users.service import user_service

logger = logging.getLogger("leaddesk.tasks")


def _require_department(session: Session, department_id: uuid.UUID) -> None:
    if session.get(Department, department_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")


def _next_order(session: Session, model: Any, *conditions: Any) -> int:
    last_order = session.scalar(select(func.max(model.order)).where(*conditions))
    return last_order + 1 if last_order is not None else 0


def _blank_to_none(value: Any) -> Any:
    return None if value == "" else value


class TaskStatusService:
    def create(self, session: Session, dto: TaskStatusCreate) -> TaskStatusRead:
        _require_department(session, dto.department_id)
        item = TaskStatus(
            name=dto.name.strip(),
            color=(dto.color or DEFAULT_BOARD_COLOR).strip(),
            is_completed=dto.is_completed,
            department_id=dto.department_id,
            order=_next_order(session, TaskStatus, TaskStatus.department_id == dto.department_id),
        )
        session.add(item)
        session.commit()
        session.refresh(item)
        return TaskStatusRead.model_validate(item)

    def list_by_department(self, session: Session, department_id: uuid.UUID) -> list[TaskStatusRead]:
        rows = session.scalars(
            select(TaskStatus)
            .where(TaskStatus.department_id == department_id)
            .order_by(TaskStatus.order.asc(), TaskStatus.created_at.asc())
        ).all()
        return [TaskStatusRead.model_validate(row) for row in rows]

    def get(self, session: Session, status_id: uuid.UUID) -> TaskStatusRead:
        return TaskStatusRead.model_validate(self._require(session, status_id))

    def update(self, session: Session, status_id: uuid.UUID, dto: TaskStatusUpdate) -> TaskStatusRead:
        item = self._require(session, status_id)
        if dto.name is not None:
            item.name = dto.name.strip()
        if dto.color is not None:
            item.color = dto.color.strip()
        if dto.is_completed is not None:
            item.is_completed = dto.is_completed
        session.commit()
        session.refresh(item)
        return TaskStatusRead.model_validate(item)

    def delete(self, session: Session, status_id: uuid.UUID) -> None:
        session.delete(self._require(session, status_id))
        session.commit()

    def _require(self, session: Session, status_id: uuid.UUID) -> TaskStatus:
        item = session.get(TaskStatus, status_id)
        if item is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task status not found")
        return item


class TaskPriorityService:
    def create(self, session: Session, dto: TaskPriorityCreate) -> TaskPriorityRead:
        _require_department(session, dto.department_id)
        item = TaskPriority(
            name=dto.name.strip(),
            color=(dto.color or DEFAULT_BOARD_COLOR).strip(),
            department_id=dto.department_id,
            order=_next_order(session, TaskPriority, TaskPriority.department_id == dto.department_id),
        )
        session.add(item)
        session.commit()
        session.refresh(item)
        return TaskPriorityRead.model_validate(item)

    def list_by_department(self, session: Session, department_id: uuid.UUID) -> list[TaskPriorityRead]:
        rows = session.scalars(
            select(TaskPriority)
            .where(TaskPriority.department_id == department_id)
            .order_by(TaskPriority.order.asc(), TaskPriority.created_at.asc())
        ).all()
        return [TaskPriorityRead.model_validate(row) for row in rows]

    def get(self, session: Session, priority_id: uuid.UUID) -> TaskPriorityRead:
        return TaskPriorityRead.model_validate(self._require(session, priority_id))

    def update(self, session: Session, priority_id: uuid.UUID, dto: TaskPriorityUpdate) -> TaskPriorityRead:
        item = self._require(session, priority_id)
        if dto.name is not None:
            item.name = dto.name.strip()
        if dto.color is not None:
            item.color = dto.color.strip()
        session.commit()
        session.refresh(item)
        return TaskPriorityRead.model_validate(item)

    def delete(self, session: Session, priority_id: uuid.UUID) -> None:
        session.delete(self._require(session, priority_id))
        session.commit()

    def _require(self, session: Session, priority_id: uuid.UUID) -> TaskPriority:
        item = session.get(TaskPriority, priority_id)
        if item is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task priority not found")
        return item


class BoardTaskService:
    def create(self, session: Session, actor_user: ActorUser, dto: BoardTaskCreate) -> BoardTaskRead:
        _require_department(session, dto.department_id)
        if dto.status_id is not None:
            self._require_column(session, dto.status_id, dto.department_id)
        if dto.priority_id is not None:
            self._require_priority(session, dto.priority_id, dto.department_id)

        task = BoardTask(
            title=dto.title.strip(),
            description=(dto.description or "").strip(),
            department_id=dto.department_id,
            status_id=dto.status_id,
            priority_id=dto.priority_id,
            assignee_id=dto.assignee_id,
            due_at=dto.due_at,
            order=self._column_tail(session, dto.department_id, dto.status_id),
            created_by=actor_user.user_id,
        )
        session.add(task)
        session.commit()
        session.refresh(task)
        logger.info(
            "task.created",
            extra={"department_id": str(task.department_id), "user_id": str(actor_user.user_id)},
        )
        return self._enrich(session, [task])[0]

    def list_by_department(self, session: Session, department_id: uuid.UUID) -> list[BoardTaskRead]:
        rows = session.scalars(
            select(BoardTask)
            .where(BoardTask.department_id == department_id)
            .order_by(BoardTask.status_id.asc(), BoardTask.order.asc(), BoardTask.created_at.desc())
        ).all()
        return self._enrich(session, rows)

    def get(self, session: Session, task_id: uuid.UUID) -> BoardTaskRead:
        return self._enrich(session, [self._require(session, task_id)])[0]

    def update(self, session: Session, task_id: uuid.UUID, dto: BoardTaskUpdate) -> BoardTaskRead:
        task = self._require(session, task_id)
        provided = dto.model_dump(exclude_unset=True)

        if dto.title is not None:
            task.title = dto.title.strip()
        if dto.description is not None:
            task.description = dto.description.strip()
        if "status_id" in provided:
            new_status_id = _blank_to_none(dto.status_id)
            if new_status_id is not None:
                self._require_column(session, new_status_id, task.department_id)
            task.status_id = new_status_id
            # Moving between columns re-appends the task to the end of the target column.
            task.order = self._column_tail(session, task.department_id, new_status_id, exclude_id=task.id)
        if "priority_id" in provided:
            new_priority_id = _blank_to_none(dto.priority_id)
            if new_priority_id is not None:
                self._require_priority(session, new_priority_id, task.department_id)
            task.priority_id = new_priority_id
        if "assignee_id" in provided:
            task.assignee_id = _blank_to_none(dto.assignee_id)
        if "due_at" in provided:
            task.due_at = _blank_to_none(dto.due_at)

        session.commit()
        session.refresh(task)
        return self._enrich(session, [task])[0]

    def delete(self, session: Session, task_id: uuid.UUID) -> None:
        session.delete(self._require(session, task_id))
        session.commit()

    def reorder(
        self,
        session: Session,
        department_id: uuid.UUID,
        status_id: uuid.UUID | None,
        task_ids: list[uuid.UUID],
    ) -> int:
        if not task_ids:
            return 0
        tasks = session.scalars(
            select(BoardTask).where(BoardTask.id.in_(task_ids), BoardTask.department_id == department_id)
        ).all()
        by_id = {task.id: task for task in tasks}
        moved = 0
        for position, task_id in enumerate(task_ids):
            task = by_id.get(task_id)
            if task is None or task.status_id != status_id:
                continue
            task.order = position
            moved += 1
        session.commit()
        return moved

    def _column_tail(
        self,
        session: Session,
        department_id: uuid.UUID,
        status_id: uuid.UUID | None,
        exclude_id: uuid.UUID | None = None,
    ) -> int:
        conditions = [BoardTask.department_id == department_id]
        conditions.append(BoardTask.status_id.is_(None) if status_id is None else BoardTask.status_id == status_id)
        if exclude_id is not None:
            conditions.append(BoardTask.id != exclude_id)
        return _next_order(session, BoardTask, *conditions)

    def _require_column(self, session: Session, status_id: uuid.UUID, department_id: uuid.UUID) -> None:
        column = session.get(TaskStatus, status_id)
        if column is None or column.department_id != department_id:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Column not found or does not belong to this department",
            )

    def _require_priority(self, session: Session, priority_id: uuid.UUID, department_id: uuid.UUID) -> None:
        priority = session.get(TaskPriority, priority_id)
        if priority is None or priority.department_id != department_id:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Priority not found or does not belong to this department",
            )

    def _require(self, session: Session, task_id: uuid.UUID) -> BoardTask:
        task = session.get(BoardTask, task_id)
        if task is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
        return task

    def _enrich(self, session: Session, tasks: Any) -> list[BoardTaskRead]:
        tasks = list(tasks)
        status_ids = {task.status_id for task in tasks if task.status_id is not None}
        priority_ids = {task.priority_id for task in tasks if task.priority_id is not None}
        columns = (
            {row.id: row for row in session.scalars(select(TaskStatus).where(TaskStatus.id.in_(status_ids))).all()}
            if status_ids
            else {}
        )
        priorities = (
            {
                row.id: row
                for row in session.scalars(select(TaskPriority).where(TaskPriority.id.in_(priority_ids))).all()
            }
            if priority_ids
            else {}
        )
        names = user_service.display_names(session, {task.assignee_id for task in tasks if task.assignee_id})

        items: list[BoardTaskRead] = []
        for task in tasks:
            column = columns.get(task.status_id) if task.status_id else None
            priority = priorities.get(task.priority_id) if task.priority_id else None
            items.append(
                BoardTaskRead.model_validate(task).model_copy(
                    update={
                        "status_name": column.name if column else None,
                        "status_color": column.color if column else None,
                        "priority_name": priority.name if priority else None,
                        "priority_color": priority.color if priority else None,
                        "assignee_name": names.get(task.assignee_id) if task.assignee_id else None,
                    }
                )
            )
        return items


task_status_service = TaskStatusService()
task_priority_service = TaskPriorityService()
board_task_service = BoardTaskService()
