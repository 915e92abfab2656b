"""
Task Routes - Scheduled Task Management

Create, inspect, edit, pause/resume and delete the current user's tasks.
"""

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import delete, select

from gitfarm.api.deps import CurrentUser, DbSession
from gitfarm.core.runner.schedule import next_run_after
from gitfarm.db.models import Task, TaskLog
from gitfarm.schemas.task import (
    TaskCreate,
    TaskDetailResponse,
    TaskListResponse,
    TaskLogResponse,
    TaskResponse,
    TaskUpdate,
)

router = APIRouter()

RECENT_LOGS = 30


async def _get_owned_task(db: DbSession, task_id: UUID, user: CurrentUser) -> Task:
    task = await db.get(Task, task_id)
    if task is None or task.user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Task not found",
        )
    return task


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(task_data: TaskCreate, db: DbSession, user: CurrentUser) -> TaskResponse:
    """Create an active task; its first run is the next fire time of its schedule."""
    task = Task(
        user_id=user.id,
        name=task_data.name,
        repositories=[repo.model_dump() for repo in task_data.repositories],
        distribution=task_data.distribution.value,
        schedule=task_data.schedule,
        credit_limit=task_data.credit_limit,
        credits_used=0,
        active=True,
        next_run_at=next_run_after(task_data.schedule, datetime.now(timezone.utc)),
    )
    db.add(task)
    await db.commit()
    await db.refresh(task)
    return TaskResponse.model_validate(task)


@router.get("", response_model=TaskListResponse)
async def list_tasks(db: DbSession, user: CurrentUser) -> TaskListResponse:
    result = await db.execute(
        select(Task).where(Task.user_id == user.id).order_by(Task.created_at.desc())
    )
    tasks = result.scalars().all()
    return TaskListResponse(
        tasks=[TaskResponse.model_validate(task) for task in tasks],
        total=len(tasks),
    )


@router.get("/{task_id}", response_model=TaskDetailResponse)
async def get_task(task_id: UUID, db: DbSession, user: CurrentUser) -> TaskDetailResponse:
    """Task details with its most recent log entries."""
    task = await _get_owned_task(db, task_id, user)
    result = await db.execute(
        select(TaskLog)
        .where(TaskLog.task_id == task.id)
        .order_by(TaskLog.timestamp.desc())
        .limit(RECENT_LOGS)
    )
    logs = [TaskLogResponse.model_validate(log) for log in result.scalars().all()]
    return TaskDetailResponse(**TaskResponse.model_validate(task).model_dump(), logs=logs)


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: UUID,
    task_update: TaskUpdate,
    db: DbSession,
    user: CurrentUser,
) -> TaskResponse:
    task = await _get_owned_task(db, task_id, user)
    changes = task_update.model_dump(exclude_unset=True)

    if changes.get("name") is not None:
        task.name = changes["name"]
    if changes.get("repositories") is not None:
        task.repositories = [repo.model_dump() for repo in task_update.repositories]
    if changes.get("distribution") is not None:
        task.distribution = task_update.distribution.value
    if changes.get("schedule") is not None:
        task.schedule = changes["schedule"]
        task.next_run_at = next_run_after(task.schedule, datetime.now(timezone.utc))
    if "credit_limit" in changes:
        task.credit_limit = changes["credit_limit"]

    await db.commit()
    await db.refresh(task)
    return TaskResponse.model_validate(task)


@router.post("/{task_id}/toggle", response_model=TaskResponse)
async def toggle_task(task_id: UUID, db: DbSession, user: CurrentUser) -> TaskResponse:
    """Pause an active task or resume a paused one."""
    task = await _get_owned_task(db, task_id, user)
    task.active = not task.active
    if task.active:
        task.next_run_at = next_run_after(task.schedule, datetime.now(timezone.utc))
    await db.commit()
    await db.refresh(task)
    return TaskResponse.model_validate(task)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(task_id: UUID, db: DbSession, user: CurrentUser) -> None:
    task = await _get_owned_task(db, task_id, user)
    await db.execute(delete(TaskLog).where(TaskLog.task_id == task.id))
    await db.delete(task)
    await db.commit()

