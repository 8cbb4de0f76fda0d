# =============================================================================
# app/routers/tasks.py - Task CRUD Endpoints
# =============================================================================
# The signed-in user's task list. All endpoints require authentication.
#
# update / toggle / delete on a task that no longer exists succeed with
# `applied: false` instead of failing.
# =============================================================================

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from app.dependencies import CurrentUser, TaskServiceDep
from core.models.task import (
    TaskCreate,
    TaskFilter,
    TaskList,
    TaskMutationResponse,
    TaskResponse,
    TaskUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Endpoints
# =============================================================================

@router.get("", response_model=TaskList)
async def list_tasks(
    user: CurrentUser,
    tasks: TaskServiceDep,
    filter: Annotated[TaskFilter, Query(description="all, active or completed")] = TaskFilter.ALL,
):
    """
    List the current user's tasks, newest first.

    For live updates, connect to the /ws/tasks stream instead of polling.
    """
    rows = tasks.list_tasks(user.id, filter)
    return TaskList(
        tasks=[TaskResponse(**row) for row in rows],
        filter=filter,
        total=len(rows),
    )


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    body: TaskCreate,
    user: CurrentUser,
    tasks: TaskServiceDep,
):
    """
    Create a task.

    New tasks start incomplete; the creation time is assigned by the server.
    """
    row = tasks.create(user.id, body.title, body.description)
    return TaskResponse(**row)


@router.patch("/{task_id}", response_model=TaskMutationResponse)
async def update_task(
    task_id: Annotated[UUID, Path(description="Task UUID")],
    body: TaskUpdate,
    user: CurrentUser,
    tasks: TaskServiceDep,
):
    """Edit a task's title and description. Completion is left unchanged."""
    row = tasks.update(user.id, task_id, body.title, body.description)
    return TaskMutationResponse(
        task_id=task_id,
        applied=row is not None,
        task=TaskResponse(**row) if row else None,
    )


@router.post("/{task_id}/toggle", response_model=TaskMutationResponse)
async def toggle_task(
    task_id: Annotated[UUID, Path(description="Task UUID")],
    user: CurrentUser,
    tasks: TaskServiceDep,
):
    """Flip a task between active and completed."""
    row = tasks.toggle_complete(user.id, task_id)
    return TaskMutationResponse(
        task_id=task_id,
        applied=row is not None,
        task=TaskResponse(**row) if row else None,
    )


@router.delete("/{task_id}", response_model=TaskMutationResponse)
async def delete_task(
    task_id: Annotated[UUID, Path(description="Task UUID")],
    user: CurrentUser,
    tasks: TaskServiceDep,
):
    """
    Delete a task.

    Idempotent: deleting a task that is already gone returns `applied: false`.
    """
    deleted = tasks.delete(user.id, task_id)
    return TaskMutationResponse(task_id=task_id, applied=deleted)
