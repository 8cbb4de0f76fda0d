# =============================================================================
# core/models/task.py - Task Schemas
# =============================================================================
# These models define the API contract for task operations:
# - TaskCreate / TaskUpdate: Input for creating and editing a task
# - TaskResponse: A task row as returned to clients
# - TaskFilter: Which tasks a list view shows
#
# A task belongs to exactly one user. `completed` is only ever changed by
# toggling, and `created_at` is assigned by the database.
# =============================================================================

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class TaskFilter(str, Enum):
    """
    List view filters.

    - all: every task
    - active: tasks not yet completed
    - completed: tasks marked done
    """
    ALL = "all"
    ACTIVE = "active"
    COMPLETED = "completed"


class TaskCreate(BaseModel):
    """
    Schema for creating a task.

    Example:
        {
            "title": "Buy milk",
            "description": ""
        }
    """

    title: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Short task title"
    )

    description: str = Field(
        default="",
        max_length=2000,
        description="Optional longer description"
    )


class TaskUpdate(TaskCreate):
    """
    Schema for editing a task.

    Only title and description can be edited; completion is toggled
    separately so an edit never clobbers a concurrent toggle.
    """


class TaskResponse(BaseModel):
    """
    Schema for returning a task to clients.

    Example:
        {
            "id": "550e8400-e29b-41d4-a716-446655440000",
            "user_id": "660e8400-e29b-41d4-a716-446655440001",
            "title": "Buy milk",
            "description": "",
            "completed": false,
            "created_at": "2024-01-15T10:30:00Z"
        }
    """

    id: UUID
    user_id: UUID | None = None
    title: str
    description: str = ""
    completed: bool = False
    created_at: datetime | None = Field(
        default=None,
        description="Server-assigned creation time (None until the write is acknowledged)"
    )


class TaskList(BaseModel):
    """Schema for GET /tasks."""

    tasks: list[TaskResponse] = Field(default_factory=list)
    filter: TaskFilter = TaskFilter.ALL
    total: int = Field(default=0, ge=0)


class TaskMutationResponse(BaseModel):
    """
    Result of update / toggle / delete.

    `applied` is False when the task no longer existed; that is a benign
    no-op, not an error.
    """

    task_id: UUID
    applied: bool
    task: TaskResponse | None = None
