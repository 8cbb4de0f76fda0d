# =============================================================================
# core/services/task_service.py - Task Business Logic
# =============================================================================
# Create / update / toggle / delete against the `tasks` table.
#
# Every operation is a single remote call (toggle reads first). Missing
# tasks are benign no-ops so that a stale UI racing a concurrent delete
# never sees an error. List views are re-sorted client-side by creation
# time so out-of-order snapshot delivery cannot reorder them.
# =============================================================================

import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from supabase import Client

from app.exceptions import RecordWriteError
from app.websocket.broadcast import publish_change
from core.events import ErrorEventBus, Operation, report_permission_error
from core.models.task import TaskFilter
from lib.supabase_client import SupabaseClient, is_permission_denied
from lib.utils import normalize_uuid

logger = logging.getLogger(__name__)

TABLE = "tasks"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


# =============================================================================
# Pure Helpers (also applied to live snapshots)
# =============================================================================

def _created_at(task: dict[str, Any]) -> datetime:
    """
    Sort key for a task row.

    Accepts datetimes, ISO strings and epoch milliseconds. Rows whose
    timestamp has not been assigned yet sort as newest.
    """
    value = task.get("created_at")
    if value is None:
        return datetime.max.replace(tzinfo=timezone.utc)
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def sort_tasks(tasks: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Newest first, regardless of the order the server returned."""
    return sorted(tasks, key=_created_at, reverse=True)


def filter_tasks(
    tasks: Iterable[dict[str, Any]],
    task_filter: TaskFilter | str = TaskFilter.ALL,
) -> list[dict[str, Any]]:
    """
    Sort then filter tasks for a list view.

    Example:
        filter_tasks(rows, TaskFilter.ACTIVE)  # incomplete tasks, newest first
    """
    task_filter = TaskFilter(task_filter)
    ordered = sort_tasks(tasks)
    if task_filter == TaskFilter.ACTIVE:
        return [task for task in ordered if not task.get("completed")]
    if task_filter == TaskFilter.COMPLETED:
        return [task for task in ordered if task.get("completed")]
    return ordered


# =============================================================================
# Service
# =============================================================================

class TaskService:
    """
    Service for a user's task collection.

    Runs with a user-scoped Supabase client, so row-level security is the
    final authority. Authorization failures are reported on the diagnostic
    bus before being raised.
    """

    def __init__(
        self,
        client: Client,
        bus: ErrorEventBus | None = None,
        notify: Callable[[str, Any], bool] = publish_change,
    ):
        self.client = client
        self.bus = bus
        self.notify = notify

    def _fail(
        self,
        error: Exception,
        operation: Operation,
        data: dict[str, Any] | None = None,
    ) -> Exception:
        if is_permission_denied(error):
            return report_permission_error(self.bus, TABLE, operation, data)
        logger.error(f"Task {operation} failed: {error}")
        return RecordWriteError(TABLE, str(error))

    def list_tasks(
        self,
        user_id: UUID | str,
        task_filter: TaskFilter | str = TaskFilter.ALL,
    ) -> list[dict[str, Any]]:
        """
        List a user's tasks, newest first.

        Args:
            user_id: Owner of the tasks
            task_filter: all / active / completed

        Returns:
            List of task row dicts
        """
        try:
            rows = SupabaseClient.select_rows(
                self.client,
                TABLE,
                filters={"user_id": user_id},
                order_by="created_at",
                descending=True,
            )
        except Exception as e:
            raise self._fail(e, "list")
        return filter_tasks(rows, task_filter)

    def get(self, user_id: UUID | str, task_id: UUID | str) -> dict[str, Any] | None:
        try:
            return SupabaseClient.fetch_row(
                self.client, TABLE, task_id, filters={"user_id": user_id}
            )
        except Exception as e:
            raise self._fail(e, "get")

    def create(
        self,
        user_id: UUID | str,
        title: str,
        description: str = "",
    ) -> dict[str, Any]:
        """
        Create a task. `completed` starts False; `created_at` is set by the database.

        Returns:
            Inserted task dict with generated id and created_at
        """
        data = {
            "user_id": normalize_uuid(user_id),
            "title": title,
            "description": description,
            "completed": False,
        }

        try:
            response = self.client.table(TABLE).insert(data).execute()
        except Exception as e:
            raise self._fail(e, "create", data)

        if not response.data:
            raise RecordWriteError(TABLE, "Insert returned no data")

        task = response.data[0]
        logger.info(f"Created task {task['id']} for user {user_id}")
        self.notify(TABLE, user_id)
        return task

    def update(
        self,
        user_id: UUID | str,
        task_id: UUID | str,
        title: str,
        description: str = "",
    ) -> dict[str, Any] | None:
        """
        Patch title and description. Completion state is left untouched.

        Returns:
            Updated task dict, or None if the task no longer exists
        """
        data = {"title": title, "description": description}

        try:
            response = (
                self.client.table(TABLE)
                .update(data)
                .eq("id", normalize_uuid(task_id))
                .eq("user_id", normalize_uuid(user_id))
                .execute()
            )
        except Exception as e:
            raise self._fail(e, "update", data)

        if not response.data:
            logger.info(f"Update skipped, task {task_id} no longer exists")
            return None

        self.notify(TABLE, user_id)
        return response.data[0]

    def toggle_complete(
        self,
        user_id: UUID | str,
        task_id: UUID | str,
    ) -> dict[str, Any] | None:
        """
        Flip `completed` on a task.

        Returns:
            Updated task dict, or None if the task was deleted meanwhile
        """
        task = self.get(user_id, task_id)
        if task is None:
            logger.info(f"Toggle skipped, task {task_id} no longer exists")
            return None

        data = {"completed": not task.get("completed", False)}

        try:
            response = (
                self.client.table(TABLE)
                .update(data)
                .eq("id", normalize_uuid(task_id))
                .eq("user_id", normalize_uuid(user_id))
                .execute()
            )
        except Exception as e:
            raise self._fail(e, "update", data)

        if not response.data:
            # Deleted between the read and the write
            return None

        self.notify(TABLE, user_id)
        return response.data[0]

    def delete(self, user_id: UUID | str, task_id: UUID | str) -> bool:
        """
        Delete a task. Deleting a missing task is a no-op.

        Returns:
            True if a row was deleted, False if it was already gone
        """
        try:
            response = (
                self.client.table(TABLE)
                .delete()
                .eq("id", normalize_uuid(task_id))
                .eq("user_id", normalize_uuid(user_id))
                .execute()
            )
        except Exception as e:
            raise self._fail(e, "delete")

        deleted = bool(response.data)
        if deleted:
            logger.info(f"Deleted task {task_id}")
            self.notify(TABLE, user_id)
        else:
            logger.debug(f"Task {task_id} already gone")
        return deleted
