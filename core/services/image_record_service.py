# =============================================================================
# core/services/image_record_service.py - Image Record Business Logic
# =============================================================================
# Reads, writes and deletes rows of `image_records`.
#
# Deleting a record cascades to both stored files. The row goes first so
# the gallery never shows a record whose images have disappeared; a failed
# file delete after that only leaves an orphaned object behind.
# =============================================================================

import logging
from collections.abc import Callable
from typing import Any
from uuid import UUID

from supabase import Client

from app.exceptions import RecordWriteError
from app.websocket.broadcast import publish_change
from core.events import ErrorEventBus, Operation, report_permission_error
from core.models.image_record import ImageRecordCreate
from core.services.storage_service import StorageService
from lib.supabase_client import SupabaseClient, is_permission_denied
from lib.utils import normalize_uuid

logger = logging.getLogger(__name__)

TABLE = "image_records"


class ImageRecordService:
    """Service for a user's image records."""

    def __init__(
        self,
        client: Client,
        storage: StorageService,
        bus: ErrorEventBus | None = None,
        notify: Callable[[str, Any], bool] = publish_change,
    ):
        self.client = client
        self.storage = storage
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
        logger.error(f"Image record {operation} failed: {error}")
        return RecordWriteError(TABLE, str(error))

    def list_records(self, user_id: UUID | str) -> list[dict[str, Any]]:
        """Records for a user, newest first."""
        try:
            return SupabaseClient.select_rows(
                self.client,
                TABLE,
                filters={"user_id": user_id},
                order_by="timestamp",
                descending=True,
            )
        except Exception as e:
            raise self._fail(e, "list")

    def get(self, user_id: UUID | str, record_id: UUID | str) -> dict[str, Any] | None:
        try:
            return SupabaseClient.fetch_row(
                self.client, TABLE, record_id, filters={"user_id": user_id}
            )
        except Exception as e:
            raise self._fail(e, "get")

    def create(self, record: ImageRecordCreate) -> dict[str, Any]:
        """
        Insert the linking record. The timestamp is assigned by the database.

        Raises:
            PermissionDeniedError: If RLS rejects the write (after reporting it)
            RecordWriteError: For any other failure
        """
        data = record.model_dump(mode="json")

        try:
            response = self.client.table(TABLE).insert(data).execute()
        except Exception as e:
            raise self._fail(e, "create", data)

        if not response.data:
            raise RecordWriteError(TABLE, "Insert returned no data")

        row = response.data[0]
        logger.info(f"Created image record {row['id']} for user {record.user_id}")
        self.notify(TABLE, record.user_id)
        return row

    def delete(self, user_id: UUID | str, record_id: UUID | str) -> bool:
        """
        Delete a record and both of its stored images.

        Returns:
            True if the record existed, False if it was already gone
        """
        record = self.get(user_id, record_id)
        if record is None:
            logger.debug(f"Image record {record_id} already gone")
            return False

        try:
            (
                self.client.table(TABLE)
                .delete()
                .eq("id", normalize_uuid(record_id))
                .eq("user_id", normalize_uuid(user_id))
                .execute()
            )
        except Exception as e:
            raise self._fail(e, "delete")

        self.notify(TABLE, user_id)

        for url in (record.get("original_image_url"), record.get("transformed_image_url")):
            if not url:
                continue
            try:
                self.storage.delete_by_url(url)
            except Exception as e:
                if is_permission_denied(e):
                    report_permission_error(self.bus, self.storage.bucket, "delete")
                logger.warning(f"Could not delete stored image {url}: {e}")

        logger.info(f"Deleted image record {record_id}")
        return True
