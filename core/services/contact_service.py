# =============================================================================
# core/services/contact_service.py - Contact Form Submissions
# =============================================================================
# Append-only writes to `contact_submissions`, with an optional attachment
# stored in the public bucket first.
# =============================================================================

import logging
from typing import Any

from supabase import Client

from app.config import settings
from app.exceptions import FileTooLargeError, RecordWriteError
from core.events import ErrorEventBus, report_permission_error
from core.models.contact import ContactCreate
from core.services.storage_service import StorageService
from lib.supabase_client import is_permission_denied

logger = logging.getLogger(__name__)

TABLE = "contact_submissions"


class ContactService:
    """Service for contact form submissions."""

    def __init__(
        self,
        client: Client,
        storage: StorageService,
        bus: ErrorEventBus | None = None,
    ):
        self.client = client
        self.storage = storage
        self.bus = bus

    def submit(
        self,
        form: ContactCreate,
        attachment: bytes | None = None,
        attachment_name: str | None = None,
        attachment_type: str = "application/octet-stream",
    ) -> dict[str, Any]:
        """
        Store a submission.

        Args:
            form: Validated name/email/message
            attachment: Optional file bytes
            attachment_name: Original attachment filename
            attachment_type: Attachment MIME type

        Returns:
            Inserted submission dict

        Raises:
            FileTooLargeError: Attachment over MAX_ATTACHMENT_SIZE_MB (nothing uploaded)
            StorageUploadError: Attachment upload failed (nothing inserted)
            PermissionDeniedError / RecordWriteError: Insert failed
        """
        data: dict[str, Any] = form.model_dump(mode="json")

        if attachment:
            if len(attachment) > settings.max_attachment_size_bytes:
                raise FileTooLargeError(
                    len(attachment) / (1024 * 1024), settings.MAX_ATTACHMENT_SIZE_MB
                )
            name = attachment_name or "attachment"
            data["attachment_url"] = self.storage.upload_attachment(name, attachment, attachment_type)
            data["attachment_name"] = name

        try:
            response = self.client.table(TABLE).insert(data).execute()
        except Exception as e:
            if is_permission_denied(e):
                raise report_permission_error(self.bus, TABLE, "create", data)
            logger.error(f"Contact submission failed: {e}")
            raise RecordWriteError(TABLE, str(e))

        if not response.data:
            raise RecordWriteError(TABLE, "Insert returned no data")

        submission = response.data[0]
        logger.info(f"Stored contact submission {submission['id']}")
        return submission
