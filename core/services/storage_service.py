# =============================================================================
# core/services/storage_service.py - Supabase Storage Operations
# =============================================================================
# Handles uploads to and deletions from the public image bucket.
#
# Stored objects are addressed by their public URL everywhere outside this
# module; path_from_url() recovers the bucket path when an object has to be
# deleted.
# =============================================================================

import logging
from urllib.parse import unquote, urlparse
from uuid import uuid4

from supabase import Client

from app.config import settings
from app.exceptions import StorageUploadError
from lib.utils import normalize_uuid, sanitize_filename

logger = logging.getLogger(__name__)


class StorageService:
    """
    Service for Supabase Storage operations.

    Runs with a user-scoped client, so bucket policies decide which paths
    the caller may write.
    """

    def __init__(self, client: Client, bucket: str | None = None):
        self.client = client
        self.bucket = bucket or settings.STORAGE_BUCKET

    # -------------------------------------------------------------------------
    # Path Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def original_path(user_id: str, filename: str) -> str:
        """Path for an uploaded original: {user_id}/original/{uuid}_{filename}"""
        return f"{normalize_uuid(user_id)}/original/{uuid4().hex}_{sanitize_filename(filename, 'image')}"

    @staticmethod
    def transformed_path(user_id: str, extension: str = "png") -> str:
        """Path for a generated image: {user_id}/transformed/{uuid}.{ext}"""
        return f"{normalize_uuid(user_id)}/transformed/{uuid4().hex}.{extension}"

    @staticmethod
    def attachment_path(filename: str) -> str:
        return f"contact/{uuid4().hex}_{sanitize_filename(filename, 'attachment')}"

    def path_from_url(self, url: str) -> str | None:
        """
        Recover the bucket path from a public object URL.

        Example:
            https://x.supabase.co/storage/v1/object/public/images/u1/original/a_cat.png
            -> "u1/original/a_cat.png"

        Returns:
            Path inside this bucket, or None if the URL points elsewhere
        """
        path = unquote(urlparse(url).path)
        marker = f"/object/public/{self.bucket}/"
        if marker not in path:
            return None
        return path.split(marker, 1)[1] or None

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def upload(self, path: str, content: bytes, content_type: str) -> str:
        """
        Upload raw bytes to storage.

        Args:
            path: Destination path inside the bucket
            content: File bytes
            content_type: MIME type stored with the object

        Returns:
            Storage path where file was uploaded

        Raises:
            StorageUploadError: If upload fails
        """
        try:
            self.client.storage.from_(self.bucket).upload(
                path=path,
                file=content,
                file_options={"content-type": content_type, "upsert": "false"},
            )
        except Exception as e:
            logger.error(f"Storage upload failed: {e}")
            raise

        logger.info(f"Uploaded file to storage: {path} ({len(content)} bytes)")
        return path

    def get_public_url(self, path: str) -> str:
        """
        Get the stable public URL for a stored object.

        Args:
            path: Path in storage bucket

        Returns:
            Public URL string
        """
        url = self.client.storage.from_(self.bucket).get_public_url(path)
        # Some SDK versions append an empty query string
        return url.rstrip("?")

    def upload_and_get_url(self, path: str, content: bytes, content_type: str) -> str:
        """Upload then resolve the public URL in one call."""
        self.upload(path, content, content_type)
        return self.get_public_url(path)

    def upload_attachment(self, filename: str, content: bytes, content_type: str) -> str:
        """
        Upload a contact-form attachment.

        Raises:
            StorageUploadError: If upload fails
        """
        try:
            return self.upload_and_get_url(self.attachment_path(filename), content, content_type)
        except Exception as e:
            raise StorageUploadError(str(e))

    def delete_by_url(self, url: str) -> bool:
        """
        Delete a stored object addressed by its public URL.

        Returns:
            True if a delete was issued, False if the URL is not in this bucket
        """
        path = self.path_from_url(url)
        if path is None:
            logger.warning(f"Not a {self.bucket} object URL, skipping delete: {url}")
            return False

        self.client.storage.from_(self.bucket).remove([path])
        logger.info(f"Deleted file from storage: {path}")
        return True
