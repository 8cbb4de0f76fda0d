# =============================================================================
# core/workflows/image_transform.py - Upload -> Transform -> Persist
# =============================================================================
# Linear state machine behind POST /images/transform:
#
#   idle -> uploading_original -> transforming -> uploading_transformed
#        -> persisting_record -> done
#
# with `errored` reachable from every step. Each state has exactly one
# transition method; run() dispatches on the current stage until it reaches
# done or errored.
#
# Guarantees:
# - The entry guard rejects bad input before any remote call is made
# - persisting_record is only entered after uploading_transformed succeeded,
#   so a record never points at a missing file
# - A failed step stops the pipeline. Files already stored are NOT removed
#   (an orphaned original after a failed transform is accepted)
# - Not idempotent: every run stores new objects and writes a new record
#
# Usage:
#   workflow = ImageTransformWorkflow(storage, transformer, records, bus)
#   result = await workflow.run(user.id, ImageUpload("cat.png", data, "image/png"), "cyberpunk")
#   if result.succeeded:
#       print(result.transformed_image_url)
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from app.config import settings
from app.exceptions import (
    FileTooLargeError,
    InvalidFileTypeError,
    MissingFileError,
    PermissionDeniedError,
    PromptRequiredError,
)
from core.events import ErrorEventBus, report_permission_error
from core.models.image_record import ImageRecordCreate
from core.services.transform_service import GeneratedImage
from lib.supabase_client import is_permission_denied
from lib.utils import normalize_uuid

logger = logging.getLogger(__name__)


class WorkflowStage(str, Enum):
    IDLE = "idle"
    UPLOADING_ORIGINAL = "uploading_original"
    TRANSFORMING = "transforming"
    UPLOADING_TRANSFORMED = "uploading_transformed"
    PERSISTING_RECORD = "persisting_record"
    DONE = "done"
    ERRORED = "errored"


TERMINAL_STAGES = frozenset({WorkflowStage.DONE, WorkflowStage.ERRORED})


# =============================================================================
# Collaborators
# =============================================================================

class BlobStore(Protocol):
    bucket: str

    def upload_and_get_url(self, path: str, content: bytes, content_type: str) -> str:
        ...

    def original_path(self, user_id: str, filename: str) -> str:
        ...

    def transformed_path(self, user_id: str, extension: str = "png") -> str:
        ...


class ImageTransformer(Protocol):
    def transform(
        self,
        image: bytes,
        filename: str,
        content_type: str,
        prompt: str,
    ) -> GeneratedImage:
        ...


class RecordStore(Protocol):
    def create(self, record: ImageRecordCreate) -> dict[str, Any]:
        ...


# =============================================================================
# Input / Result
# =============================================================================

@dataclass(frozen=True)
class ImageUpload:
    filename: str
    content: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class WorkflowResult:
    """
    Everything the caller needs after a run.

    `history` lists every stage entered, in order.
    """
    stage: WorkflowStage = WorkflowStage.IDLE
    history: list[WorkflowStage] = field(default_factory=list)
    original_image_url: str | None = None
    transformed_image_url: str | None = None
    record: dict[str, Any] | None = None
    error: str | None = None
    failed_stage: WorkflowStage | None = None
    permission_denied: bool = False

    @property
    def succeeded(self) -> bool:
        return self.stage == WorkflowStage.DONE


@dataclass
class _Run:
    user_id: str
    upload: ImageUpload
    prompt: str
    result: WorkflowResult
    generated: GeneratedImage | None = None


# =============================================================================
# Workflow
# =============================================================================

class ImageTransformWorkflow:
    """
    Runs one upload-transform-persist pipeline per call to run().

    Collaborators are plain synchronous SDK wrappers; each remote call runs
    in a worker thread so the event loop is never blocked.
    """

    def __init__(
        self,
        storage: BlobStore,
        transformer: ImageTransformer,
        records: RecordStore,
        bus: ErrorEventBus | None = None,
        max_bytes: int | None = None,
        allowed_types: list[str] | None = None,
    ):
        self.storage = storage
        self.transformer = transformer
        self.records = records
        self.bus = bus
        self.max_bytes = max_bytes if max_bytes is not None else settings.max_image_size_bytes
        self.allowed_types = allowed_types if allowed_types is not None else settings.allowed_image_types_list

        self._transitions: dict[WorkflowStage, Callable[[_Run], Awaitable[None]]] = {
            WorkflowStage.UPLOADING_ORIGINAL: self._upload_original,
            WorkflowStage.TRANSFORMING: self._transform,
            WorkflowStage.UPLOADING_TRANSFORMED: self._upload_transformed,
            WorkflowStage.PERSISTING_RECORD: self._persist_record,
        }

    # -------------------------------------------------------------------------
    # Entry Guard
    # -------------------------------------------------------------------------

    def validate(self, upload: ImageUpload | None, prompt: str | None) -> str:
        """
        Check the input before anything leaves the process.

        Returns:
            The stripped prompt

        Raises:
            MissingFileError, InvalidFileTypeError, FileTooLargeError,
            PromptRequiredError
        """
        if upload is None or not upload.content:
            raise MissingFileError()

        if upload.content_type.lower() not in self.allowed_types:
            raise InvalidFileTypeError(upload.filename, self.allowed_types)

        if upload.size > self.max_bytes:
            raise FileTooLargeError(upload.size / (1024 * 1024), self.max_bytes // (1024 * 1024))

        cleaned = (prompt or "").strip()
        if not cleaned:
            raise PromptRequiredError()
        return cleaned

    # -------------------------------------------------------------------------
    # Driver
    # -------------------------------------------------------------------------

    async def run(
        self,
        user_id: UUID | str,
        upload: ImageUpload | None,
        prompt: str | None,
    ) -> WorkflowResult:
        """
        Run the pipeline to completion.

        Validation errors are raised. Every later failure is reported in the
        returned result (stage == errored) with one consolidated message.
        """
        cleaned_prompt = self.validate(upload, prompt)

        result = WorkflowResult()
        run = _Run(
            user_id=normalize_uuid(user_id),
            upload=upload,
            prompt=cleaned_prompt,
            result=result,
        )

        self._enter(result, WorkflowStage.UPLOADING_ORIGINAL)
        while result.stage not in TERMINAL_STAGES:
            await self._transitions[result.stage](run)

        if result.succeeded:
            logger.info(f"Transform workflow done for user {run.user_id}: {result.transformed_image_url}")
        else:
            logger.warning(
                f"Transform workflow errored at {result.failed_stage.value}: {result.error}"
            )
        return result

    def _enter(self, result: WorkflowResult, stage: WorkflowStage) -> None:
        result.stage = stage
        result.history.append(stage)
        logger.debug(f"Transform workflow -> {stage.value}")

    def _fail(
        self,
        run: _Run,
        message: str,
        error: Exception,
        path: str,
        report: bool = True,
    ) -> None:
        """
        Move to `errored`. Authorization failures are reported on the bus
        (unless the producer already reported them).
        """
        result = run.result
        denied = isinstance(error, PermissionDeniedError) or is_permission_denied(error)
        logger.error(f"Transform workflow step {result.stage.value} failed: {error}")

        result.failed_stage = result.stage
        result.error = "permission denied" if denied else message
        result.permission_denied = denied
        self._enter(result, WorkflowStage.ERRORED)

        if denied and report:
            report_permission_error(self.bus, path, "create")

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def _upload_original(self, run: _Run) -> None:
        path = self.storage.original_path(run.user_id, run.upload.filename)
        try:
            url = await asyncio.to_thread(
                self.storage.upload_and_get_url,
                path,
                run.upload.content,
                run.upload.content_type,
            )
        except Exception as e:
            self._fail(run, "upload failed", e, path=f"{self.storage.bucket}/{path}")
            return

        run.result.original_image_url = url
        self._enter(run.result, WorkflowStage.TRANSFORMING)

    async def _transform(self, run: _Run) -> None:
        try:
            generated = await asyncio.to_thread(
                self.transformer.transform,
                run.upload.content,
                run.upload.filename,
                run.upload.content_type,
                run.prompt,
            )
        except Exception as e:
            self._fail(run, "transformation failed", e, path="transform", report=False)
            return

        if generated is None or not generated.content:
            self._fail(
                run,
                "transformation failed",
                ValueError("no image in response"),
                path="transform",
                report=False,
            )
            return

        run.generated = generated
        self._enter(run.result, WorkflowStage.UPLOADING_TRANSFORMED)

    async def _upload_transformed(self, run: _Run) -> None:
        path = self.storage.transformed_path(run.user_id, run.generated.extension)
        try:
            url = await asyncio.to_thread(
                self.storage.upload_and_get_url,
                path,
                run.generated.content,
                run.generated.content_type,
            )
        except Exception as e:
            self._fail(run, "upload failed", e, path=f"{self.storage.bucket}/{path}")
            return

        run.result.transformed_image_url = url
        self._enter(run.result, WorkflowStage.PERSISTING_RECORD)

    async def _persist_record(self, run: _Run) -> None:
        record = ImageRecordCreate(
            user_id=run.user_id,
            original_image_url=run.result.original_image_url,
            transformed_image_url=run.result.transformed_image_url,
            original_file_name=run.upload.filename,
            prompt=run.prompt,
        )
        try:
            row = await asyncio.to_thread(self.records.create, record)
        except Exception as e:
            # The record store reports its own permission failures
            self._fail(run, "save failed", e, path="image_records", report=False)
            return

        run.result.record = row
        self._enter(run.result, WorkflowStage.DONE)
