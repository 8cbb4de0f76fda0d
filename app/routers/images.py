# =============================================================================
# app/routers/images.py - Image Transformation Gallery
# =============================================================================
# POST /images/transform runs the upload -> transform -> persist workflow.
# GET / DELETE manage the user's image records.
# =============================================================================

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, File, Form, Path, UploadFile

from app.dependencies import CurrentUser, ImageRecordServiceDep, ImageWorkflowDep
from app.exceptions import FileTooLargeError, WorkflowFailedError
from core.models.image_record import (
    ImageRecordList,
    ImageRecordResponse,
    TransformResponse,
)
from core.workflows import ImageUpload

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/transform", response_model=TransformResponse)
async def transform_image(
    user: CurrentUser,
    workflow: ImageWorkflowDep,
    file: Annotated[UploadFile, File(description="Image to transform (max 5MB)")],
    prompt: Annotated[str, Form(description="How to transform the image")] = "",
):
    """
    Upload an image, transform it with AI, and save both versions.

    This endpoint:
    1. Validates the file (type, size) and the prompt - nothing is uploaded if this fails
    2. Uploads the original to storage
    3. Sends it to the image generation API with the prompt
    4. Uploads the generated image
    5. Saves an image record linking both

    Both URLs are returned for immediate display.
    """
    # Oversized files are refused before they are read into memory
    if file.size is not None and file.size > workflow.max_bytes:
        raise FileTooLargeError(file.size / (1024 * 1024), workflow.max_bytes // (1024 * 1024))

    content = await file.read()
    upload = ImageUpload(
        filename=file.filename or "image",
        content=content,
        content_type=(file.content_type or "application/octet-stream").lower(),
    )

    logger.info(f"Transform request from {user.id}: {upload.filename} ({upload.size} bytes)")

    result = await workflow.run(user.id, upload, prompt)

    if not result.succeeded:
        raise WorkflowFailedError(
            stage=result.failed_stage.value,
            error=result.error,
            permission_denied=result.permission_denied,
        )

    return TransformResponse(
        record=ImageRecordResponse(**result.record),
        original_image_url=result.original_image_url,
        transformed_image_url=result.transformed_image_url,
        stages=[stage.value for stage in result.history],
    )


@router.get("", response_model=ImageRecordList)
async def list_image_records(
    user: CurrentUser,
    records: ImageRecordServiceDep,
):
    """List the current user's image records, newest first."""
    rows = records.list_records(user.id)
    return ImageRecordList(
        records=[ImageRecordResponse(**row) for row in rows],
        total=len(rows),
    )


@router.delete("/{record_id}")
async def delete_image_record(
    record_id: Annotated[UUID, Path(description="Image record UUID")],
    user: CurrentUser,
    records: ImageRecordServiceDep,
):
    """
    Delete an image record together with its original and transformed files.

    Deleting a record that is already gone succeeds with `deleted: false`.
    """
    deleted = records.delete(user.id, record_id)
    return {"record_id": str(record_id), "deleted": deleted}
