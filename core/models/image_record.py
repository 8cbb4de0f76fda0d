# =============================================================================
# core/models/image_record.py - Image Record Schemas
# =============================================================================
# An ImageRecord links an uploaded original to its AI-transformed version.
# It is written only after both files are stored, and never edited; deleting
# it also removes both stored files.
# =============================================================================

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class ImageRecordCreate(BaseModel):
    """Row written by the final step of the transform workflow."""

    user_id: UUID
    original_image_url: str = Field(..., min_length=1)
    transformed_image_url: str = Field(..., min_length=1)
    original_file_name: str = Field(..., min_length=1, max_length=255)
    prompt: str | None = None


class ImageRecordResponse(BaseModel):
    """
    Schema for returning an image record.

    Example:
        {
            "id": "550e8400-e29b-41d4-a716-446655440000",
            "user_id": "660e8400-e29b-41d4-a716-446655440001",
            "original_image_url": "https://xxx.supabase.co/storage/v1/object/public/images/.../cat.png",
            "transformed_image_url": "https://xxx.supabase.co/storage/v1/object/public/images/.../9f2c.png",
            "original_file_name": "cat.png",
            "prompt": "cyberpunk",
            "timestamp": "2024-01-15T10:30:00Z"
        }
    """

    id: UUID
    user_id: UUID
    original_image_url: str
    transformed_image_url: str
    original_file_name: str
    prompt: str | None = None
    timestamp: datetime | None = None


class ImageRecordList(BaseModel):
    records: list[ImageRecordResponse] = Field(default_factory=list)
    total: int = Field(default=0, ge=0)


class TransformResponse(BaseModel):
    """
    Returned by POST /images/transform once the workflow reaches `done`.

    Both URLs are returned so the caller can display the result at once,
    without waiting for the live record stream to catch up.
    """

    record: ImageRecordResponse
    original_image_url: str
    transformed_image_url: str
    stages: list[str] = Field(
        default_factory=list,
        description="Workflow stages entered, in order"
    )
