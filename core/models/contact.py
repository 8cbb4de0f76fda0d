# =============================================================================
# core/models/contact.py - Contact Submission Schemas
# =============================================================================

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class ContactCreate(BaseModel):
    """
    Validated contact form fields.

    Example:
        {
            "name": "Ada",
            "email": "ada@example.com",
            "message": "Love the gallery, any plans for albums?"
        }
    """

    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    message: str = Field(..., min_length=10, max_length=5000)


class ContactResponse(BaseModel):
    """A stored submission. Submissions are append-only."""

    id: UUID
    name: str
    email: str
    message: str
    attachment_url: str | None = None
    attachment_name: str | None = None
    created_at: datetime | None = None
