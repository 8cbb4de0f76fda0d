# =============================================================================
# app/routers/contact.py - Contact Form
# =============================================================================
# Accepts anonymous or signed-in submissions, with an optional attachment.
# =============================================================================

import logging
from typing import Annotated

from fastapi import APIRouter, File, Form, UploadFile, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from app.dependencies import ContactServiceDep
from core.models.contact import ContactCreate, ContactResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=ContactResponse, status_code=status.HTTP_201_CREATED)
async def submit_contact(
    contact: ContactServiceDep,
    name: Annotated[str, Form()],
    email: Annotated[str, Form()],
    message: Annotated[str, Form()],
    attachment: Annotated[UploadFile | None, File(description="Optional attachment")] = None,
):
    """
    Send a message to the team.

    Validation: name at least 2 characters, a valid email, message at least
    10 characters. Attachments are stored before the submission is saved.
    """
    try:
        form = ContactCreate(name=name, email=email, message=message)
    except ValidationError as e:
        raise RequestValidationError(e.errors())

    content = await attachment.read() if attachment is not None else None

    row = contact.submit(
        form,
        attachment=content,
        attachment_name=attachment.filename if attachment is not None else None,
        attachment_type=(attachment.content_type if attachment is not None else None)
        or "application/octet-stream",
    )
    return ContactResponse(**row)
