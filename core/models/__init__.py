# =============================================================================
# core/models/ - Pydantic Data Models
# =============================================================================
# This package contains Pydantic schemas for data validation:
# - task.py: Task CRUD schemas and list filters
# - image_record.py: Image record schemas (original + transformed pair)
# - contact.py: Contact form submission schemas
#
# These models define the "contract" between API and clients.
# =============================================================================

# -----------------------------------------------------------------------------
# Task Models - Per-user task manager
# -----------------------------------------------------------------------------
from .task import (
    TaskCreate,
    TaskFilter,
    TaskList,
    TaskMutationResponse,
    TaskResponse,
    TaskUpdate,
)

# -----------------------------------------------------------------------------
# Image Record Models - Transformation gallery
# -----------------------------------------------------------------------------
from .image_record import (
    ImageRecordCreate,
    ImageRecordList,
    ImageRecordResponse,
    TransformResponse,
)

# -----------------------------------------------------------------------------
# Contact Models
# -----------------------------------------------------------------------------
from .contact import (
    ContactCreate,
    ContactResponse,
)

__all__ = [
    # Task
    "TaskCreate",
    "TaskFilter",
    "TaskList",
    "TaskMutationResponse",
    "TaskResponse",
    "TaskUpdate",
    # Image records
    "ImageRecordCreate",
    "ImageRecordList",
    "ImageRecordResponse",
    "TransformResponse",
    # Contact
    "ContactCreate",
    "ContactResponse",
]
