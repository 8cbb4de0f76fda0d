# =============================================================================
# core/services/__init__.py - Service Layer Exports
# =============================================================================

from .task_service import TaskService, filter_tasks, sort_tasks
from .storage_service import StorageService
from .transform_service import GeneratedImage, ImageTransformService
from .image_record_service import ImageRecordService
from .contact_service import ContactService

__all__ = [
    "TaskService",
    "filter_tasks",
    "sort_tasks",
    "StorageService",
    "GeneratedImage",
    "ImageTransformService",
    "ImageRecordService",
    "ContactService",
]
