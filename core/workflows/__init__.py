# =============================================================================
# core/workflows/ - Multi-step Pipelines
# =============================================================================

from .image_transform import (
    ImageTransformWorkflow,
    ImageUpload,
    WorkflowResult,
    WorkflowStage,
)

__all__ = [
    "ImageTransformWorkflow",
    "ImageUpload",
    "WorkflowResult",
    "WorkflowStage",
]
