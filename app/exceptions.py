# =============================================================================
# app/exceptions.py - Custom Exceptions and Handlers
# =============================================================================
# Centralized exception handling for the API.
# Every error tells the caller HOW to recover, not just WHAT failed.
#
# Taxonomy:
# - Validation errors (400/413): rejected before any remote call is made
# - Authorization errors (403): also reported on the diagnostic event bus
# - Remote failures (502): one consolidated message, no automatic retry
# - Not-found conditions are benign no-ops and never raised from here
# =============================================================================

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse


class TaskStudioException(Exception):
    """
    Base exception for the TaskStudio API.

    All custom exceptions inherit from this class.
    Provides structured error responses with actionable suggestions.
    """

    def __init__(
        self,
        message: str,
        code: str = "TASKSTUDIO_ERROR",
        status_code: int = 500,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.suggestion = suggestion
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response dict."""
        result = {
            "detail": self.message,
            "code": self.code,
        }
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Authorization Exceptions
# =============================================================================

class PermissionDeniedError(TaskStudioException):
    """
    Raised when the backing service rejects an operation for authorization reasons.

    Carries the same context as the diagnostic PermissionErrorEvent so that
    developers can see which path/operation was refused.
    """

    def __init__(
        self,
        path: str,
        operation: str,
        request_data: dict[str, Any] | None = None,
    ):
        details: dict[str, Any] = {"path": path, "operation": operation}
        if request_data:
            details["request_data"] = request_data
        super().__init__(
            message=f"Missing or insufficient permissions: {operation} on {path}",
            code="PERMISSION_DENIED",
            status_code=403,
            suggestion="Sign in again, or check the row-level security policies for this table",
            details=details,
        )
        self.path = path
        self.operation = operation
        self.request_data = request_data


class AuthenticationError(TaskStudioException):
    """Raised when sign-up/sign-in is rejected by the identity provider."""

    def __init__(self, error: str):
        super().__init__(
            message=f"Authentication failed: {error}",
            code="AUTHENTICATION_FAILED",
            status_code=401,
            suggestion="Check the email and password and try again",
            details={"error": error},
        )


# =============================================================================
# Upload Validation Exceptions
# =============================================================================

class MissingFileError(TaskStudioException):
    """Raised when no file (or an empty file) was selected."""

    def __init__(self):
        super().__init__(
            message="No file selected",
            code="MISSING_FILE",
            status_code=400,
            suggestion="Choose an image to upload",
        )


class InvalidFileTypeError(TaskStudioException):
    """Raised when the upload is not one of the accepted image types."""

    def __init__(self, filename: str, allowed: list[str]):
        super().__init__(
            message=f"{filename} is not a supported image",
            code="INVALID_FILE_TYPE",
            status_code=400,
            suggestion=f"Upload one of: {', '.join(allowed)}",
            details={"filename": filename, "allowed_types": allowed},
        )


class FileTooLargeError(TaskStudioException):
    """Raised before any upload when the file is over the size limit."""

    def __init__(self, size_mb: float, max_mb: int):
        super().__init__(
            message=f"File is {size_mb:.1f}MB, the limit is {max_mb}MB",
            code="FILE_TOO_LARGE",
            status_code=413,
            suggestion=f"Resize or compress the file below {max_mb}MB",
            details={"size_mb": round(size_mb, 2), "max_mb": max_mb},
        )


class PromptRequiredError(TaskStudioException):
    """Raised when a prompt-driven transformation is submitted without instructions."""

    def __init__(self):
        super().__init__(
            message="A transformation prompt is required",
            code="PROMPT_REQUIRED",
            status_code=400,
            suggestion="Describe how the image should be transformed, e.g. 'cyberpunk'",
        )


# =============================================================================
# Remote Service Exceptions
# =============================================================================

class StorageUploadError(TaskStudioException):
    """Raised when the storage bucket rejects an upload."""

    def __init__(self, error: str):
        super().__init__(
            message=f"Could not store the file: {error}",
            code="STORAGE_UPLOAD_ERROR",
            status_code=502,
            suggestion="Please try again in a moment",
            details={"error": error},
        )


class TransformationError(TaskStudioException):
    """Raised when the image generation API fails or returns no image."""

    def __init__(self, error: str):
        super().__init__(
            message=f"Image transformation failed: {error}",
            code="TRANSFORMATION_ERROR",
            status_code=502,
            suggestion="Try again, or rephrase the prompt",
            details={"error": error}
        )


class RecordWriteError(TaskStudioException):
    """Raised when a document insert/update is rejected for a non-permission reason."""

    def __init__(self, table: str, error: str):
        super().__init__(
            message=f"Failed to write to {table}: {error}",
            code="RECORD_WRITE_ERROR",
            status_code=502,
            suggestion="Try again later or contact support if the issue persists",
            details={"table": table, "error": error}
        )


class MissingDownloadUrlError(TaskStudioException):
    """Raised when the download relay is called without a `url` parameter."""

    def __init__(self):
        super().__init__(
            message="URL parameter is missing",
            code="MISSING_URL",
            status_code=400,
            suggestion="Pass the file location as ?url=...",
        )


class DownloadHostNotAllowedError(TaskStudioException):
    """Raised when the relay is asked to fetch from a host outside the allow-list."""

    def __init__(self, host: str):
        super().__init__(
            message=f"Downloads from {host or 'this address'} are not allowed",
            code="DOWNLOAD_HOST_NOT_ALLOWED",
            status_code=400,
            suggestion="Only files stored by this service can be downloaded",
            details={"host": host},
        )


class DownloadFetchError(TaskStudioException):
    """Raised when the relayed file could not be fetched; mirrors the upstream status."""

    def __init__(self, url: str, status_code: int):
        super().__init__(
            message="Failed to fetch the file",
            code="DOWNLOAD_FAILED",
            status_code=status_code,
            details={"url": url, "upstream_status": status_code},
        )


class WorkflowFailedError(TaskStudioException):
    """
    Consolidated failure of the upload-transform-persist workflow.

    Only the failing stage and a short message are exposed, never partial
    diagnostics from the earlier steps.
    """

    def __init__(self, stage: str, error: str, permission_denied: bool = False):
        super().__init__(
            message=f"Image processing failed: {error}",
            code="PERMISSION_DENIED" if permission_denied else "WORKFLOW_FAILED",
            status_code=403 if permission_denied else 502,
            suggestion="Please try again",
            details={"stage": stage},
        )
        self.stage = stage


# =============================================================================
# Exception Handlers
# =============================================================================

async def taskstudio_exception_handler(
    request: Request,
    exc: TaskStudioException
) -> JSONResponse:
    """
    Convert TaskStudioException to JSON response.

    Returns structured error with:
    - detail: Human-readable message
    - code: Machine-readable error code
    - suggestion: How to fix (if available)
    - details: Additional context
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def validation_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """
    Handle Pydantic validation errors.

    Converts validation errors to user-friendly messages.
    """
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Validation error",
            "code": "VALIDATION_ERROR",
            "errors": str(exc)
        }
    )
