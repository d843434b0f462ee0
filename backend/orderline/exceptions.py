"""
Structured exceptions and error responses for Orderline.

Provides consistent error handling across the API with:
- Custom exception classes
- Structured error response format
- FastAPI exception handlers
"""

from typing import Any, Dict, Optional, List
from fastapi import Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel


# =============================================================================
# Error Response Schema
# =============================================================================

class ErrorDetail(BaseModel):
    """Detail of a single error."""
    loc: Optional[List[str]] = None  # Location of error (e.g., ["body", "title"])
    msg: str
    type: str


class ErrorResponse(BaseModel):
    """Structured error response format."""
    error: str  # Error code (e.g., "not_found", "hold_limit_exceeded")
    message: str  # Human-readable message
    details: Optional[List[ErrorDetail]] = None


# =============================================================================
# Custom Exceptions
# =============================================================================

class OrderlineException(Exception):
    """Base exception for all Orderline errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "internal_error",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class NotFoundError(OrderlineException):
    """Resource not found."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            message=f"{resource} with ID {resource_id} not found",
            error_code="not_found",
            status_code=status.HTTP_404_NOT_FOUND,
        )
        self.resource = resource
        self.resource_id = resource_id


class TaskNotFoundError(NotFoundError):
    """Task id is not in the collection being transformed."""

    def __init__(self, task_id: str):
        super().__init__("Task", task_id)
        self.task_id = task_id


class ValidationError(OrderlineException):
    """Request validation error."""

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(
            message=message,
            error_code="validation_error",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
        )


class ImportFormatError(OrderlineException):
    """Imported file is not JSON."""

    def __init__(self, message: str = "Import file is not valid JSON"):
        super().__init__(
            message=message,
            error_code="import_format_error",
            status_code=status.HTTP_400_BAD_REQUEST,
        )


# -----------------------------------------------------------------------------
# Workflow transitions
# -----------------------------------------------------------------------------

class TransitionViolation(OrderlineException):
    """A task transition was rejected; the task list is unchanged."""

    def __init__(self, message: str, error_code: str, task_id: Optional[str] = None):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_409_CONFLICT,
        )
        self.task_id = task_id


class NotTopTaskError(TransitionViolation):
    """Only the top task in the active or hold list can be completed."""

    def __init__(self, task_id: str):
        super().__init__(
            message="Only the top task in active or hold list can be completed",
            error_code="not_top_task",
            task_id=task_id,
        )


class HoldLimitExceededError(TransitionViolation):
    """Hold list is full."""

    def __init__(self, task_id: Optional[str] = None, limit: int = 3):
        super().__init__(
            message=f"Cannot hold more than {limit} tasks. Complete one first!",
            error_code="hold_limit_exceeded",
            task_id=task_id,
        )
        self.limit = limit


class ActiveLimitExceededError(TransitionViolation):
    """Active list is full (only raised when the strict limit is enabled)."""

    def __init__(self, task_id: Optional[str] = None, limit: int = 3):
        super().__init__(
            message=f"Cannot have more than {limit} active tasks",
            error_code="active_limit_exceeded",
            task_id=task_id,
        )
        self.limit = limit


class InvalidTransitionError(TransitionViolation):
    """Task is not in a status the transition starts from."""

    def __init__(self, task_id: str, current: str, action: str):
        super().__init__(
            message=f"Cannot {action} a task that is {current}",
            error_code="invalid_transition",
            task_id=task_id,
        )
        self.current = current
        self.action = action


# -----------------------------------------------------------------------------
# Storage
# -----------------------------------------------------------------------------

class StorageWriteError(OrderlineException):
    """Profile storage rejected a write (quota, permissions, database error)."""

    def __init__(self, key: str, reason: str):
        super().__init__(
            message=f"Failed to write storage key {key}: {reason}",
            error_code="storage_write_failure",
            status_code=status.HTTP_507_INSUFFICIENT_STORAGE,
        )
        self.key = key


class StorageCorruptionError(OrderlineException):
    """Stored task data cannot be read as tasks."""

    def __init__(self, key: str, reason: str):
        super().__init__(
            message=f"Stored data under {key} is corrupt: {reason}",
            error_code="storage_corruption",
        )
        self.key = key


class SubscriptionGoneError(OrderlineException):
    """The push subscription of a device no longer exists."""

    def __init__(self, device_id: str):
        super().__init__(
            message=f"Push subscription for device {device_id} is gone",
            error_code="subscription_gone",
            status_code=status.HTTP_410_GONE,
        )
        self.device_id = device_id


# =============================================================================
# Exception Handlers
# =============================================================================

async def orderline_exception_handler(request: Request, exc: OrderlineException) -> JSONResponse:
    """Handle OrderlineException and return structured response."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "message": exc.message,
            "details": exc.details,
        },
    )


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(OrderlineException, orderline_exception_handler)
