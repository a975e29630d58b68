"""Custom exceptions and helpers for consistent error responses."""

import json
from typing import Any, Dict, Optional

from models.response import ErrorResponse


class AppError(Exception):
    """Base class for application errors."""

    error_code = "app_error"

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(AppError):
    """Raised when a referenced ticket, message or agent does not exist."""

    error_code = "not_found"

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=404)


class ValidationError(AppError):
    """Raised when input validation fails."""

    error_code = "validation_error"

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, status_code=422)


class InvalidTransitionError(AppError):
    """Raised when a status change violates the ticket state machine."""

    error_code = "invalid_transition"

    def __init__(self, message: str = "Invalid status transition"):
        super().__init__(message, status_code=409)


class ConcurrentUpdateConflictError(AppError):
    """Raised when an optimistic-concurrency check fails on write."""

    error_code = "concurrent_update_conflict"

    def __init__(self, message: str = "Resource was modified concurrently"):
        super().__init__(message, status_code=409)


class NoEligibleAgentError(AppError):
    """Raised when assignment is requested but no active agent exists."""

    error_code = "no_eligible_agent"

    def __init__(self, message: str = "No active agents available"):
        super().__init__(message, status_code=409)


class NotificationDeliveryFailedError(AppError):
    """Raised by notification sinks; always caught and logged by callers."""

    error_code = "notification_delivery_failed"

    def __init__(self, message: str = "Notification delivery failed"):
        super().__init__(message, status_code=502)


class ExternalDependencyUnavailableError(AppError):
    """Raised when a store or directory cannot be reached."""

    error_code = "external_dependency_unavailable"

    def __init__(self, message: str = "Dependency unavailable"):
        super().__init__(message, status_code=503)


def json_response(status: int, body: Any, correlation_id: Optional[str] = None) -> Dict[str, Any]:
    """Format a JSON API Gateway HTTP API response."""
    headers = {"Content-Type": "application/json"}
    if correlation_id:
        headers["X-Correlation-Id"] = correlation_id
    return {
        "statusCode": status,
        "headers": headers,
        "body": body if isinstance(body, str) else json.dumps(body, default=str),
    }


def error_response(status: int, body: ErrorResponse) -> Dict[str, Any]:
    return json_response(status, body.model_dump_json(exclude_none=True), body.correlation_id)


def to_response(error: AppError, correlation_id: Optional[str] = None) -> Dict[str, Any]:
    """Convert an AppError into a Lambda proxy integration response."""
    body = ErrorResponse(error=error.error_code, message=str(error), correlation_id=correlation_id)
    return error_response(error.status_code, body)
