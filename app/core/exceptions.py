"""
Base exception classes for application-wide error handling.

Every domain error in the project derives from BaseApplicationError so that
API views, Celery tasks and the webhook receiver can treat failures uniformly:
each carries a machine-readable error code, optional details, and the HTTP
status it maps to when it escapes a DRF view.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input or business-rule validation failures (400)
    ├── PermissionDeniedError - Authorization failures (403)
    ├── NotFoundError - Resource not found (404)
    ├── ConflictError - State conflicts, contention, duplicates (409)
    └── ExternalServiceError - Payment provider failures (502)

Usage:
    from core.exceptions import NotFoundError

    raise NotFoundError(
        "Plan not found",
        error_code="PLAN_NOT_FOUND",
        details={"plan_id": plan_id},
    )

DRF integration:
    REST_FRAMEWORK["EXCEPTION_HANDLER"] points at api_exception_handler, which
    renders any BaseApplicationError raised from a view as to_dict() with the
    class's http_status. Everything else falls through to DRF's own handler.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any

    from rest_framework.response import Response

logger = logging.getLogger(__name__)


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (ids, amounts, field errors)
        http_status: Status code used when rendered by the API layer
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Insufficient credits",
                "error_code": "INSUFFICIENT_CREDITS",
                "details": {"requested": 15, "available": 10}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input or a business rule rejects the request.

    Use for non-positive amounts, malformed provider payloads and
    requests the ledger cannot satisfy (insufficient credits).
    """

    default_error_code: str = "VALIDATION_ERROR"
    http_status: int = 400


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the caller lacks the role required for an operation.

    Authentication failures (missing/invalid token) stay with DRF's
    AuthenticationFailed; this covers authorization only.
    """

    default_error_code: str = "PERMISSION_DENIED"
    http_status: int = 403


class NotFoundError(BaseApplicationError):
    """Raised when a requested resource is not found."""

    default_error_code: str = "NOT_FOUND"
    http_status: int = 404


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Covers invalid state transitions, duplicate deliveries and write
    contention that could not be resolved within the retry budget.
    """

    default_error_code: str = "CONFLICT"
    http_status: int = 409


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    The original provider error is logged where it is caught; only the
    message and code are exposed to clients.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = 502


def api_exception_handler(exc: Exception, context: dict) -> Response | None:
    """
    DRF exception handler that understands BaseApplicationError.

    Args:
        exc: Exception raised by the view
        context: DRF handler context (view, request, args, kwargs)

    Returns:
        Response for application and DRF errors, None for anything else
        (which DRF turns into a 500)
    """
    # DRF reads its settings on import, which needs the app registry
    from rest_framework.response import Response
    from rest_framework.views import exception_handler

    if isinstance(exc, BaseApplicationError):
        view = context.get("view")
        log = logger.error if exc.http_status >= 500 else logger.info
        log(
            f"API error: {exc}",
            extra={
                "error_code": exc.error_code,
                "view": view.__class__.__name__ if view else None,
            },
        )
        return Response(exc.to_dict(), status=exc.http_status)

    return exception_handler(exc, context)
