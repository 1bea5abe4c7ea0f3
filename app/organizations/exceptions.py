"""
Organization-related exceptions.

Exception Hierarchy:
    PermissionDeniedError (from core)
    └── NotAuthorized - Caller has no active membership or too low a role

    NotFoundError (from core)
    └── OrganizationNotFound - Organization does not exist or is inactive
"""

from __future__ import annotations

from core.exceptions import NotFoundError, PermissionDeniedError


class NotAuthorized(PermissionDeniedError):
    """
    Raised when the caller may not act on the organization.

    Raised both for missing/inactive membership and for a role below the
    operation's threshold; the details say which.
    """

    default_error_code = "NOT_AUTHORIZED"


class OrganizationNotFound(NotFoundError):
    """Raised when an organization cannot be found."""

    default_error_code = "ORGANIZATION_NOT_FOUND"
