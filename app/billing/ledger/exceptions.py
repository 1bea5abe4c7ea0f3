"""
Credit ledger exceptions.

Exception Hierarchy:
    CreditLedgerError (base)
    ├── InsufficientCredits - Consume request exceeds the available balance
    ├── InvalidGrant - Grant parameters rejected before any write
    ├── CreditEntryNotFound - Entry lookup failures
    └── ConflictRetryExhausted - Lock contention outlasted the retry budget

Every ledger operation either commits completely or raises one of these
with nothing written, so callers can always retry a failed call as a whole.

Usage:
    from billing.ledger.exceptions import InsufficientCredits

    try:
        credit_ledger.consume(org.id, 15, "Report export")
    except InsufficientCredits as e:
        print(f"Need {e.requested}, have {e.available}")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    import uuid
    from typing import Any


class CreditLedgerError(BaseApplicationError):
    """Base exception for credit ledger operations."""

    default_error_code: str = "CREDIT_LEDGER_ERROR"


class InsufficientCredits(CreditLedgerError, ValidationError):
    """
    Raised when an organization cannot cover a consume request.

    Attributes:
        organization_id: Organization that was charged
        requested: Credits requested
        available: Credits available at the time of the check
    """

    default_error_code: str = "INSUFFICIENT_CREDITS"

    def __init__(
        self,
        organization_id: uuid.UUID | str,
        requested: int,
        available: int,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.organization_id = organization_id
        self.requested = requested
        self.available = available

        full_details = {
            "organization_id": str(organization_id),
            "requested": requested,
            "available": available,
        }
        if details:
            full_details.update(details)

        super().__init__(
            message=(
                f"Insufficient credits: requested {requested}, "
                f"available {available}"
            ),
            error_code=error_code,
            details=full_details,
        )


class InvalidGrant(CreditLedgerError, ValidationError):
    """Raised for non-positive amounts or missing variant references."""

    default_error_code: str = "INVALID_GRANT"


class CreditEntryNotFound(CreditLedgerError, NotFoundError):
    default_error_code: str = "CREDIT_ENTRY_NOT_FOUND"


class ConflictRetryExhausted(CreditLedgerError, ConflictError):
    """
    Raised when a ledger write kept failing on lock contention.

    Nothing was committed; the whole operation is safe to retry.
    """

    default_error_code: str = "CONFLICT_RETRY_EXHAUSTED"
