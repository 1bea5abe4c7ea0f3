"""
Billing domain exceptions.

Ledger errors live in billing.ledger.exceptions; this module covers the
catalog, subscriptions, webhooks and the payment provider.

Exception Hierarchy:
    BillingError (base)
    ├── PlanNotFound, PackageNotFound, SubscriptionNotFound (404)
    ├── InvalidSubscriptionState (409)
    ├── InvalidPayload (400) - Webhook object missing required fields
    ├── DuplicateEvent (409) - Webhook already handled, treated as success
    ├── LockAcquisitionError (409) - Distributed lock held elsewhere
    └── StripeError (502)
        ├── StripeCardError
        ├── StripeInvalidRequestError
        ├── StripeRateLimitError (retryable)
        ├── StripeAPIUnavailableError (retryable)
        └── StripeTimeoutError (retryable)

Usage:
    from billing.exceptions import StripeError

    try:
        StripeAdapter.retrieve_subscription("sub_123")
    except StripeError as e:
        if e.is_retryable:
            raise self.retry(exc=e)
        raise
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


class BillingError(BaseApplicationError):
    default_error_code: str = "BILLING_ERROR"


# =============================================================================
# Catalog and Subscription Errors
# =============================================================================


class PlanNotFound(BillingError, NotFoundError):
    default_error_code: str = "PLAN_NOT_FOUND"


class PackageNotFound(BillingError, NotFoundError):
    default_error_code: str = "PACKAGE_NOT_FOUND"


class SubscriptionNotFound(BillingError, NotFoundError):
    default_error_code: str = "SUBSCRIPTION_NOT_FOUND"


class InvalidSubscriptionState(BillingError, ConflictError):
    """
    Raised when the subscription cannot make the requested change.

    Example:
        Reactivating a subscription that has already ended, or one that
        is not scheduled for cancellation.
    """

    default_error_code: str = "INVALID_SUBSCRIPTION_STATE"


# =============================================================================
# Webhook Errors
# =============================================================================


class InvalidPayload(BillingError, ValidationError):
    """
    Raised when a webhook object lacks fields the handler needs.

    The receiver logs it and answers 200: redelivering the same payload
    would fail the same way.
    """

    default_error_code: str = "INVALID_PAYLOAD"


class DuplicateEvent(BillingError, ConflictError):
    """Raised when a webhook event was already processed. Not a failure."""

    default_error_code: str = "DUPLICATE_EVENT"


class LockAcquisitionError(BillingError, ConflictError):
    """Raised when a distributed lock could not be acquired in time."""

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


# =============================================================================
# Stripe Errors
# =============================================================================


class StripeError(BillingError, ExternalServiceError):
    """
    Base exception for Stripe failures.

    Attributes:
        stripe_code: Stripe's error code, when provided
        is_retryable: Whether the same call may succeed later
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code


class StripeCardError(StripeError):
    default_error_code: str = "STRIPE_CARD_ERROR"


class StripeInvalidRequestError(StripeError):
    """
    Invalid parameters, unknown resource, bad credentials or a webhook
    signature that does not verify. Retrying will not help.
    """

    default_error_code: str = "STRIPE_INVALID_REQUEST"


class StripeRateLimitError(StripeError):
    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """Network failure or Stripe server error."""

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True


class StripeTimeoutError(StripeError):
    """
    Stripe did not answer within STRIPE_API_TIMEOUT_SECONDS.

    The call may still have been applied on Stripe's side.
    """

    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True


__all__ = [
    "BillingError",
    "PlanNotFound",
    "PackageNotFound",
    "SubscriptionNotFound",
    "InvalidSubscriptionState",
    "InvalidPayload",
    "DuplicateEvent",
    "LockAcquisitionError",
    "StripeError",
    "StripeCardError",
    "StripeInvalidRequestError",
    "StripeRateLimitError",
    "StripeAPIUnavailableError",
    "StripeTimeoutError",
]
