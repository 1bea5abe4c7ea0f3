"""
Stripe API adapter for billing operations.

All Stripe calls go through StripeAdapter so that every call gets the same
timeout, network retry budget, structured logging and translation of SDK
errors into billing.exceptions.

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: Per-request timeout (default: 10)
- STRIPE_MAX_RETRIES: Network retries performed by the SDK (default: 2)

Usage:
    from billing.adapters import StripeAdapter, CreateCheckoutSessionParams

    session = StripeAdapter.create_checkout_session(
        CreateCheckoutSessionParams(
            mode="payment",
            customer_id="cus_123",
            price_id="price_123",
            success_url="https://app.example.com/billing?success=true",
            cancel_url="https://app.example.com/billing?canceled=true",
            metadata={"organization_id": str(org.id), "package_id": "credits_500"},
        )
    )
    redirect(session.url)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import stripe
from django.conf import settings

from billing.exceptions import (
    StripeAPIUnavailableError,
    StripeCardError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CreateCheckoutSessionParams:
    """
    Parameters for a hosted checkout session.

    Attributes:
        mode: "subscription" or "payment"
        customer_id: Stripe Customer ID
        price_id: Single line item price
        success_url / cancel_url: Redirect targets
        metadata: Attached to the session
        subscription_metadata: Attached to the created subscription
            (subscription mode only)
        idempotency_key: Optional key for safe retries
    """

    mode: str
    customer_id: str
    price_id: str
    success_url: str
    cancel_url: str
    metadata: dict[str, str] = field(default_factory=dict)
    subscription_metadata: dict[str, str] | None = None
    idempotency_key: str | None = None

    def __post_init__(self) -> None:
        if self.mode not in ("subscription", "payment"):
            raise ValueError("mode must be 'subscription' or 'payment'")
        if not self.customer_id:
            raise ValueError("customer_id is required")
        if not self.price_id:
            raise ValueError("price_id is required")


@dataclass
class CheckoutSessionResult:
    id: str
    url: str
    raw_response: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods - no instance state is maintained.
    Safe to use from request handlers and Celery workers.
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure the Stripe client with API key, timeout and retries."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.max_network_retries = settings.STRIPE_MAX_RETRIES
        stripe.default_http_client = stripe.RequestsClient(
            timeout=settings.STRIPE_API_TIMEOUT_SECONDS
        )

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    def _execute(
        cls,
        operation: str,
        call: Callable[[], Any],
        log_context: dict[str, Any] | None = None,
    ) -> Any:
        """
        Run one Stripe call with timing logs and error translation.

        Raises:
            StripeError subclasses for every SDK failure
        """
        cls._configure_stripe()
        logger = cls.get_logger()
        log_context = {"operation": operation, **(log_context or {})}

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            result = call()
        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

        logger.info(
            "Stripe operation completed",
            extra={
                **log_context,
                "stripe_id": getattr(result, "id", None),
                "duration_ms": (time.time() - start_time) * 1000,
            },
        )
        return result

    # =========================================================================
    # Customers and Checkout
    # =========================================================================

    @classmethod
    def create_customer(
        cls,
        email: str,
        name: str,
        metadata: dict[str, str],
        idempotency_key: str | None = None,
    ) -> str:
        """
        Create a Stripe Customer.

        Returns:
            The new Customer ID (cus_xxx)
        """
        customer = cls._execute(
            "create_customer",
            lambda: stripe.Customer.create(
                email=email,
                name=name,
                metadata=metadata,
                idempotency_key=idempotency_key,
            ),
            {"idempotency_key": idempotency_key},
        )
        return customer.id

    @classmethod
    def create_checkout_session(
        cls,
        params: CreateCheckoutSessionParams,
    ) -> CheckoutSessionResult:
        """
        Create a hosted checkout session.

        Returns:
            CheckoutSessionResult with the redirect URL
        """
        kwargs: dict[str, Any] = {
            "mode": params.mode,
            "customer": params.customer_id,
            "line_items": [{"price": params.price_id, "quantity": 1}],
            "success_url": params.success_url,
            "cancel_url": params.cancel_url,
            "metadata": params.metadata,
            "idempotency_key": params.idempotency_key,
        }
        if params.mode == "subscription" and params.subscription_metadata:
            kwargs["subscription_data"] = {"metadata": params.subscription_metadata}

        session = cls._execute(
            "create_checkout_session",
            lambda: stripe.checkout.Session.create(**kwargs),
            {
                "mode": params.mode,
                "customer_id": params.customer_id,
                "price_id": params.price_id,
            },
        )
        return CheckoutSessionResult(
            id=session.id,
            url=session.url,
            raw_response=session.to_dict(),
        )

    # =========================================================================
    # Subscriptions
    # =========================================================================

    @classmethod
    def retrieve_subscription(cls, subscription_id: str) -> dict[str, Any]:
        """Fetch the live subscription as a plain dict."""
        subscription = cls._execute(
            "retrieve_subscription",
            lambda: stripe.Subscription.retrieve(subscription_id),
            {"subscription_id": subscription_id},
        )
        return subscription.to_dict()

    @classmethod
    def cancel_subscription(
        cls,
        subscription_id: str,
        at_period_end: bool = True,
    ) -> dict[str, Any]:
        """
        Cancel a subscription now or at the end of the current period.

        The local Subscription row is updated by the webhook that follows.
        """
        if at_period_end:
            call = lambda: stripe.Subscription.modify(  # noqa: E731
                subscription_id, cancel_at_period_end=True
            )
        else:
            call = lambda: stripe.Subscription.cancel(subscription_id)  # noqa: E731

        subscription = cls._execute(
            "cancel_subscription",
            call,
            {"subscription_id": subscription_id, "at_period_end": at_period_end},
        )
        return subscription.to_dict()

    @classmethod
    def reactivate_subscription(cls, subscription_id: str) -> dict[str, Any]:
        """Clear a scheduled cancellation."""
        subscription = cls._execute(
            "reactivate_subscription",
            lambda: stripe.Subscription.modify(
                subscription_id, cancel_at_period_end=False
            ),
            {"subscription_id": subscription_id},
        )
        return subscription.to_dict()

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def verify_webhook_signature(
        cls,
        payload: bytes,
        signature: str,
    ) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Args:
            payload: Raw request body
            signature: Stripe-Signature header value

        Returns:
            Parsed event dict

        Raises:
            StripeInvalidRequestError: Signature does not verify or the
                body is not valid JSON
        """
        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
            )
        except stripe.SignatureVerificationError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook signature",
                stripe_code="signature_verification_failed",
                details={"error": str(e)},
            ) from e
        except ValueError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook payload",
                stripe_code="invalid_payload",
                details={"error": str(e)},
            ) from e
        return event.to_dict()

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: stripe.StripeError,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe SDK exceptions to billing exceptions.

        Raises:
            StripeCardError: Card declined during checkout
            StripeInvalidRequestError: Bad parameters or credentials
            StripeRateLimitError: Rate limited
            StripeTimeoutError: No answer within the timeout
            StripeAPIUnavailableError: Network or Stripe server failure
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            logger.warning("Card error from Stripe", extra=log_context)
            raise StripeCardError(
                str(error.user_message or error),
                stripe_code=error.code,
            ) from error

        if isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            raise StripeInvalidRequestError(
                str(error.user_message or error),
                stripe_code=error.code,
            ) from error

        if isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeInvalidRequestError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            ) from error

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            ) from error

        if isinstance(error, stripe.APIConnectionError):
            if "timed out" in str(error).lower() or "timeout" in str(error).lower():
                logger.error("Stripe request timed out", extra=log_context)
                raise StripeTimeoutError(
                    "Stripe did not respond in time. Please retry.",
                    stripe_code="timeout",
                ) from error

            logger.error(
                "Connection error to Stripe",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            ) from error

        logger.error(
            f"Stripe API error: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        raise StripeAPIUnavailableError(
            "Stripe service error. Please retry.",
            stripe_code=getattr(error, "code", None) or "api_error",
        ) from error
