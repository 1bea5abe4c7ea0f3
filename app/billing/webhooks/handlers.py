"""
Webhook event handlers for Stripe events.

This module holds the handler registry, the dispatcher and the handlers that
turn Stripe events into Subscription rows and credit grants.

Every grant made here carries an idempotency key derived from the Stripe
object, so a redelivered or reprocessed event never grants twice:
    subscription:<sub_id>:initial    first activation of a subscription
    invoice:<in_id>:renewal          each paid subscription invoice
    checkout:<cs_id>:purchase        each completed credit package checkout

Usage:
    from billing.webhooks.handlers import process_webhook, register_handler

    @register_handler("customer.subscription.paused")
    def handle_subscription_paused(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = process_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone as dt_timezone
from typing import TYPE_CHECKING, Callable

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from core.services import ServiceResult
from organizations.models import Organization

from billing.adapters import StripeAdapter
from billing.exceptions import DuplicateEvent, InvalidPayload
from billing.ledger import EarnedGrant, PurchasedGrant, credit_ledger
from billing.models import (
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
    WebhookEvent,
    WebhookEventStatus,
)

if TYPE_CHECKING:
    from typing import Any


logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}

CLAIMABLE_STATUSES = (WebhookEventStatus.PENDING, WebhookEventStatus.FAILED)


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Args:
        event_type: The Stripe event type (e.g., "invoice.payment_succeeded")
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to the appropriate handler.

    Unknown event types succeed without side effects. A handler raising
    InvalidPayload yields a failed result with error code INVALID_PAYLOAD;
    any other exception propagates.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"Unhandled webhook event type: {webhook_event.event_type}",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )

    try:
        return handler(webhook_event)
    except InvalidPayload as e:
        logger.warning(
            f"Skipping malformed {webhook_event.event_type} event: {e.message}",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "details": e.details,
            },
        )
        return ServiceResult.from_exception(e)


# =============================================================================
# Processing
# =============================================================================


def claim_webhook_event(webhook_event: WebhookEvent) -> bool:
    """
    Move a pending or failed event to processing.

    The transition is a single conditional UPDATE, so of two concurrent
    deliveries of the same event only one wins the claim.

    Returns:
        True if this caller now owns the event
    """
    claimed = WebhookEvent.objects.filter(
        pk=webhook_event.pk,
        status__in=CLAIMABLE_STATUSES,
    ).update(
        status=WebhookEventStatus.PROCESSING,
        retry_count=F("retry_count") + 1,
        updated_at=timezone.now(),
    )
    webhook_event.refresh_from_db(fields=["status", "retry_count", "updated_at"])
    return bool(claimed)


def process_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Claim, dispatch and record the outcome of a stored event.

    Handlers own their transactions: provider calls happen first, then the
    local writes commit together, so a failure leaves no partial
    subscription or ledger state behind.

    Returns:
        The handler result

    Raises:
        DuplicateEvent: Already processed, or being processed elsewhere
        Exception: Whatever the handler raised, after marking the event failed
    """
    if not claim_webhook_event(webhook_event):
        logger.info(
            f"Webhook event not claimable (status: {webhook_event.status})",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        raise DuplicateEvent(
            f"Webhook event {webhook_event.stripe_event_id} is {webhook_event.status}",
            details={"status": webhook_event.status},
        )

    try:
        result = dispatch_webhook(webhook_event)
    except Exception as e:
        webhook_event.mark_failed(f"{type(e).__name__}: {e}")
        webhook_event.save(update_fields=["status", "error_message", "updated_at"])
        logger.error(
            "Webhook processing failed",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "event_type": webhook_event.event_type,
                "retry_count": webhook_event.retry_count,
            },
            exc_info=True,
        )
        raise

    if result.success:
        webhook_event.mark_processed()
        webhook_event.save(
            update_fields=["status", "processed_at", "error_message", "updated_at"]
        )
        logger.info(
            "Webhook processed successfully",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
    else:
        webhook_event.mark_failed(result.error or "Handler returned failure")
        webhook_event.save(update_fields=["status", "error_message", "updated_at"])
        logger.warning(
            f"Webhook handler failed: {result.error}",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "error_code": result.error_code,
            },
        )

    return result


# =============================================================================
# Payload Helpers
# =============================================================================


def _timestamp(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value), tz=dt_timezone.utc)


def _stripe_id(value: Any) -> str | None:
    """Stripe references arrive as ids, or as objects when expanded."""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def _get_organization(organization_id: Any) -> Organization:
    """
    Resolve the organization named in event metadata.

    Raises:
        InvalidPayload: Missing, malformed or unknown organization id
    """
    if not organization_id:
        raise InvalidPayload("Missing organization_id in metadata")
    try:
        organization = Organization.objects.filter(pk=organization_id).first()
    except (DjangoValidationError, ValueError):
        organization = None
    if organization is None:
        raise InvalidPayload(
            f"Unknown organization {organization_id}",
            details={"organization_id": str(organization_id)},
        )
    return organization


def _parse_subscription(obj: dict[str, Any]) -> dict[str, Any]:
    """
    Extract the fields a Subscription row needs.

    The billing period is read from the first subscription item, falling
    back to the subscription itself for older API versions.

    Raises:
        InvalidPayload: A required field is missing
    """
    metadata = obj.get("metadata") or {}
    items = (obj.get("items") or {}).get("data") or []
    first_item = items[0] if items else {}

    price_id = _stripe_id(first_item.get("price")) or _stripe_id(first_item.get("plan"))
    period_start = first_item.get("current_period_start") or obj.get(
        "current_period_start"
    )
    period_end = first_item.get("current_period_end") or obj.get("current_period_end")

    fields = {
        "organization_id": metadata.get("organization_id"),
        "subscription_id": obj.get("id"),
        "customer_id": _stripe_id(obj.get("customer")),
        "status": obj.get("status"),
        "price_id": price_id,
        "current_period_start": period_start,
        "current_period_end": period_end,
    }
    missing = sorted(name for name, value in fields.items() if not value)
    if missing:
        raise InvalidPayload(
            "Subscription payload is missing required fields",
            details={"missing": missing, "subscription_id": obj.get("id")},
        )
    if fields["status"] not in SubscriptionStatus.values:
        raise InvalidPayload(
            f"Unknown subscription status {fields['status']}",
            details={"subscription_id": obj.get("id")},
        )

    fields["plan_id"] = metadata.get("plan_id")
    return fields


# =============================================================================
# Subscription Handlers
# =============================================================================


def _sync_subscription(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Upsert the Subscription row from a customer.subscription.* event.

    Only the event that first inserts the row can grant the plan's credits,
    and only if the subscription is already active then. A subscription
    that activates later gets its credits from the paid invoice instead.
    """
    obj = webhook_event.get_object()
    fields = _parse_subscription(obj)
    organization = _get_organization(fields["organization_id"])
    plan = SubscriptionPlan.resolve(
        plan_id=fields["plan_id"], price_id=fields["price_id"]
    )

    values = {
        "organization": organization,
        "plan": plan,
        "stripe_customer_id": fields["customer_id"],
        "stripe_price_id": fields["price_id"],
        "status": fields["status"],
        "current_period_start": _timestamp(fields["current_period_start"]),
        "current_period_end": _timestamp(fields["current_period_end"]),
        "cancel_at_period_end": bool(obj.get("cancel_at_period_end")),
        "canceled_at": _timestamp(obj.get("canceled_at")),
        "trial_end": _timestamp(obj.get("trial_end")),
    }
    if webhook_event.event_type == "customer.subscription.deleted":
        values["status"] = SubscriptionStatus.CANCELED
        values["canceled_at"] = (
            values["canceled_at"]
            or _timestamp(obj.get("ended_at"))
            or timezone.now()
        )

    with transaction.atomic():
        subscription = (
            Subscription.objects.select_for_update()
            .filter(stripe_subscription_id=fields["subscription_id"])
            .first()
        )
        created = subscription is None
        if created:
            subscription = Subscription(
                stripe_subscription_id=fields["subscription_id"]
            )
        for name, value in values.items():
            setattr(subscription, name, value)
        subscription.save()

        if (
            created
            and subscription.is_active
            and not subscription.initial_credits_granted
        ):
            _grant_initial_credits(subscription)

    logger.info(
        "Subscription created" if created else "Subscription updated",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "organization_id": str(organization.id),
            "subscription_id": subscription.stripe_subscription_id,
            "status": subscription.status,
        },
    )

    return ServiceResult.success(subscription)


def _grant_initial_credits(subscription: Subscription) -> None:
    plan = subscription.plan
    if plan is None:
        logger.warning(
            "No plan for active subscription, initial credits not granted",
            extra={
                "subscription_id": subscription.stripe_subscription_id,
                "price_id": subscription.stripe_price_id,
            },
        )
        return

    if plan.credits_included == 0:
        # Nothing to grant, but the activation is still accounted for
        subscription.initial_credits_granted = True
        subscription.save(update_fields=["initial_credits_granted", "updated_at"])
        return

    credit_ledger.grant(
        subscription.organization_id,
        EarnedGrant(
            amount=plan.credits_included,
            description=f"Credits from {plan.name} subscription",
            subscription_id=subscription.stripe_subscription_id,
            plan_id=plan.plan_id,
            idempotency_key=f"subscription:{subscription.stripe_subscription_id}:initial",
        ),
    )
    subscription.initial_credits_granted = True
    subscription.save(update_fields=["initial_credits_granted", "updated_at"])

    logger.info(
        "Initial subscription credits granted",
        extra={
            "organization_id": str(subscription.organization_id),
            "subscription_id": subscription.stripe_subscription_id,
            "amount": plan.credits_included,
        },
    )


@register_handler("customer.subscription.created")
def handle_subscription_created(webhook_event: WebhookEvent) -> ServiceResult:
    return _sync_subscription(webhook_event)


@register_handler("customer.subscription.updated")
def handle_subscription_updated(webhook_event: WebhookEvent) -> ServiceResult:
    return _sync_subscription(webhook_event)


@register_handler("customer.subscription.deleted")
def handle_subscription_deleted(webhook_event: WebhookEvent) -> ServiceResult:
    return _sync_subscription(webhook_event)


# =============================================================================
# Invoice Handlers
# =============================================================================


def _invoice_subscription_id(invoice: dict[str, Any]) -> str | None:
    """Subscription reference of an invoice, across API versions."""
    subscription_id = _stripe_id(invoice.get("subscription"))
    if subscription_id:
        return subscription_id
    parent = invoice.get("parent") or {}
    details = parent.get("subscription_details") or {}
    return _stripe_id(details.get("subscription"))


@register_handler("invoice.payment_succeeded")
def handle_invoice_payment_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Grant the plan's credits for a paid subscription invoice.

    The live subscription is fetched from Stripe; credits are only granted
    while it is active. A Stripe failure propagates so the event is retried.
    """
    invoice = webhook_event.get_object()
    invoice_id = invoice.get("id")
    subscription_id = _invoice_subscription_id(invoice)

    if not subscription_id:
        logger.info(
            "Invoice without subscription, nothing to grant",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "invoice_id": invoice_id,
            },
        )
        return ServiceResult.success(None)
    if not invoice_id:
        raise InvalidPayload("Invoice payload is missing its id")

    live = StripeAdapter.retrieve_subscription(subscription_id)
    if live.get("status") != SubscriptionStatus.ACTIVE:
        logger.info(
            "Subscription not active, renewal credits not granted",
            extra={
                "subscription_id": subscription_id,
                "status": live.get("status"),
            },
        )
        return ServiceResult.success(None)

    metadata = live.get("metadata") or {}
    organization_id = metadata.get("organization_id")
    if not organization_id:
        local = Subscription.objects.filter(
            stripe_subscription_id=subscription_id
        ).first()
        organization_id = local.organization_id if local else None
    organization = _get_organization(organization_id)

    items = (live.get("items") or {}).get("data") or []
    price_id = _stripe_id(items[0].get("price")) if items else None
    plan = SubscriptionPlan.resolve(plan_id=metadata.get("plan_id"), price_id=price_id)
    if plan is None:
        raise InvalidPayload(
            "No plan for renewed subscription",
            details={"subscription_id": subscription_id, "price_id": price_id},
        )
    if plan.credits_included == 0:
        logger.info(
            "Plan includes no credits, nothing to grant",
            extra={"subscription_id": subscription_id, "plan_id": plan.plan_id},
        )
        return ServiceResult.success(None)

    result = credit_ledger.grant(
        organization.id,
        EarnedGrant(
            amount=plan.credits_included,
            description=f"Credits from {plan.name} subscription renewal",
            subscription_id=subscription_id,
            plan_id=plan.plan_id,
            invoice_id=invoice_id,
            idempotency_key=f"invoice:{invoice_id}:renewal",
        ),
    )

    logger.info(
        "Renewal credits granted",
        extra={
            "organization_id": str(organization.id),
            "subscription_id": subscription_id,
            "invoice_id": invoice_id,
            "amount": plan.credits_included,
            "grant_created": result.created,
        },
    )
    return ServiceResult.success(result)


# =============================================================================
# Checkout Handlers
# =============================================================================


@register_handler("checkout.session.completed")
def handle_checkout_session_completed(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Grant purchased credits for a completed credit package checkout.

    Subscription-mode sessions are ignored; their credits arrive through the
    subscription and invoice events.
    """
    session = webhook_event.get_object()
    session_id = session.get("id")

    if session.get("mode") != "payment":
        logger.info(
            "Ignoring non-payment checkout session",
            extra={"checkout_session_id": session_id, "mode": session.get("mode")},
        )
        return ServiceResult.success(None)

    if session.get("payment_status") == "unpaid":
        logger.info(
            "Checkout session completed without payment, waiting",
            extra={"checkout_session_id": session_id},
        )
        return ServiceResult.success(None)

    metadata = session.get("metadata") or {}
    organization = _get_organization(metadata.get("organization_id"))

    try:
        credits = int(metadata.get("credits"))
    except (TypeError, ValueError):
        raise InvalidPayload(
            "Invalid credits value in session metadata",
            details={"checkout_session_id": session_id, "credits": metadata.get("credits")},
        ) from None
    if credits <= 0 or not session_id:
        raise InvalidPayload(
            "Checkout session has no credits to grant",
            details={"checkout_session_id": session_id, "credits": credits},
        )

    result = credit_ledger.grant(
        organization.id,
        PurchasedGrant(
            amount=credits,
            description=f"Purchased {credits} credits",
            payment_id=_stripe_id(session.get("payment_intent")) or session_id,
            package_id=metadata.get("package_id"),
            checkout_session_id=session_id,
            idempotency_key=f"checkout:{session_id}:purchase",
        ),
    )

    logger.info(
        "Purchased credits granted",
        extra={
            "organization_id": str(organization.id),
            "checkout_session_id": session_id,
            "amount": credits,
            "grant_created": result.created,
        },
    )
    return ServiceResult.success(result)
