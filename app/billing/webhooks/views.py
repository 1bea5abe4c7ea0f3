"""
Webhook endpoint view for Stripe.

The view verifies the signature, stores the event idempotently and processes
it before answering, so the status code tells Stripe whether to redeliver:

    200  processed, replayed, already in progress, or skipped as malformed
    400  missing or invalid Stripe-Signature, or an event without id/type
    500  webhook secret not configured, or processing failed

Usage:
    # In urls.py
    from billing.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.conf import settings
from django.db import IntegrityError
from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from billing.adapters import StripeAdapter
from billing.exceptions import DuplicateEvent, StripeInvalidRequestError
from billing.models import WebhookEvent, WebhookEventStatus
from billing.webhooks.handlers import process_webhook


logger = logging.getLogger(__name__)


def _store_event(event_data: dict) -> WebhookEvent:
    """Insert the event if it is new; a concurrent insert of the same id wins."""
    stripe_event_id = event_data["id"]
    try:
        webhook_event, _ = WebhookEvent.objects.get_or_create(
            stripe_event_id=stripe_event_id,
            defaults={
                "event_type": event_data["type"],
                "payload": event_data,
                "status": WebhookEventStatus.PENDING,
            },
        )
    except IntegrityError:
        webhook_event = WebhookEvent.objects.get(stripe_event_id=stripe_event_id)
    return webhook_event


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive, store and process a Stripe webhook event.

    Idempotency:
    - WebhookEvent.stripe_event_id is unique
    - A processed event answers 200 without running any handler
    - Processing starts only after a conditional claim of the event, so
      concurrent deliveries cannot both apply side effects

    Example Stripe-Signature header:
        t=1614556800,v1=xxx,v0=yyy
    """
    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("STRIPE_WEBHOOK_SECRET is not configured")
        return HttpResponse("Webhook secret not configured", status=500)

    signature = request.headers.get("Stripe-Signature", "")
    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        return HttpResponse("Missing signature", status=400)

    try:
        event_data = StripeAdapter.verify_webhook_signature(request.body, signature)
    except StripeInvalidRequestError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": str(e)},
        )
        return HttpResponse("Invalid signature", status=400)

    stripe_event_id = event_data.get("id")
    event_type = event_data.get("type")
    if not stripe_event_id or not event_type:
        logger.warning("Webhook missing required fields")
        return HttpResponse("Invalid event", status=400)

    logger.info(
        f"Received Stripe webhook: {event_type}",
        extra={"stripe_event_id": stripe_event_id, "event_type": event_type},
    )

    webhook_event = _store_event(event_data)
    if webhook_event.is_processed:
        logger.info(
            "Webhook already processed, returning success",
            extra={"stripe_event_id": stripe_event_id},
        )
        return HttpResponse("Already processed", status=200)

    try:
        result = process_webhook(webhook_event)
    except DuplicateEvent:
        return HttpResponse("Already processing", status=200)
    except Exception:
        # process_webhook has already marked the event failed and logged it
        return HttpResponse("Processing failed", status=500)

    if not result.success:
        return HttpResponse("Skipped", status=200)
    return HttpResponse("Processed", status=200)
