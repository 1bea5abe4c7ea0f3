"""
Celery tasks for billing.

This module provides async tasks for:
- Expiring lapsed credit entries (the expiration sweep)
- Reprocessing stored Stripe webhook events
- Retrying failed webhook events
- Resetting webhook events stuck in processing

Schedules live in django-celery-beat (see migration 0003_periodic_tasks).

Usage:
    from billing.tasks import expire_credits, process_webhook_event

    expire_credits.delay()
    process_webhook_event.delay(str(webhook_event.id))
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from billing.exceptions import DuplicateEvent, LockAcquisitionError
from billing.ledger import credit_ledger
from billing.locks import DistributedLock
from billing.models import WebhookEvent, WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

EXPIRE_CREDITS_LOCK_KEY = "billing:expire-credits"
EXPIRE_CREDITS_LOCK_TTL = 15 * 60
RETRY_BATCH_SIZE = 100


# =============================================================================
# Credit Expiration
# =============================================================================


@shared_task
def expire_credits() -> dict:
    """
    Zero out every credit entry whose expiry has passed.

    Runs under a Redis lock so that two workers never sweep at the same
    time; a run that finds the lock taken returns without doing anything.

    Returns:
        Dict with expired_entry_count and total_expired, or status "skipped"
    """
    try:
        with DistributedLock(
            EXPIRE_CREDITS_LOCK_KEY,
            ttl=EXPIRE_CREDITS_LOCK_TTL,
            blocking=False,
        ):
            result = credit_ledger.expire_sweep()
    except LockAcquisitionError:
        logger.info("Credit expiration already running elsewhere, skipping")
        return {"status": "skipped"}

    return {"status": "completed", **result.to_dict()}


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": settings.BILLING_WEBHOOK_MAX_RETRIES},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a stored Stripe webhook event.

    Used to retry events the receiver could not process. Exceptions are
    re-raised so Celery retries with backoff.

    Returns:
        Dict with processing result status
    """
    from billing.webhooks.handlers import process_webhook

    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    webhook_event = WebhookEvent.objects.filter(id=webhook_event_id).first()
    if webhook_event is None:
        logger.error(
            "WebhookEvent not found",
            extra={"webhook_event_id": str(webhook_event_id)},
        )
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    if webhook_event.is_processed:
        return {
            "status": "already_processed",
            "webhook_event_id": str(webhook_event_id),
        }

    try:
        result = process_webhook(webhook_event)
    except DuplicateEvent:
        status = "not_claimable"
    else:
        status = "processed" if result.success else "handler_failed"

    return {
        "status": status,
        "webhook_event_id": str(webhook_event_id),
        "stripe_event_id": webhook_event.stripe_event_id,
    }


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Requeue failed webhook events that still have attempts left.

    Returns:
        Dict with count of webhooks queued for retry
    """
    failed_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=settings.BILLING_WEBHOOK_MAX_RETRIES,
    ).order_by("created_at")[:RETRY_BATCH_SIZE]

    queued_count = 0
    for webhook in failed_webhooks:
        process_webhook_event.delay(str(webhook.id))
        queued_count += 1
        logger.info(
            "Queued failed webhook for retry",
            extra={
                "webhook_event_id": str(webhook.id),
                "stripe_event_id": webhook.stripe_event_id,
                "retry_count": webhook.retry_count,
            },
        )

    if queued_count:
        logger.info(
            f"Queued {queued_count} failed webhooks for retry",
            extra={"queued_count": queued_count},
        )

    return {"queued_count": queued_count}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Reset webhook events left in processing by a crashed worker.

    Events older than BILLING_WEBHOOK_STUCK_AFTER_MINUTES are marked failed
    so retry_failed_webhooks picks them up.

    Returns:
        Dict with count of webhooks reset
    """
    threshold = timezone.now() - timedelta(
        minutes=settings.BILLING_WEBHOOK_STUCK_AFTER_MINUTES
    )
    stuck_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSING,
        updated_at__lt=threshold,
    )

    reset_count = 0
    for webhook in stuck_webhooks:
        stuck_since = webhook.updated_at
        webhook.mark_failed("Processing timed out - reset for retry")
        webhook.save(update_fields=["status", "error_message", "updated_at"])
        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={
                "webhook_event_id": str(webhook.id),
                "stripe_event_id": webhook.stripe_event_id,
                "stuck_since": stuck_since.isoformat(),
            },
        )

    return {"reset_count": reset_count}
