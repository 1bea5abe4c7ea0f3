"""
WebhookEvent model for provider event deduplication.

Every verified Stripe delivery is stored here keyed by its event id. The
unique constraint is what makes redelivery safe: a second delivery of the
same event finds the existing row and its status instead of re-running
the handler.

Usage:
    from billing.models import WebhookEvent, WebhookEventStatus

    event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id="evt_123",
        defaults={"event_type": "invoice.payment_succeeded", "payload": payload},
    )
    if event.is_processed:
        return HttpResponse(status=200)
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class WebhookEventStatus(models.TextChoices):
    """
    Processing status of a stored webhook event.

    Transitions:
        PENDING -> PROCESSING (claimed by the receiver or the retry task)
        PROCESSING -> PROCESSED | FAILED
        FAILED -> PROCESSING (retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    A stored Stripe webhook event.

    Fields:
        stripe_event_id: Stripe Event ID (evt_xxx), unique
        event_type: Stripe event type
        payload: Full event JSON
        status: Processing status
        processed_at: When processing succeeded
        error_message: Last failure, if any
        retry_count: Number of processing attempts
    """

    stripe_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Event ID (evt_xxx)",
    )
    event_type = models.CharField(max_length=100, db_index=True)
    payload = models.JSONField()
    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
    )
    processed_at = models.DateTimeField(null=True, blank=True)
    error_message = models.TextField(null=True, blank=True)
    retry_count = models.PositiveSmallIntegerField(default=0)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(
                fields=["status", "created_at"], name="webhook_status_created_idx"
            ),
            models.Index(
                fields=["status", "retry_count"], name="webhook_status_retry_idx"
            ),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.stripe_event_id}, {self.event_type})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def is_processing(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSING

    @property
    def is_failed(self) -> bool:
        return self.status == WebhookEventStatus.FAILED

    @property
    def can_retry(self) -> bool:
        """Failed with attempts left under BILLING_WEBHOOK_MAX_RETRIES."""
        return self.is_failed and self.retry_count < settings.BILLING_WEBHOOK_MAX_RETRIES

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def mark_processed(self) -> None:
        """Mark event as successfully processed. Does not save."""
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        """Mark event as failed. Does not save."""
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

    def get_object(self) -> dict:
        """Return payload.data.object, or an empty dict if absent."""
        try:
            obj = self.payload.get("data", {}).get("object")
        except AttributeError:
            return {}
        return obj if isinstance(obj, dict) else {}

    def get_object_id(self) -> str | None:
        return self.get_object().get("id")
