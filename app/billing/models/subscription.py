"""
Subscription model mirroring the organization's Stripe subscription.

Rows are written only by the webhook reconciler (billing.webhooks) and keyed
by stripe_subscription_id. Status values mirror Stripe's, so there is no
local state machine: whatever Stripe reports is stored.

Usage:
    from billing.models import Subscription

    current = Subscription.objects.current_for(organization_id)
    if current and current.is_active:
        ...
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel


class SubscriptionStatus(models.TextChoices):
    """Stripe subscription statuses."""

    ACTIVE = "active", "Active"
    CANCELED = "canceled", "Canceled"
    INCOMPLETE = "incomplete", "Incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired", "Incomplete Expired"
    PAST_DUE = "past_due", "Past Due"
    TRIALING = "trialing", "Trialing"
    UNPAID = "unpaid", "Unpaid"
    PAUSED = "paused", "Paused"


class SubscriptionQuerySet(models.QuerySet):
    def current_for(self, organization_id):
        """Most recently created subscription of the organization, or None."""
        return (
            self.filter(organization_id=organization_id)
            .select_related("plan")
            .order_by("-created_at")
            .first()
        )


class Subscription(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    An organization's subscription to a plan.

    One active row per organization is expected; older rows stay as history.

    Fields:
        organization: Subscribing organization
        plan: Resolved catalog plan (None if Stripe's price is unknown here)
        stripe_subscription_id: Stripe Subscription ID (sub_xxx)
        stripe_customer_id: Stripe Customer ID (cus_xxx)
        stripe_price_id: Stripe Price ID of the first line item
        status: Stripe status
        current_period_start/end: Current billing period
        cancel_at_period_end: Whether cancellation is scheduled
        canceled_at: When Stripe ended the subscription
        trial_end: End of trial, if any
        initial_credits_granted: Whether the activation grant has been made
    """

    organization = models.ForeignKey(
        "organizations.Organization",
        on_delete=models.PROTECT,
        related_name="subscriptions",
    )
    plan = models.ForeignKey(
        "billing.SubscriptionPlan",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="subscriptions",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_subscription_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Subscription ID (sub_xxx)",
    )
    stripe_customer_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Stripe Customer ID (cus_xxx)",
    )
    stripe_price_id = models.CharField(
        max_length=255,
        help_text="Stripe Price ID (price_xxx)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=SubscriptionStatus.choices,
        db_index=True,
    )
    current_period_start = models.DateTimeField()
    current_period_end = models.DateTimeField()
    cancel_at_period_end = models.BooleanField(default=False)
    canceled_at = models.DateTimeField(null=True, blank=True)
    trial_end = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Grant Tracking
    # ==========================================================================

    initial_credits_granted = models.BooleanField(
        default=False,
        help_text="Whether the plan's credits were granted on activation",
    )

    objects = SubscriptionQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Subscription"
        verbose_name_plural = "Subscriptions"
        indexes = [
            models.Index(
                fields=["organization", "-created_at"],
                name="subscription_org_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"Subscription({self.stripe_subscription_id}, {self.status})"

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    @property
    def is_canceled(self) -> bool:
        return self.status == SubscriptionStatus.CANCELED
