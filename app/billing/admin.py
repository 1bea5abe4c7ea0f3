"""
Billing admin configuration.

This file imports admin configurations from the ledger submodule
and registers catalog, subscription and webhook models with the Django admin.
"""

from django.contrib import admin, messages

from billing.ledger.admin import (
    CreditBalanceAdmin,
    CreditEntryAdmin,
    CreditTransactionAdmin,
)
from billing.models import (
    CreditPackage,
    Subscription,
    SubscriptionPlan,
    WebhookEvent,
    WebhookEventStatus,
)

__all__ = [
    "CreditBalanceAdmin",
    "CreditEntryAdmin",
    "CreditTransactionAdmin",
    "SubscriptionPlanAdmin",
    "CreditPackageAdmin",
    "SubscriptionAdmin",
    "WebhookEventAdmin",
]


@admin.register(SubscriptionPlan)
class SubscriptionPlanAdmin(admin.ModelAdmin):
    list_display = [
        "plan_id",
        "name",
        "monthly_price",
        "yearly_price",
        "credits_included",
        "is_active",
        "sort_order",
    ]
    list_filter = ["is_active"]
    list_editable = ["is_active", "sort_order"]
    search_fields = ["plan_id", "name", "stripe_price_id_monthly", "stripe_price_id_yearly"]
    ordering = ["sort_order", "id"]


@admin.register(CreditPackage)
class CreditPackageAdmin(admin.ModelAdmin):
    list_display = ["package_id", "name", "credits", "price", "is_active", "sort_order"]
    list_filter = ["is_active"]
    list_editable = ["is_active", "sort_order"]
    search_fields = ["package_id", "name", "stripe_price_id"]
    ordering = ["sort_order", "id"]


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """
    Admin configuration for Subscription.

    Rows are written by the Stripe webhooks; the admin is for inspection.
    """

    list_display = [
        "stripe_subscription_id",
        "organization",
        "plan",
        "status",
        "current_period_end",
        "cancel_at_period_end",
        "initial_credits_granted",
        "created_at",
    ]
    list_filter = ["status", "cancel_at_period_end", "plan"]
    search_fields = [
        "stripe_subscription_id",
        "stripe_customer_id",
        "organization__name",
        "organization__slug",
    ]
    list_select_related = ["organization", "plan"]
    readonly_fields = [
        "id",
        "organization",
        "stripe_subscription_id",
        "stripe_customer_id",
        "stripe_price_id",
        "initial_credits_granted",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    fieldsets = (
        (None, {"fields": ("id", "organization", "plan", "status")}),
        (
            "Stripe",
            {
                "fields": (
                    "stripe_subscription_id",
                    "stripe_customer_id",
                    "stripe_price_id",
                ),
            },
        ),
        (
            "Period",
            {
                "fields": (
                    "current_period_start",
                    "current_period_end",
                    "cancel_at_period_end",
                    "canceled_at",
                    "trial_end",
                ),
            },
        ),
        (
            "Credits",
            {"fields": ("initial_credits_granted",)},
        ),
        (
            "Metadata",
            {"fields": ("metadata", "created_at", "updated_at"), "classes": ("collapse",)},
        ),
    )


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Events are immutable once received; failed ones can be requeued.
    """

    list_display = [
        "stripe_event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["id", "stripe_event_id", "event_type"]
    readonly_fields = [
        "id",
        "stripe_event_id",
        "event_type",
        "payload",
        "status",
        "retry_count",
        "processed_at",
        "error_message",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["requeue_failed_events"]

    fieldsets = (
        (None, {"fields": ("id", "stripe_event_id", "event_type", "status")}),
        ("Processing", {"fields": ("processed_at", "retry_count")}),
        ("Error Info", {"fields": ("error_message",), "classes": ("collapse",)}),
        ("Payload", {"fields": ("payload",), "classes": ("collapse",)}),
        ("Timestamps", {"fields": ("created_at", "updated_at"), "classes": ("collapse",)}),
    )

    @admin.action(description="Requeue selected failed events")
    def requeue_failed_events(self, request, queryset):
        from billing.tasks import process_webhook_event

        failed = queryset.filter(status=WebhookEventStatus.FAILED)
        count = 0
        for webhook_event in failed:
            process_webhook_event.delay(str(webhook_event.id))
            count += 1
        self.message_user(request, f"Queued {count} event(s) for processing", messages.SUCCESS)
