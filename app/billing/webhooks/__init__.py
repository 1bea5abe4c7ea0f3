"""
Webhook Reconciler: Stripe events into subscriptions and credit grants.

Webhooks are verified, stored idempotently in WebhookEvent and processed
before the response is sent. Failed events are retried by
billing.tasks.retry_failed_webhooks.

Usage:
    # In urls.py
    from billing.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from billing.webhooks.handlers import dispatch_webhook, process_webhook, register_handler
from billing.webhooks.views import stripe_webhook

__all__ = [
    "dispatch_webhook",
    "process_webhook",
    "register_handler",
    "stripe_webhook",
]
