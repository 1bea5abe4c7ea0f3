"""
Billing app configuration.

This app provides the credit ledger and its feeders:
- Credit Accounting Engine (billing.ledger)
- Stripe webhook reconciliation (billing.webhooks)
- Subscription and credit checkout flows (billing.services)
- Periodic credit expiration (billing.tasks)
"""

from django.apps import AppConfig


class BillingConfig(AppConfig):
    """Configuration for the billing application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "billing"
    verbose_name = "Billing"

    def ready(self):
        """Register webhook handlers with the dispatch registry."""
        from billing.webhooks import handlers  # noqa: F401
