"""
Billing models.

Models:
    CreditBalance, CreditEntry, CreditTransaction: Ledger Store (billing.ledger)
    SubscriptionPlan, CreditPackage: Product catalog
    Subscription: Local mirror of the Stripe subscription
    WebhookEvent: Stored Stripe events for deduplication and retry
"""

from billing.ledger.models import (
    CreditBalance,
    CreditEntry,
    CreditTransaction,
    CreditType,
    TransactionType,
)
from billing.models.catalog import BillingInterval, CreditPackage, SubscriptionPlan
from billing.models.subscription import Subscription, SubscriptionStatus
from billing.models.webhook_event import WebhookEvent, WebhookEventStatus

__all__ = [
    "BillingInterval",
    "CreditBalance",
    "CreditEntry",
    "CreditPackage",
    "CreditTransaction",
    "CreditType",
    "Subscription",
    "SubscriptionPlan",
    "SubscriptionStatus",
    "TransactionType",
    "WebhookEvent",
    "WebhookEventStatus",
]
