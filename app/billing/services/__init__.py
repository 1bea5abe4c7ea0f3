"""
Billing services behind the Authorization Gate.

This module provides:
- CreditService: Consume credits, grant bonus credits, credit package checkout
- SubscriptionService: Current subscription, checkout, cancel, reactivate
- CustomerService: Stripe customer creation on first checkout

Usage:
    from billing.services import CreditService, SubscriptionService

    CreditService.consume(
        organization_id=org.id,
        user=request.user,
        amount=15,
        description="Report export",
    )

    SubscriptionService.cancel(
        organization_id=org.id,
        user=request.user,
        at_period_end=False,
    )
"""

from billing.services.credit_service import CreditService
from billing.services.customer_service import CustomerService
from billing.services.subscription_service import SubscriptionService

__all__ = [
    "CreditService",
    "CustomerService",
    "SubscriptionService",
]
