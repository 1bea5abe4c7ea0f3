"""
External service adapters for billing.

Usage:
    from billing.adapters import StripeAdapter
"""

from .stripe_adapter import (
    CheckoutSessionResult,
    CreateCheckoutSessionParams,
    StripeAdapter,
)

__all__ = [
    "CheckoutSessionResult",
    "CreateCheckoutSessionParams",
    "StripeAdapter",
]
