"""
Consumption priority order.

Pools are drained in the order listed. Credits most likely to lapse or be
clawed back go first (bonus, then earned), durable credits last. Within a
pool, expiring types are ordered soonest-expiry first with never-expiring
entries last; the others are FIFO by creation.
"""

from django.db.models import F

from .models import CreditType
from .types import PoolDescriptor

BY_EXPIRY = (F("expires_at").asc(nulls_last=True), "created_at", "id")
BY_CREATION = ("created_at", "id")

CONSUMPTION_POOLS: tuple[PoolDescriptor, ...] = (
    PoolDescriptor(credit_type=CreditType.BONUS, order_by=BY_EXPIRY),
    PoolDescriptor(credit_type=CreditType.EARNED, order_by=BY_EXPIRY),
    PoolDescriptor(credit_type=CreditType.REFUNDED, order_by=BY_CREATION),
    PoolDescriptor(credit_type=CreditType.PURCHASED, order_by=BY_CREATION),
)
