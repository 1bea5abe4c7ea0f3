"""
DRF serializers for the billing API.

This module provides serializers for:
- Catalog display (plans, credit packages)
- Credit balance, history and breakdown
- Subscription display
- Request bodies of the credit and subscription actions

Related files:
    - views.py: Billing API views
    - services/: Operations the request serializers feed

Usage:
    serializer = ConsumeCreditsSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    CreditService.consume(
        organization_id=organization_id,
        user=request.user,
        **serializer.validated_data,
    )
"""

from __future__ import annotations

from rest_framework import serializers

from billing.ledger.models import CreditBalance, CreditEntry, CreditTransaction
from billing.models import (
    BillingInterval,
    CreditPackage,
    Subscription,
    SubscriptionPlan,
)


# =============================================================================
# Catalog
# =============================================================================


class SubscriptionPlanSerializer(serializers.ModelSerializer):
    class Meta:
        model = SubscriptionPlan
        fields = [
            "plan_id",
            "name",
            "description",
            "monthly_price",
            "yearly_price",
            "credits_included",
            "features",
        ]
        read_only_fields = fields


class CreditPackageSerializer(serializers.ModelSerializer):
    class Meta:
        model = CreditPackage
        fields = ["package_id", "name", "description", "credits", "price"]
        read_only_fields = fields


# =============================================================================
# Credits
# =============================================================================


class CreditBalanceSerializer(serializers.ModelSerializer):
    """
    Aggregate balance and lifetime totals.

    `last_updated` is null for an organization that never received credits.
    """

    last_updated = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = CreditBalance
        fields = [
            "balance",
            "total_earned",
            "total_purchased",
            "total_bonus",
            "total_refunded",
            "total_used",
            "last_updated",
        ]
        read_only_fields = fields


class CreditTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = CreditTransaction
        fields = [
            "id",
            "transaction_type",
            "amount",
            "description",
            "metadata",
            "created_at",
        ]
        read_only_fields = fields


class CreditEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = CreditEntry
        fields = [
            "id",
            "credit_type",
            "amount",
            "remaining",
            "expires_at",
            "description",
            "created_at",
        ]
        read_only_fields = fields


class PoolBreakdownSerializer(serializers.Serializer):
    total = serializers.IntegerField()
    expiring_soon = serializers.IntegerField()
    entries = CreditEntrySerializer(many=True)


class CreditBreakdownSerializer(serializers.Serializer):
    """
    Remaining credits grouped by type.

    Example:
        {
            "total": 1500,
            "expiring_soon": 200,
            "pools": {"bonus": {"total": 200, "expiring_soon": 200, "entries": [...]}, ...}
        }
    """

    total = serializers.IntegerField()
    expiring_soon = serializers.IntegerField()
    pools = serializers.DictField(child=PoolBreakdownSerializer())


class ConsumptionAllocationSerializer(serializers.Serializer):
    entry_id = serializers.UUIDField()
    consumed = serializers.IntegerField()
    credit_type = serializers.CharField()


class ConsumeResultSerializer(serializers.Serializer):
    new_balance = serializers.IntegerField()
    transaction_id = serializers.UUIDField()
    breakdown = ConsumptionAllocationSerializer(many=True)


class GrantResultSerializer(serializers.Serializer):
    new_balance = serializers.IntegerField()
    transaction_id = serializers.UUIDField(allow_null=True)


class ConsumeCreditsSerializer(serializers.Serializer):
    amount = serializers.IntegerField(min_value=1)
    description = serializers.CharField(max_length=500)
    service_used = serializers.CharField(max_length=100, required=False)


class GrantBonusSerializer(serializers.Serializer):
    """
    Bonus grant request.

    Fields:
        expires_in_days: Defaults to CREDIT_BONUS_DEFAULT_EXPIRY_DAYS
        promotion_code / referral_id: Recorded on the grant
    """

    amount = serializers.IntegerField(min_value=1)
    description = serializers.CharField(max_length=500)
    expires_in_days = serializers.IntegerField(min_value=1, required=False)
    promotion_code = serializers.CharField(max_length=100, required=False)
    referral_id = serializers.CharField(max_length=100, required=False)


class CreditCheckoutSerializer(serializers.Serializer):
    package_id = serializers.CharField(max_length=50)


# =============================================================================
# Subscriptions
# =============================================================================


class SubscriptionSerializer(serializers.ModelSerializer):
    """
    Subscription serializer for API responses.

    Fields:
        plan: Catalog plan, null when the Stripe price is unknown here
        is_active: Computed active status
    """

    plan = SubscriptionPlanSerializer(read_only=True)
    is_active = serializers.BooleanField(read_only=True)

    class Meta:
        model = Subscription
        fields = [
            "id",
            "plan",
            "status",
            "is_active",
            "current_period_start",
            "current_period_end",
            "cancel_at_period_end",
            "canceled_at",
            "trial_end",
            "created_at",
        ]
        read_only_fields = fields


class SubscriptionCheckoutSerializer(serializers.Serializer):
    plan_id = serializers.CharField(max_length=50)
    interval = serializers.ChoiceField(
        choices=BillingInterval.choices,
        default=BillingInterval.MONTH,
    )


class CancelSubscriptionSerializer(serializers.Serializer):
    """
    Fields:
        at_period_end: Cancel when the current period ends (default) or now
    """

    at_period_end = serializers.BooleanField(default=True)


class CheckoutSessionSerializer(serializers.Serializer):
    url = serializers.URLField()
