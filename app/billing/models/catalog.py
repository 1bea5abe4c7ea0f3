"""
Billing catalog models.

SubscriptionPlan and CreditPackage are the product catalog the checkout
flows and webhook handlers look up by their public id ("starter",
"credits_500"). Prices are stored in minor units and passed through to
Stripe untouched.

Usage:
    from billing.models import SubscriptionPlan

    plan = SubscriptionPlan.objects.active().get(plan_id="pro")
    price_id = plan.price_id_for_interval(BillingInterval.YEAR)
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel


class BillingInterval(models.TextChoices):
    MONTH = "month", "Monthly"
    YEAR = "year", "Yearly"


class CatalogQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True).order_by("sort_order", "id")


class SubscriptionPlan(BaseModel):
    """
    A subscription plan with credits included each billing period.

    Fields:
        plan_id: Public identifier carried in checkout metadata
        name: Display name, also used in grant descriptions
        stripe_price_id_monthly/yearly: Stripe prices for each interval
        monthly_price/yearly_price: Prices in minor units (display only)
        credits_included: Earned credits granted on activation and renewal
        features: Marketing bullet points
        is_active: Whether the plan can be purchased
        sort_order: Display order
    """

    plan_id = models.SlugField(max_length=50, unique=True)
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    stripe_price_id_monthly = models.CharField(max_length=255, db_index=True)
    stripe_price_id_yearly = models.CharField(max_length=255, db_index=True)
    monthly_price = models.PositiveIntegerField(help_text="Minor currency units")
    yearly_price = models.PositiveIntegerField(help_text="Minor currency units")
    credits_included = models.PositiveIntegerField()
    features = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)
    sort_order = models.PositiveSmallIntegerField(default=0)

    objects = CatalogQuerySet.as_manager()

    class Meta:
        ordering = ["sort_order", "id"]

    def __str__(self) -> str:
        return self.name

    def price_id_for_interval(self, interval: str) -> str:
        if interval == BillingInterval.YEAR:
            return self.stripe_price_id_yearly
        return self.stripe_price_id_monthly

    @classmethod
    def resolve(cls, plan_id: str | None = None, price_id: str | None = None):
        """
        Find a plan by public id, falling back to a Stripe price id.

        Subscriptions created through checkout carry the plan id in their
        metadata; ones created in the Stripe dashboard only have a price.
        """
        if plan_id:
            plan = cls.objects.filter(plan_id=plan_id).first()
            if plan is not None:
                return plan
        if price_id:
            return cls.objects.filter(
                models.Q(stripe_price_id_monthly=price_id)
                | models.Q(stripe_price_id_yearly=price_id)
            ).first()
        return None


class CreditPackage(BaseModel):
    """
    A one-time purchasable bundle of credits.

    Fields:
        package_id: Public identifier carried in checkout metadata
        name: Display name
        stripe_price_id: Stripe one-time price
        credits: Purchased credits granted on payment
        price: Price in minor units (display only)
        is_active: Whether the package can be purchased
        sort_order: Display order
    """

    package_id = models.SlugField(max_length=50, unique=True)
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    stripe_price_id = models.CharField(max_length=255)
    credits = models.PositiveIntegerField()
    price = models.PositiveIntegerField(help_text="Minor currency units")
    is_active = models.BooleanField(default=True)
    sort_order = models.PositiveSmallIntegerField(default=0)

    objects = CatalogQuerySet.as_manager()

    class Meta:
        ordering = ["sort_order", "id"]

    def __str__(self) -> str:
        return f"{self.name} ({self.credits} credits)"
