"""
Factory Boy factories and Stripe payload builders for billing tests.

Usage:
    from billing.tests.factories import SubscriptionPlanFactory, stripe_event

    plan = SubscriptionPlanFactory(plan_id="pro", credits_included=5000)
    event = stripe_event(
        "customer.subscription.created",
        stripe_subscription(organization_id=org.id, plan_id="pro"),
    )
"""

import time
import uuid
from datetime import timedelta

import factory
from django.utils import timezone

from billing.models import (
    CreditPackage,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
    WebhookEvent,
    WebhookEventStatus,
)
from organizations.tests.factories import OrganizationFactory


# =============================================================================
# Model Factories
# =============================================================================


class SubscriptionPlanFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = SubscriptionPlan
        django_get_or_create = ("plan_id",)
        skip_postgeneration_save = True

    plan_id = factory.Sequence(lambda n: f"plan-{n}")
    name = factory.LazyAttribute(lambda o: o.plan_id.replace("-", " ").title())
    stripe_price_id_monthly = factory.LazyAttribute(lambda o: f"price_{o.plan_id}_m")
    stripe_price_id_yearly = factory.LazyAttribute(lambda o: f"price_{o.plan_id}_y")
    monthly_price = 2900
    yearly_price = 29000
    credits_included = 1000
    is_active = True


class CreditPackageFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = CreditPackage
        django_get_or_create = ("package_id",)
        skip_postgeneration_save = True

    package_id = factory.Sequence(lambda n: f"credits-{n}")
    name = factory.LazyAttribute(lambda o: f"{o.credits} Credits")
    stripe_price_id = factory.LazyAttribute(lambda o: f"price_{o.package_id}")
    credits = 500
    price = 1000
    is_active = True


class SubscriptionFactory(factory.django.DjangoModelFactory):
    """Active monthly subscription whose initial grant was made."""

    class Meta:
        model = Subscription
        skip_postgeneration_save = True

    organization = factory.SubFactory(OrganizationFactory)
    plan = factory.SubFactory(SubscriptionPlanFactory)
    stripe_subscription_id = factory.Sequence(lambda n: f"sub_test{n}")
    stripe_customer_id = factory.Sequence(lambda n: f"cus_test{n}")
    stripe_price_id = factory.LazyAttribute(lambda o: o.plan.stripe_price_id_monthly)
    status = SubscriptionStatus.ACTIVE
    current_period_start = factory.LazyFunction(timezone.now)
    current_period_end = factory.LazyFunction(
        lambda: timezone.now() + timedelta(days=30)
    )
    cancel_at_period_end = False
    initial_credits_granted = True


class WebhookEventFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = WebhookEvent
        skip_postgeneration_save = True

    stripe_event_id = factory.Sequence(lambda n: f"evt_test{n}")
    event_type = "invoice.payment_succeeded"
    payload = factory.LazyAttribute(
        lambda o: {
            "id": o.stripe_event_id,
            "type": o.event_type,
            "data": {"object": {"id": "in_test", "object": "invoice"}},
        }
    )
    status = WebhookEventStatus.PENDING


# =============================================================================
# Stripe Payload Builders
# =============================================================================


def stripe_subscription(
    organization_id,
    plan_id=None,
    subscription_id="sub_test123",
    customer_id="cus_test123",
    price_id="price_pro_m",
    status="active",
    cancel_at_period_end=False,
    period_days=30,
):
    """A Stripe Subscription object as delivered in webhook payloads."""
    start = int(time.time())
    end = start + period_days * 86400
    metadata = {"organization_id": str(organization_id)}
    if plan_id:
        metadata["plan_id"] = plan_id

    return {
        "id": subscription_id,
        "object": "subscription",
        "customer": customer_id,
        "status": status,
        "cancel_at_period_end": cancel_at_period_end,
        "canceled_at": None,
        "trial_end": None,
        "metadata": metadata,
        "items": {
            "object": "list",
            "data": [
                {
                    "id": "si_test123",
                    "price": {"id": price_id},
                    "current_period_start": start,
                    "current_period_end": end,
                }
            ],
        },
    }


def stripe_invoice(subscription_id="sub_test123", invoice_id="in_test123"):
    return {
        "id": invoice_id,
        "object": "invoice",
        "subscription": subscription_id,
        "billing_reason": "subscription_cycle",
    }


def stripe_checkout_session(
    organization_id,
    package_id="credits_500",
    credits=500,
    session_id="cs_test123",
    payment_intent="pi_test123",
    mode="payment",
):
    return {
        "id": session_id,
        "object": "checkout.session",
        "mode": mode,
        "payment_status": "paid",
        "payment_intent": payment_intent,
        "metadata": {
            "organization_id": str(organization_id),
            "package_id": package_id,
            "credits": str(credits),
        },
    }


def stripe_event(event_type, obj, event_id=None):
    return {
        "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }
