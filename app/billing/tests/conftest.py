"""
Pytest fixtures for billing tests.

Sections:
    - Catalog Fixtures
    - Subscription Fixtures
    - Infrastructure Mocks (Redis, Stripe)
"""

import pytest

from billing.tests.factories import (
    CreditPackageFactory,
    SubscriptionFactory,
    SubscriptionPlanFactory,
)


# =============================================================================
# Catalog Fixtures
# =============================================================================


@pytest.fixture
def pro_plan(db):
    """Pro plan: 5000 credits per period."""
    return SubscriptionPlanFactory(
        plan_id="pro",
        name="Pro",
        stripe_price_id_monthly="price_pro_m",
        stripe_price_id_yearly="price_pro_y",
        monthly_price=7900,
        yearly_price=79000,
        credits_included=5000,
    )


@pytest.fixture
def credit_package(db):
    """500-credit package."""
    return CreditPackageFactory(
        package_id="credits_500",
        name="500 Credits",
        stripe_price_id="price_credits_500",
        credits=500,
        price=1000,
    )


# =============================================================================
# Subscription Fixtures
# =============================================================================


@pytest.fixture
def subscription(organization, pro_plan):
    """Active Pro subscription of `organization`."""
    return SubscriptionFactory(
        organization=organization,
        plan=pro_plan,
        stripe_subscription_id="sub_test123",
        stripe_customer_id="cus_test123",
        stripe_price_id="price_pro_m",
    )


# =============================================================================
# Infrastructure Mocks
# =============================================================================


@pytest.fixture
def mock_redis(mocker):
    """
    Mock Redis client behind DistributedLock.

    set() succeeds and eval() reports a successful release by default.
    """
    client = mocker.MagicMock()
    client.set.return_value = True
    client.eval.return_value = 1

    mocker.patch("billing.locks.get_redis_connection", return_value=client)
    return client


@pytest.fixture
def mock_stripe(mocker):
    """
    Patched StripeAdapter as seen by services and webhook handlers.

    Each classmethod is a MagicMock; configure return values per test.
    """
    adapter = mocker.patch("billing.services.subscription_service.StripeAdapter")
    mocker.patch("billing.services.credit_service.StripeAdapter", adapter)
    mocker.patch("billing.services.customer_service.StripeAdapter", adapter)
    mocker.patch("billing.webhooks.handlers.StripeAdapter", adapter)
    adapter.create_customer.return_value = "cus_new123"
    adapter.create_checkout_session.return_value.url = (
        "https://checkout.stripe.com/c/pay/cs_test123"
    )
    adapter.create_checkout_session.return_value.id = "cs_test123"
    return adapter
