"""
Tests for billing models: catalog lookups, subscriptions and webhook events.
"""

from datetime import timedelta

import pytest
from django.test import override_settings
from django.utils import timezone

from billing.models import (
    BillingInterval,
    CreditPackage,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
    WebhookEventStatus,
)
from billing.tests.factories import (
    CreditPackageFactory,
    SubscriptionFactory,
    SubscriptionPlanFactory,
    WebhookEventFactory,
)


@pytest.mark.django_db
class TestCatalog:
    def test_active_excludes_retired_items_and_orders_by_sort_order(self):
        SubscriptionPlanFactory(plan_id="enterprise", sort_order=3)
        SubscriptionPlanFactory(plan_id="starter", sort_order=1)
        SubscriptionPlanFactory(plan_id="legacy", sort_order=0, is_active=False)

        plan_ids = list(SubscriptionPlan.objects.active().values_list("plan_id", flat=True))

        assert plan_ids == ["starter", "enterprise"]

    def test_package_active_queryset(self):
        CreditPackageFactory(package_id="credits_500", sort_order=2)
        CreditPackageFactory(package_id="credits_100", sort_order=1)
        CreditPackageFactory(package_id="credits_old", is_active=False)

        package_ids = list(
            CreditPackage.objects.active().values_list("package_id", flat=True)
        )

        assert package_ids == ["credits_100", "credits_500"]

    def test_price_id_for_interval(self, pro_plan):
        assert pro_plan.price_id_for_interval(BillingInterval.MONTH) == "price_pro_m"
        assert pro_plan.price_id_for_interval(BillingInterval.YEAR) == "price_pro_y"

    def test_resolve_prefers_plan_id(self, pro_plan):
        other = SubscriptionPlanFactory(plan_id="starter")

        assert SubscriptionPlan.resolve(plan_id="starter", price_id="price_pro_m") == other

    @pytest.mark.parametrize("price_id", ["price_pro_m", "price_pro_y"])
    def test_resolve_falls_back_to_either_price(self, pro_plan, price_id):
        assert SubscriptionPlan.resolve(plan_id="unknown", price_id=price_id) == pro_plan

    def test_resolve_returns_none_when_nothing_matches(self, pro_plan):
        assert SubscriptionPlan.resolve(plan_id=None, price_id="price_other") is None
        assert SubscriptionPlan.resolve() is None


@pytest.mark.django_db
class TestSubscription:
    def test_current_for_returns_most_recent(self, organization, pro_plan):
        older = SubscriptionFactory(organization=organization, plan=pro_plan)
        Subscription.objects.filter(pk=older.pk).update(
            created_at=timezone.now() - timedelta(days=60)
        )
        newer = SubscriptionFactory(
            organization=organization,
            plan=pro_plan,
            status=SubscriptionStatus.PAST_DUE,
        )

        assert Subscription.objects.current_for(organization.id) == newer

    def test_current_for_without_subscription(self, organization):
        assert Subscription.objects.current_for(organization.id) is None

    @pytest.mark.parametrize(
        "status,is_active,is_canceled",
        [
            (SubscriptionStatus.ACTIVE, True, False),
            (SubscriptionStatus.TRIALING, False, False),
            (SubscriptionStatus.PAST_DUE, False, False),
            (SubscriptionStatus.CANCELED, False, True),
        ],
    )
    def test_status_properties(self, status, is_active, is_canceled):
        subscription = SubscriptionFactory.build(status=status)

        assert subscription.is_active is is_active
        assert subscription.is_canceled is is_canceled


@pytest.mark.django_db
class TestWebhookEvent:
    def test_defaults_to_pending(self):
        event = WebhookEventFactory()

        assert event.status == WebhookEventStatus.PENDING
        assert event.retry_count == 0
        assert not event.is_processed

    def test_mark_processed_clears_error(self):
        event = WebhookEventFactory(
            status=WebhookEventStatus.FAILED, error_message="boom"
        )

        event.mark_processed()

        assert event.is_processed
        assert event.processed_at is not None
        assert event.error_message is None

    def test_mark_failed(self):
        event = WebhookEventFactory(status=WebhookEventStatus.PROCESSING)

        event.mark_failed("Handler exploded")

        assert event.is_failed
        assert event.error_message == "Handler exploded"

    @override_settings(BILLING_WEBHOOK_MAX_RETRIES=3)
    def test_can_retry_respects_max_retries(self):
        retryable = WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=2)
        exhausted = WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=3)
        pending = WebhookEventFactory(status=WebhookEventStatus.PENDING)

        assert retryable.can_retry
        assert not exhausted.can_retry
        assert not pending.can_retry

    def test_get_object_reads_payload_data(self):
        event = WebhookEventFactory()

        assert event.get_object() == {"id": "in_test", "object": "invoice"}
        assert event.get_object_id() == "in_test"

    @pytest.mark.parametrize("payload", [{}, {"data": None}, {"data": {"object": "x"}}])
    def test_get_object_tolerates_malformed_payload(self, payload):
        event = WebhookEventFactory.build(payload=payload)

        assert event.get_object() == {}
        assert event.get_object_id() is None
