"""
Tests for the billing REST API.

Each test authenticates the shared api_client as the user it needs, so
roles can be switched within a test.
"""

from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone

from billing.ledger import BonusGrant, CreditTransaction, PurchasedGrant, credit_ledger
from billing.models import SubscriptionStatus
from billing.tests.factories import CreditPackageFactory, SubscriptionPlanFactory


def org_url(name, organization):
    return reverse(f"billing:{name}", kwargs={"organization_id": organization.id})


def purchase(organization, amount, key=None):
    return credit_ledger.grant(
        organization.id,
        PurchasedGrant(
            amount=amount,
            description=f"Purchased {amount} credits",
            payment_id="pi_test",
            idempotency_key=key,
        ),
    )


# =============================================================================
# Catalog
# =============================================================================


@pytest.mark.django_db
class TestCatalogViews:
    def test_plans_are_public_and_active_only(self, api_client, pro_plan):
        SubscriptionPlanFactory(plan_id="legacy", is_active=False)

        response = api_client.get(reverse("billing:plan_list"))

        assert response.status_code == 200
        assert [plan["plan_id"] for plan in response.data] == ["pro"]
        assert response.data[0]["credits_included"] == 5000
        assert "stripe_price_id_monthly" not in response.data[0]

    def test_packages(self, api_client, credit_package):
        CreditPackageFactory(package_id="credits_old", is_active=False)

        response = api_client.get(reverse("billing:package_list"))

        assert response.status_code == 200
        assert response.data == [
            {
                "package_id": "credits_500",
                "name": "500 Credits",
                "description": "",
                "credits": 500,
                "price": 1000,
            }
        ]


# =============================================================================
# Credit Reads
# =============================================================================


@pytest.mark.django_db
class TestCreditBalanceView:
    def test_balance_for_member(self, api_client, organization, member):
        purchase(organization, 500)
        api_client.force_authenticate(user=member)

        response = api_client.get(org_url("credit_balance", organization))

        assert response.status_code == 200
        assert response.data["balance"] == 500
        assert response.data["total_purchased"] == 500
        assert response.data["total_used"] == 0
        assert response.data["last_updated"] is not None

    def test_organization_without_credits_reads_zero(
        self, api_client, organization, member
    ):
        api_client.force_authenticate(user=member)

        response = api_client.get(org_url("credit_balance", organization))

        assert response.status_code == 200
        assert response.data["balance"] == 0
        assert response.data["last_updated"] is None

    def test_outsider_is_forbidden(self, api_client, organization, outsider):
        api_client.force_authenticate(user=outsider)

        response = api_client.get(org_url("credit_balance", organization))

        assert response.status_code == 403

    def test_anonymous_is_rejected(self, api_client, organization):
        response = api_client.get(org_url("credit_balance", organization))

        assert response.status_code == 401


@pytest.mark.django_db
class TestCreditTransactionListView:
    def test_newest_first_and_paginated(self, api_client, organization, member):
        now = timezone.now()
        for i in range(3):
            result = purchase(organization, 10 + i)
            CreditTransaction.objects.filter(pk=result.transaction_id).update(
                created_at=now - timedelta(minutes=3 - i)
            )
        api_client.force_authenticate(user=member)

        response = api_client.get(
            org_url("credit_transactions", organization), {"page_size": 2}
        )

        assert response.status_code == 200
        assert response.data["count"] == 3
        assert [row["amount"] for row in response.data["results"]] == [12, 11]
        assert response.data["next"] is not None

    def test_filter_by_type(self, api_client, organization, member):
        purchase(organization, 100)
        credit_ledger.consume(organization.id, 30, "Report export")
        api_client.force_authenticate(user=member)

        response = api_client.get(
            org_url("credit_transactions", organization), {"transaction_type": "used"}
        )

        assert response.data["count"] == 1
        assert response.data["results"][0]["amount"] == -30

    def test_filter_by_date_range(self, api_client, organization, member):
        purchase(organization, 100)
        old = purchase(organization, 50)
        CreditTransaction.objects.filter(pk=old.transaction_id).update(
            created_at=timezone.now() - timedelta(days=40)
        )
        api_client.force_authenticate(user=member)

        response = api_client.get(
            org_url("credit_transactions", organization),
            {"start_date": (timezone.now() - timedelta(days=7)).isoformat()},
        )

        assert response.data["count"] == 1
        assert response.data["results"][0]["amount"] == 100

    def test_other_organizations_are_not_listed(
        self, api_client, organization, member
    ):
        from organizations.tests.factories import OrganizationFactory

        purchase(OrganizationFactory(), 100)
        api_client.force_authenticate(user=member)

        response = api_client.get(org_url("credit_transactions", organization))

        assert response.data["count"] == 0


@pytest.mark.django_db
class TestCreditBreakdownView:
    def test_groups_by_type(self, api_client, organization, member):
        purchase(organization, 500)
        credit_ledger.grant(
            organization.id,
            BonusGrant(
                amount=200,
                description="Launch promotion",
                expires_at=timezone.now() + timedelta(days=5),
            ),
        )
        api_client.force_authenticate(user=member)

        response = api_client.get(org_url("credit_breakdown", organization))

        assert response.status_code == 200
        assert response.data["total"] == 700
        assert response.data["expiring_soon"] == 200
        pools = response.data["pools"]
        assert list(pools) == ["bonus", "earned", "refunded", "purchased"]
        assert pools["bonus"]["total"] == 200
        assert pools["purchased"]["total"] == 500
        assert pools["earned"] == {"total": 0, "expiring_soon": 0, "entries": []}
        assert pools["purchased"]["entries"][0]["remaining"] == 500


# =============================================================================
# Credit Actions
# =============================================================================


@pytest.mark.django_db
class TestConsumeCreditsView:
    def test_consume(self, api_client, organization, member):
        purchase(organization, 100)
        api_client.force_authenticate(user=member)

        response = api_client.post(
            org_url("credit_consume", organization),
            {"amount": 15, "description": "Report export", "service_used": "reports"},
            format="json",
        )

        assert response.status_code == 200
        assert response.data["new_balance"] == 85
        assert response.data["breakdown"][0]["consumed"] == 15
        assert response.data["breakdown"][0]["credit_type"] == "purchased"

    def test_insufficient_credits(self, api_client, organization, member):
        purchase(organization, 10)
        api_client.force_authenticate(user=member)

        response = api_client.post(
            org_url("credit_consume", organization),
            {"amount": 15, "description": "Report export"},
            format="json",
        )

        assert response.status_code == 400
        assert response.data["error_code"] == "INSUFFICIENT_CREDITS"
        assert response.data["details"]["available"] == 10
        assert credit_ledger.get_balance(organization.id).balance == 10

    @pytest.mark.parametrize("amount", [0, -5, "ten"])
    def test_invalid_amount(self, api_client, organization, member, amount):
        api_client.force_authenticate(user=member)

        response = api_client.post(
            org_url("credit_consume", organization),
            {"amount": amount, "description": "Report export"},
            format="json",
        )

        assert response.status_code == 400
        assert "amount" in response.data


@pytest.mark.django_db
class TestGrantBonusView:
    def test_owner_grants_bonus(self, api_client, organization, owner):
        api_client.force_authenticate(user=owner)

        response = api_client.post(
            org_url("credit_bonus", organization),
            {"amount": 500, "description": "Launch promotion", "expires_in_days": 30},
            format="json",
        )

        assert response.status_code == 201
        assert response.data["new_balance"] == 500
        assert response.data["transaction_id"] is not None

    def test_member_is_forbidden(self, api_client, organization, member):
        api_client.force_authenticate(user=member)

        response = api_client.post(
            org_url("credit_bonus", organization),
            {"amount": 500, "description": "Self-service"},
            format="json",
        )

        assert response.status_code == 403
        assert credit_ledger.get_balance(organization.id).balance == 0


@pytest.mark.django_db
class TestCreditCheckoutView:
    def test_returns_checkout_url(
        self, api_client, organization, member, credit_package, mock_stripe
    ):
        api_client.force_authenticate(user=member)

        response = api_client.post(
            org_url("credit_checkout", organization),
            {"package_id": "credits_500"},
            format="json",
        )

        assert response.status_code == 200
        assert response.data == {"url": "https://checkout.stripe.com/c/pay/cs_test123"}

    def test_unknown_package(self, api_client, organization, member, mock_stripe):
        api_client.force_authenticate(user=member)

        response = api_client.post(
            org_url("credit_checkout", organization),
            {"package_id": "credits_999"},
            format="json",
        )

        assert response.status_code == 404
        assert response.data["error_code"] == "PACKAGE_NOT_FOUND"


# =============================================================================
# Subscription
# =============================================================================


@pytest.mark.django_db
class TestSubscriptionViews:
    def test_get_subscription(self, api_client, organization, member, subscription):
        api_client.force_authenticate(user=member)

        response = api_client.get(org_url("subscription", organization))

        assert response.status_code == 200
        assert response.data["status"] == SubscriptionStatus.ACTIVE
        assert response.data["is_active"] is True
        assert response.data["plan"]["plan_id"] == "pro"

    def test_get_without_subscription(self, api_client, organization, member):
        api_client.force_authenticate(user=member)

        response = api_client.get(org_url("subscription", organization))

        assert response.status_code == 404
        assert response.data["error_code"] == "SUBSCRIPTION_NOT_FOUND"

    def test_checkout(self, api_client, organization, owner, pro_plan, mock_stripe):
        api_client.force_authenticate(user=owner)

        response = api_client.post(
            org_url("subscription_checkout", organization),
            {"plan_id": "pro", "interval": "year"},
            format="json",
        )

        assert response.status_code == 200
        assert response.data["url"].startswith("https://checkout.stripe.com/")
        params = mock_stripe.create_checkout_session.call_args.args[0]
        assert params.price_id == "price_pro_y"

    def test_checkout_rejects_unknown_interval(
        self, api_client, organization, owner, pro_plan, mock_stripe
    ):
        api_client.force_authenticate(user=owner)

        response = api_client.post(
            org_url("subscription_checkout", organization),
            {"plan_id": "pro", "interval": "week"},
            format="json",
        )

        assert response.status_code == 400
        mock_stripe.create_checkout_session.assert_not_called()

    def test_checkout_requires_billing_manager(
        self, api_client, organization, member, pro_plan, mock_stripe
    ):
        api_client.force_authenticate(user=member)

        response = api_client.post(
            org_url("subscription_checkout", organization),
            {"plan_id": "pro"},
            format="json",
        )

        assert response.status_code == 403

    def test_cancel_then_reactivate(
        self, api_client, organization, owner, subscription, mock_stripe
    ):
        api_client.force_authenticate(user=owner)

        cancel = api_client.post(
            org_url("subscription_cancel", organization), {}, format="json"
        )
        reactivate = api_client.post(org_url("subscription_reactivate", organization))

        assert cancel.status_code == 200
        assert cancel.data["cancel_at_period_end"] is True
        assert reactivate.status_code == 200
        assert reactivate.data["cancel_at_period_end"] is False

    def test_reactivate_without_pending_cancel(
        self, api_client, organization, owner, subscription, mock_stripe
    ):
        api_client.force_authenticate(user=owner)

        response = api_client.post(org_url("subscription_reactivate", organization))

        assert response.status_code == 409
        assert response.data["error_code"] == "INVALID_SUBSCRIPTION_STATE"
