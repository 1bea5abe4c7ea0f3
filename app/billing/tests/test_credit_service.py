"""
Tests for CreditService and CustomerService.

Covers the role threshold of each operation, bonus grants, and credit
package checkout including lazy Stripe customer creation.
"""

from datetime import timedelta

import pytest
from django.test import override_settings
from django.utils import timezone
from freezegun import freeze_time

from billing.exceptions import PackageNotFound
from billing.ledger import (
    CreditEntry,
    CreditTransaction,
    CreditType,
    InsufficientCredits,
    InvalidGrant,
    TransactionType,
    credit_ledger,
)
from billing.services import CreditService, CustomerService
from organizations.exceptions import NotAuthorized
from organizations.models import MemberRole
from organizations.tests.factories import OrganizationMemberFactory


@pytest.fixture
def viewer(organization):
    return OrganizationMemberFactory(
        organization=organization, role=MemberRole.VIEWER
    ).user


@pytest.fixture
def admin(organization):
    return OrganizationMemberFactory(
        organization=organization, role=MemberRole.ADMIN
    ).user


@pytest.fixture
def funded_organization(organization, owner):
    """Organization holding 100 bonus credits."""
    CreditService.grant_bonus(
        organization_id=organization.id,
        user=owner,
        amount=100,
        description="Welcome credits",
    )
    return organization


# =============================================================================
# Consume
# =============================================================================


@pytest.mark.django_db
class TestConsume:
    def test_member_can_consume(self, funded_organization, member):
        result = CreditService.consume(
            organization_id=funded_organization.id,
            user=member,
            amount=15,
            description="Report export",
            service_used="reports",
        )

        txn = CreditTransaction.objects.get(pk=result.transaction_id)
        assert result.new_balance == 85
        assert txn.transaction_type == TransactionType.USED
        assert txn.amount == -15
        assert txn.metadata["service_used"] == "reports"
        assert txn.metadata["user_id"] == member.pk

    def test_viewer_can_consume(self, funded_organization, viewer):
        result = CreditService.consume(
            organization_id=funded_organization.id,
            user=viewer,
            amount=1,
            description="Preview",
        )

        assert result.new_balance == 99

    def test_outsider_cannot_consume(self, funded_organization, outsider):
        with pytest.raises(NotAuthorized):
            CreditService.consume(
                organization_id=funded_organization.id,
                user=outsider,
                amount=1,
                description="Sneaky",
            )

        assert credit_ledger.get_balance(funded_organization.id).balance == 100

    def test_inactive_member_cannot_consume(self, funded_organization):
        former = OrganizationMemberFactory(
            organization=funded_organization, is_active=False
        ).user

        with pytest.raises(NotAuthorized):
            CreditService.consume(
                organization_id=funded_organization.id,
                user=former,
                amount=1,
                description="Report export",
            )

    def test_insufficient_credits(self, funded_organization, member):
        with pytest.raises(InsufficientCredits) as exc_info:
            CreditService.consume(
                organization_id=funded_organization.id,
                user=member,
                amount=101,
                description="Bulk export",
            )

        assert exc_info.value.requested == 101
        assert exc_info.value.available == 100


# =============================================================================
# Bonus
# =============================================================================


@pytest.mark.django_db
class TestGrantBonus:
    @freeze_time("2026-03-01 12:00:00")
    def test_admin_grants_bonus_with_expiry(self, organization, admin):
        result = CreditService.grant_bonus(
            organization_id=organization.id,
            user=admin,
            amount=500,
            description="Launch promotion",
            expires_in_days=30,
            promotion_code="LAUNCH",
        )

        entry = CreditEntry.objects.get(pk=result.entry_id)
        assert result.new_balance == 500
        assert entry.credit_type == CreditType.BONUS
        assert entry.expires_at == timezone.now() + timedelta(days=30)
        assert entry.metadata == {"granted_by": admin.pk, "promotion_code": "LAUNCH"}

    @freeze_time("2026-03-01 12:00:00")
    @override_settings(CREDIT_BONUS_DEFAULT_EXPIRY_DAYS=90)
    def test_default_expiry(self, organization, owner):
        result = CreditService.grant_bonus(
            organization_id=organization.id,
            user=owner,
            amount=50,
            description="Referral bonus",
            referral_id="ref_42",
        )

        entry = CreditEntry.objects.get(pk=result.entry_id)
        assert entry.expires_at == timezone.now() + timedelta(days=90)
        assert entry.metadata["referral_id"] == "ref_42"

    @pytest.mark.parametrize("role", [MemberRole.MEMBER, MemberRole.VIEWER])
    def test_non_managers_cannot_grant(self, organization, role):
        user = OrganizationMemberFactory(organization=organization, role=role).user

        with pytest.raises(NotAuthorized):
            CreditService.grant_bonus(
                organization_id=organization.id,
                user=user,
                amount=500,
                description="Self-service bonus",
            )

        assert not CreditEntry.objects.filter(organization=organization).exists()

    def test_non_positive_amount_rejected(self, organization, owner):
        with pytest.raises(InvalidGrant):
            CreditService.grant_bonus(
                organization_id=organization.id,
                user=owner,
                amount=0,
                description="Nothing",
            )


# =============================================================================
# Credit Checkout
# =============================================================================


@pytest.mark.django_db
class TestCreateCreditCheckout:
    @override_settings(BILLING_FRONTEND_URL="https://app.example.com/")
    def test_creates_payment_session(
        self, organization, member, credit_package, mock_stripe
    ):
        session = CreditService.create_credit_checkout(
            organization_id=organization.id,
            user=member,
            package_id="credits_500",
        )

        assert session.url == "https://checkout.stripe.com/c/pay/cs_test123"
        params = mock_stripe.create_checkout_session.call_args.args[0]
        assert params.mode == "payment"
        assert params.customer_id == "cus_new123"
        assert params.price_id == "price_credits_500"
        assert params.success_url == (
            "https://app.example.com/dashboard/billing?credits=success"
        )
        assert params.cancel_url == (
            "https://app.example.com/dashboard/billing?credits=cancelled"
        )
        assert params.metadata == {
            "organization_id": str(organization.id),
            "package_id": "credits_500",
            "credits": "500",
        }

    def test_unknown_package(self, organization, member, mock_stripe):
        with pytest.raises(PackageNotFound):
            CreditService.create_credit_checkout(
                organization_id=organization.id,
                user=member,
                package_id="credits_999",
            )

        mock_stripe.create_checkout_session.assert_not_called()

    def test_inactive_package(self, organization, member, credit_package, mock_stripe):
        credit_package.is_active = False
        credit_package.save()

        with pytest.raises(PackageNotFound):
            CreditService.create_credit_checkout(
                organization_id=organization.id,
                user=member,
                package_id="credits_500",
            )

    def test_outsider_cannot_checkout(
        self, organization, outsider, credit_package, mock_stripe
    ):
        with pytest.raises(NotAuthorized):
            CreditService.create_credit_checkout(
                organization_id=organization.id,
                user=outsider,
                package_id="credits_500",
            )

        mock_stripe.create_customer.assert_not_called()


# =============================================================================
# Customer
# =============================================================================


@pytest.mark.django_db
class TestEnsureStripeCustomer:
    def test_creates_and_stores_customer(self, organization, mock_stripe):
        customer_id = CustomerService.ensure_stripe_customer(organization)

        organization.refresh_from_db()
        assert customer_id == "cus_new123"
        assert organization.stripe_customer_id == "cus_new123"
        mock_stripe.create_customer.assert_called_once_with(
            email=organization.contact_email,
            name=organization.name,
            metadata={"organization_id": str(organization.id)},
            idempotency_key=f"customer:{organization.id}",
        )

    def test_reuses_existing_customer(self, organization, mock_stripe):
        organization.stripe_customer_id = "cus_existing"
        organization.save()

        assert CustomerService.ensure_stripe_customer(organization) == "cus_existing"
        mock_stripe.create_customer.assert_not_called()

    def test_concurrent_creation_keeps_stored_customer(self, organization, mock_stripe):
        # Another request stored a customer after this instance was loaded
        type(organization).objects.filter(pk=organization.pk).update(
            stripe_customer_id="cus_winner"
        )

        customer_id = CustomerService.ensure_stripe_customer(organization)

        assert customer_id == "cus_winner"
        assert organization.stripe_customer_id == "cus_winner"
