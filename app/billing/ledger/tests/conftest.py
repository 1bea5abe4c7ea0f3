"""
Pytest fixtures for credit ledger tests.

Sections:
    - Grant Fixtures: create entries through the service
    - Assertion Fixtures: ledger consistency checks
"""

import uuid
from datetime import timedelta

import pytest
from django.db.models import Sum
from django.utils import timezone

from billing.ledger.models import CreditBalance, CreditEntry, CreditType
from billing.ledger.services import credit_ledger
from billing.ledger.types import BonusGrant, EarnedGrant, PurchasedGrant, RefundedGrant


# ==========================================================================
# Grant Fixtures
# ==========================================================================


def _build_grant(credit_type, amount, expires_at, idempotency_key):
    common = {
        "amount": amount,
        "description": f"Test {credit_type} credits",
        "expires_at": expires_at,
        "idempotency_key": idempotency_key,
    }
    if credit_type == CreditType.EARNED:
        return EarnedGrant(subscription_id="sub_test", plan_id="pro", **common)
    if credit_type == CreditType.PURCHASED:
        return PurchasedGrant(payment_id=f"pi_{uuid.uuid4().hex[:12]}", **common)
    if credit_type == CreditType.REFUNDED:
        return RefundedGrant(refund_id=f"re_{uuid.uuid4().hex[:12]}", **common)
    return BonusGrant(promotion_code="WELCOME", **common)


@pytest.fixture
def grant_credits(organization):
    """
    Grant credits through CreditLedgerService and return the new entry.

    Args (of the returned callable):
        credit_type: CreditType value
        amount: Credits to grant
        expires_in_days: Expiry relative to now (negative = already lapsed)
        created_at: Override the entry's creation time (FIFO ordering)
        organization: Target organization (defaults to the fixture)
    """

    def _grant(
        credit_type,
        amount,
        expires_in_days=None,
        created_at=None,
        organization=organization,
        idempotency_key=None,
    ):
        expires_at = None
        if expires_in_days is not None:
            expires_at = timezone.now() + timedelta(days=expires_in_days)

        result = credit_ledger.grant(
            organization.id,
            _build_grant(credit_type, amount, expires_at, idempotency_key),
        )
        if created_at is not None:
            CreditEntry.objects.filter(pk=result.entry_id).update(created_at=created_at)
        return CreditEntry.objects.get(pk=result.entry_id)

    return _grant


# ==========================================================================
# Assertion Fixtures
# ==========================================================================


@pytest.fixture
def assert_ledger_consistent():
    """
    Check balance == sum(remaining) and the bounds on every entry.

    Also reconciles the transaction log: the signed sum of all transactions
    equals the balance.
    """

    def _check(organization_id):
        balance = CreditBalance.objects.get(organization_id=organization_id)
        entries = CreditEntry.objects.filter(organization_id=organization_id)

        remaining = entries.aggregate(total=Sum("remaining"))["total"] or 0
        assert balance.balance == remaining
        assert balance.balance >= 0
        for entry in entries:
            assert 0 <= entry.remaining <= entry.amount

        logged = (
            balance.organization.credit_transactions.aggregate(total=Sum("amount"))[
                "total"
            ]
            or 0
        )
        assert logged == balance.balance

    return _check
