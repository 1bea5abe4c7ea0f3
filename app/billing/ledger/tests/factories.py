"""
Factory Boy factories for credit ledger test data.

These write rows directly and bypass CreditLedgerService, so they do not
keep CreditBalance in step with the entries. Use them for model-level
tests; use the `grant_credits` fixture when the balance must be consistent.

Usage:
    from billing.ledger.tests.factories import CreditEntryFactory

    entry = CreditEntryFactory(credit_type=CreditType.BONUS, amount=50)
"""

import factory

from billing.ledger.models import (
    CreditBalance,
    CreditEntry,
    CreditTransaction,
    CreditType,
    TransactionType,
)
from organizations.tests.factories import OrganizationFactory


class CreditBalanceFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = CreditBalance
        skip_postgeneration_save = True

    organization = factory.SubFactory(OrganizationFactory)
    balance = 0


class CreditEntryFactory(factory.django.DjangoModelFactory):
    """Purchased entry, untouched (remaining == amount), never expiring."""

    class Meta:
        model = CreditEntry
        skip_postgeneration_save = True

    organization = factory.SubFactory(OrganizationFactory)
    credit_type = CreditType.PURCHASED
    amount = 100
    remaining = factory.SelfAttribute("amount")
    expires_at = None
    description = factory.Faker("sentence", nb_words=4)


class CreditTransactionFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = CreditTransaction
        skip_postgeneration_save = True

    organization = factory.SubFactory(OrganizationFactory)
    transaction_type = TransactionType.PURCHASED
    amount = 100
    description = factory.Faker("sentence", nb_words=4)
