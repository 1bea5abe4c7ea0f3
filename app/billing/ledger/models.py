"""
Ledger Store models for organization credits.

Three tables back the credit ledger:
- CreditBalance: one aggregate row per organization (cached totals)
- CreditEntry: one row per grant, consumed down to zero over time
- CreditTransaction: append-only audit log of every balance change

Invariants (maintained by billing.ledger.services, the only writer):
    balance == sum(remaining) over the organization's entries
    balance >= 0
    0 <= entry.remaining <= entry.amount
    transactions are never updated or deleted

Usage:
    from billing.ledger.models import CreditBalance, CreditEntry, CreditType

    balance = CreditBalance.objects.get(organization=org)
    bonus = CreditEntry.objects.filter(
        organization=org, credit_type=CreditType.BONUS, remaining__gt=0
    )
"""

from __future__ import annotations

from django.db import models
from django.db.models import F, Q

from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel


class CreditType(models.TextChoices):
    """
    Kinds of consumable credit entries.

    Values:
        EARNED: Included with a subscription (initial grant and renewals)
        PURCHASED: Bought as a one-time credit package
        BONUS: Granted by an organization admin (promotion, referral)
        REFUNDED: Returned to the organization after a refund
    """

    EARNED = "earned", "Earned"
    PURCHASED = "purchased", "Purchased"
    BONUS = "bonus", "Bonus"
    REFUNDED = "refunded", "Refunded"


class TransactionType(models.TextChoices):
    """
    Kinds of ledger transactions.

    The four credit types record grants. USED and EXPIRED record removals
    (negative amounts). ADJUSTMENT records balance corrections and
    zero-amount audit lines; it never creates a consumable entry.
    """

    EARNED = "earned", "Earned"
    PURCHASED = "purchased", "Purchased"
    BONUS = "bonus", "Bonus"
    REFUNDED = "refunded", "Refunded"
    USED = "used", "Used"
    EXPIRED = "expired", "Expired"
    ADJUSTMENT = "adjustment", "Adjustment"


class CreditBalance(BaseModel):
    """
    Aggregate credit state for one organization.

    Created lazily by the first grant and never deleted. The row is also the
    per-organization lock: every ledger write selects it FOR UPDATE first.

    Fields:
        organization: Owning organization (one row each)
        balance: Credits currently available
        total_earned/purchased/bonus/refunded: Lifetime grants per type
        total_used: Lifetime consumption
        updated_at: Last change (exposed as last_updated)
    """

    organization = models.OneToOneField(
        "organizations.Organization",
        on_delete=models.PROTECT,
        related_name="credit_balance",
    )
    balance = models.BigIntegerField(default=0)
    total_earned = models.BigIntegerField(default=0)
    total_purchased = models.BigIntegerField(default=0)
    total_bonus = models.BigIntegerField(default=0)
    total_refunded = models.BigIntegerField(default=0)
    total_used = models.BigIntegerField(default=0)

    class Meta:
        verbose_name = "Credit Balance"
        verbose_name_plural = "Credit Balances"
        constraints = [
            models.CheckConstraint(
                condition=Q(balance__gte=0),
                name="credit_balance_non_negative",
            ),
        ]

    # Maps a grant type onto the lifetime total it increments
    TOTAL_FIELDS = {
        CreditType.EARNED: "total_earned",
        CreditType.PURCHASED: "total_purchased",
        CreditType.BONUS: "total_bonus",
        CreditType.REFUNDED: "total_refunded",
    }

    def __str__(self) -> str:
        return f"CreditBalance({self.organization_id}, {self.balance})"

    @property
    def last_updated(self):
        return self.updated_at


class CreditEntry(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    A single grant of credits with its own remaining amount.

    `amount` never changes after creation. `remaining` only goes down, by
    consumption or by the expiration sweep. Fully consumed or expired
    entries stay in place as history.

    Fields:
        organization: Owning organization
        credit_type: earned, purchased, bonus or refunded
        amount: Credits originally granted
        remaining: Credits still consumable
        expires_at: When remaining credits lapse (None = never)
        description: Human-readable origin of the grant
        metadata: Type-specific references (subscription, payment, promotion)
    """

    organization = models.ForeignKey(
        "organizations.Organization",
        on_delete=models.PROTECT,
        related_name="credit_entries",
    )
    credit_type = models.CharField(
        max_length=20,
        choices=CreditType.choices,
    )
    amount = models.PositiveBigIntegerField(
        help_text="Credits originally granted",
    )
    remaining = models.PositiveBigIntegerField(
        help_text="Credits still available for consumption",
    )
    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the remaining credits expire (empty = never)",
    )
    description = models.CharField(max_length=500, blank=True)

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Credit Entry"
        verbose_name_plural = "Credit Entries"
        indexes = [
            models.Index(
                fields=["organization", "credit_type"],
                name="credit_entry_org_type_idx",
            ),
            models.Index(fields=["expires_at"], name="credit_entry_expires_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="credit_entry_amount_positive",
            ),
            models.CheckConstraint(
                condition=Q(remaining__lte=F("amount")),
                name="credit_entry_remaining_within_amount",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.get_credit_type_display()}: {self.remaining}/{self.amount}"

    @property
    def is_depleted(self) -> bool:
        return self.remaining == 0


class CreditTransaction(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    Append-only ledger line.

    Positive amounts add credits, negative amounts remove them. A
    transaction is written once in the same database transaction as the
    balance change it records and is never modified afterwards.

    Fields:
        organization: Owning organization
        transaction_type: What happened (grant type, used, expired, adjustment)
        amount: Signed credit delta
        description: Human-readable summary
        entry: Credit entry created or expired by this line, if any
        idempotency_key: Unique key for replay-safe grants (webhooks)
        metadata: Context (service used, user, subscription, payment)
    """

    organization = models.ForeignKey(
        "organizations.Organization",
        on_delete=models.PROTECT,
        related_name="credit_transactions",
    )
    transaction_type = models.CharField(
        max_length=20,
        choices=TransactionType.choices,
    )
    amount = models.BigIntegerField(
        help_text="Signed credit delta (negative = credits removed)",
    )
    description = models.CharField(max_length=500, blank=True)
    entry = models.ForeignKey(
        CreditEntry,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transactions",
    )
    idempotency_key = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Unique key preventing a replayed grant from applying twice",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Credit Transaction"
        verbose_name_plural = "Credit Transactions"
        indexes = [
            models.Index(
                fields=["organization", "-created_at"],
                name="credit_txn_org_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.get_transaction_type_display()}: {self.amount:+d}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Credit transactions are immutable once written")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Credit transactions cannot be deleted")
