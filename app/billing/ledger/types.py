"""
Data types for credit ledger operations.

Grants are modelled as one dataclass per credit type. Each variant carries
only the metadata meaningful for that type and validates itself on
construction, so the engine never has to guess which optional fields apply.

Types:
    EarnedGrant, PurchasedGrant, BonusGrant, RefundedGrant: Consumable grants
    AdjustmentGrant: Balance correction or audit line (no entry created)
    PoolDescriptor: One step of the consumption priority order
    ConsumptionAllocation: Credits taken from one entry by a consume call
    GrantResult, ConsumeResult, SweepResult: Operation results
    PoolBreakdown, CreditBreakdown: Read model for GetBreakdown

Usage:
    from billing.ledger.types import PurchasedGrant

    grant = PurchasedGrant(
        amount=500,
        description="Purchased 500 credits",
        payment_id="pi_123",
        package_id="credits_500",
        idempotency_key="checkout:cs_123:purchase",
    )
    credit_ledger.grant(organization_id, grant)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, ClassVar

from .exceptions import InvalidGrant
from .models import CreditType, TransactionType

if TYPE_CHECKING:
    from .models import CreditEntry


# =============================================================================
# Grant Variants
# =============================================================================


@dataclass(kw_only=True)
class Grant:
    """
    Fields shared by every grant variant.

    Attributes:
        amount: Credits to add (positive, except for adjustments)
        description: Human-readable origin, copied to entry and transaction
        expires_at: When the granted credits lapse (None = never)
        idempotency_key: Replay-safe key; a second grant with the same key
            is a no-op
    """

    transaction_type: ClassVar[str]

    amount: int
    description: str
    expires_at: datetime | None = None
    idempotency_key: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise InvalidGrant(
                "Grant amount must be an integer",
                details={"amount": repr(self.amount)},
            )
        if self.amount <= 0:
            raise InvalidGrant(
                f"{self.transaction_type} grant amount must be positive",
                details={"amount": self.amount},
            )

    @property
    def creates_entry(self) -> bool:
        return True

    def to_metadata(self) -> dict[str, Any]:
        """Variant-specific metadata, without empty values."""
        return {}

    def _compact(self, **values: Any) -> dict[str, Any]:
        return {key: value for key, value in values.items() if value is not None}


@dataclass(kw_only=True)
class EarnedGrant(Grant):
    """Credits included with a subscription (activation or renewal)."""

    transaction_type: ClassVar[str] = TransactionType.EARNED

    subscription_id: str
    plan_id: str | None = None
    invoice_id: str | None = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.subscription_id:
            raise InvalidGrant("Earned credits require a subscription id")

    def to_metadata(self) -> dict[str, Any]:
        return self._compact(
            subscription_id=self.subscription_id,
            plan_id=self.plan_id,
            invoice_id=self.invoice_id,
        )


@dataclass(kw_only=True)
class PurchasedGrant(Grant):
    """Credits bought as a one-time package."""

    transaction_type: ClassVar[str] = TransactionType.PURCHASED

    payment_id: str
    package_id: str | None = None
    checkout_session_id: str | None = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.payment_id:
            raise InvalidGrant("Purchased credits require a payment id")

    def to_metadata(self) -> dict[str, Any]:
        return self._compact(
            payment_id=self.payment_id,
            package_id=self.package_id,
            checkout_session_id=self.checkout_session_id,
        )


@dataclass(kw_only=True)
class BonusGrant(Grant):
    """Credits granted by an organization admin."""

    transaction_type: ClassVar[str] = TransactionType.BONUS

    granted_by: int | None = None
    promotion_code: str | None = None
    referral_id: str | None = None

    def to_metadata(self) -> dict[str, Any]:
        return self._compact(
            granted_by=self.granted_by,
            promotion_code=self.promotion_code,
            referral_id=self.referral_id,
        )


@dataclass(kw_only=True)
class RefundedGrant(Grant):
    """Credits returned to the organization after a refund."""

    transaction_type: ClassVar[str] = TransactionType.REFUNDED

    refund_id: str
    payment_id: str | None = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.refund_id:
            raise InvalidGrant("Refunded credits require a refund id")

    def to_metadata(self) -> dict[str, Any]:
        return self._compact(refund_id=self.refund_id, payment_id=self.payment_id)


@dataclass(kw_only=True)
class AdjustmentGrant(Grant):
    """
    Balance correction or audit line.

    Any sign is allowed, including zero for pure audit records (e.g.
    subscription reactivated). No consumable entry is created, so a non-zero
    adjustment is only meant to realign the cached balance with the entries.
    """

    transaction_type: ClassVar[str] = TransactionType.ADJUSTMENT

    reason: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise InvalidGrant(
                "Adjustment amount must be an integer",
                details={"amount": repr(self.amount)},
            )
        if self.expires_at is not None:
            raise InvalidGrant("Adjustments cannot expire")

    @property
    def creates_entry(self) -> bool:
        return False

    def to_metadata(self) -> dict[str, Any]:
        return {**self.extra, **self._compact(reason=self.reason)}


# =============================================================================
# Consumption
# =============================================================================


@dataclass(frozen=True)
class PoolDescriptor:
    """
    One pool in the consumption priority order.

    Attributes:
        credit_type: Entry type drawn from this pool
        order_by: ORM ordering of candidate entries within the pool
    """

    credit_type: str
    order_by: tuple[Any, ...]


@dataclass(frozen=True)
class ConsumptionAllocation:
    """Credits taken from a single entry."""

    entry_id: uuid.UUID
    consumed: int
    credit_type: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry_id": str(self.entry_id),
            "consumed": self.consumed,
            "credit_type": self.credit_type,
        }


# =============================================================================
# Results
# =============================================================================


@dataclass
class GrantResult:
    """
    Outcome of a grant.

    created is False when the idempotency key had already been applied; the
    balance is then the current one and no rows were written.
    """

    new_balance: int
    created: bool = True
    transaction_id: uuid.UUID | None = None
    entry_id: uuid.UUID | None = None


@dataclass
class ConsumeResult:
    new_balance: int
    breakdown: list[ConsumptionAllocation]
    transaction_id: uuid.UUID | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "new_balance": self.new_balance,
            "breakdown": [item.to_dict() for item in self.breakdown],
            "transaction_id": str(self.transaction_id) if self.transaction_id else None,
        }


@dataclass
class SweepResult:
    expired_entry_count: int = 0
    total_expired: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "expired_entry_count": self.expired_entry_count,
            "total_expired": self.total_expired,
        }


# =============================================================================
# Breakdown
# =============================================================================


@dataclass
class PoolBreakdown:
    total: int = 0
    expiring_soon: int = 0
    entries: list[CreditEntry] = field(default_factory=list)


@dataclass
class CreditBreakdown:
    """Remaining credits per type, in consumption priority order."""

    pools: dict[str, PoolBreakdown] = field(
        default_factory=lambda: {
            CreditType.BONUS: PoolBreakdown(),
            CreditType.EARNED: PoolBreakdown(),
            CreditType.REFUNDED: PoolBreakdown(),
            CreditType.PURCHASED: PoolBreakdown(),
        }
    )

    @property
    def total(self) -> int:
        return sum(pool.total for pool in self.pools.values())

    @property
    def expiring_soon(self) -> int:
        return sum(pool.expiring_soon for pool in self.pools.values())

    def __getitem__(self, credit_type: str) -> PoolBreakdown:
        return self.pools[credit_type]
