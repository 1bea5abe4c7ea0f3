"""
Credit ledger - prepaid credit accounting per organization.

Public API:
    Models:
        CreditBalance - Aggregate balance and lifetime totals
        CreditEntry - One grant with its remaining amount
        CreditTransaction - Append-only audit line
        CreditType, TransactionType - Enums

    Service:
        credit_ledger - Singleton instance of CreditLedgerService
        CreditLedgerService - grant, consume, expire_entry, expire_sweep,
            get_balance, get_transactions, get_breakdown

    Types:
        EarnedGrant, PurchasedGrant, BonusGrant, RefundedGrant,
        AdjustmentGrant - Grant variants
        ConsumeResult, GrantResult, SweepResult, CreditBreakdown - Results

    Exceptions:
        CreditLedgerError, InsufficientCredits, InvalidGrant,
        CreditEntryNotFound, ConflictRetryExhausted

Usage:
    from billing.ledger import credit_ledger, EarnedGrant, InsufficientCredits

    credit_ledger.grant(
        org.id,
        EarnedGrant(
            amount=1000,
            description="Credits from Pro subscription",
            subscription_id="sub_123",
        ),
    )

    try:
        credit_ledger.consume(org.id, 15, "Report export", service_used="reports")
    except InsufficientCredits as e:
        print(f"Need {e.requested}, have {e.available}")
"""

from .exceptions import (
    ConflictRetryExhausted,
    CreditEntryNotFound,
    CreditLedgerError,
    InsufficientCredits,
    InvalidGrant,
)
from .models import (
    CreditBalance,
    CreditEntry,
    CreditTransaction,
    CreditType,
    TransactionType,
)
from .services import CreditLedgerService, credit_ledger
from .types import (
    AdjustmentGrant,
    BonusGrant,
    ConsumeResult,
    ConsumptionAllocation,
    CreditBreakdown,
    EarnedGrant,
    GrantResult,
    PurchasedGrant,
    RefundedGrant,
    SweepResult,
)

__all__ = [
    # Models
    "CreditBalance",
    "CreditEntry",
    "CreditTransaction",
    "CreditType",
    "TransactionType",
    # Service
    "credit_ledger",
    "CreditLedgerService",
    # Types
    "AdjustmentGrant",
    "BonusGrant",
    "ConsumeResult",
    "ConsumptionAllocation",
    "CreditBreakdown",
    "EarnedGrant",
    "GrantResult",
    "PurchasedGrant",
    "RefundedGrant",
    "SweepResult",
    # Exceptions
    "ConflictRetryExhausted",
    "CreditEntryNotFound",
    "CreditLedgerError",
    "InsufficientCredits",
    "InvalidGrant",
]
