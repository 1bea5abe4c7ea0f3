"""
Credit Accounting Engine.

CreditLedgerService is the only writer of CreditBalance, CreditEntry and
CreditTransaction. Every write runs in one database transaction that first
locks the organization's CreditBalance row, so concurrent grants, consumes
and expirations for the same organization are serialized while different
organizations proceed independently.

Lock order (always): CreditBalance row, then CreditEntry rows by priority.

Usage:
    from billing.ledger.services import credit_ledger
    from billing.ledger.types import BonusGrant

    credit_ledger.grant(org.id, BonusGrant(amount=100, description="Welcome"))
    result = credit_ledger.consume(org.id, 15, "Report export", service_used="reports")
    for allocation in result.breakdown:
        print(allocation.credit_type, allocation.consumed)
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Callable, TypeVar

from django.conf import settings
from django.db import IntegrityError, OperationalError, connection, transaction
from django.utils import timezone

from core.exceptions import ValidationError
from organizations.exceptions import OrganizationNotFound
from organizations.models import Organization

from .exceptions import (
    ConflictRetryExhausted,
    CreditEntryNotFound,
    InsufficientCredits,
)
from .models import CreditBalance, CreditEntry, CreditTransaction, TransactionType
from .pools import CONSUMPTION_POOLS
from .types import (
    ConsumeResult,
    ConsumptionAllocation,
    CreditBreakdown,
    GrantResult,
    SweepResult,
)

if TYPE_CHECKING:
    import uuid
    from datetime import datetime
    from typing import Any

    from django.db.models import QuerySet

    from .types import Grant

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CreditLedgerService:
    """
    Service class for credit ledger operations.

    All methods are static - no instance state is maintained.
    """

    # ==========================================================================
    # Write Helpers
    # ==========================================================================

    @staticmethod
    def _run_atomic(operation: Callable[[], T], organization_id, action: str) -> T:
        """
        Run operation in a transaction, retrying on lock contention.

        Lock timeouts and deadlocks surface as OperationalError. A fresh
        transaction is retried up to CREDIT_LEDGER_MAX_RETRIES times. When
        already inside a caller's transaction the attempt cannot be replayed
        on its own, so it runs once.

        Raises:
            ConflictRetryExhausted: Contention persisted; nothing committed
        """
        attempts = 1 if connection.in_atomic_block else settings.CREDIT_LEDGER_MAX_RETRIES
        attempts = max(attempts, 1)

        for attempt in range(1, attempts + 1):
            try:
                with transaction.atomic():
                    return operation()
            except OperationalError as exc:
                logger.warning(
                    f"Credit ledger {action} hit lock contention",
                    extra={
                        "organization_id": str(organization_id),
                        "attempt": attempt,
                        "max_attempts": attempts,
                        "error": str(exc),
                    },
                )

        raise ConflictRetryExhausted(
            f"Credit ledger {action} could not acquire the balance lock",
            details={"organization_id": str(organization_id), "attempts": attempts},
        )

    @staticmethod
    def _lock_balance(organization_id, create: bool = False) -> CreditBalance | None:
        """
        Lock and return the organization's balance row.

        With create=True the row is created on first use, after checking the
        organization exists. Must be called inside a transaction.
        """
        balance = (
            CreditBalance.objects.select_for_update()
            .filter(organization_id=organization_id)
            .first()
        )
        if balance is not None or not create:
            return balance

        if not Organization.objects.filter(id=organization_id).exists():
            raise OrganizationNotFound(
                f"Organization {organization_id} not found",
                details={"organization_id": str(organization_id)},
            )

        # get_or_create absorbs a concurrent first grant via its own savepoint
        CreditBalance.objects.get_or_create(organization_id=organization_id)
        return CreditBalance.objects.select_for_update().get(
            organization_id=organization_id
        )

    # ==========================================================================
    # Grant
    # ==========================================================================

    @staticmethod
    def grant(organization_id: uuid.UUID | str, grant: Grant) -> GrantResult:
        """
        Add credits to an organization.

        Creates the balance row on first use, inserts a consumable entry
        (except for adjustments), bumps the type total and appends the
        transaction, all in one transaction.

        Idempotent when grant.idempotency_key is set: a key that was already
        applied returns the current balance with created=False.

        Args:
            organization_id: Receiving organization
            grant: One of the grant variants from billing.ledger.types

        Returns:
            GrantResult with the new balance

        Raises:
            OrganizationNotFound: Organization does not exist
            InsufficientCredits: A negative adjustment exceeds the balance
            ConflictRetryExhausted: Balance lock contention
        """

        def _apply() -> GrantResult:
            balance = CreditLedgerService._lock_balance(organization_id, create=True)

            # Keys belong to a single organization, so this check is
            # serialized by the balance lock
            replay = CreditLedgerService._find_replay(grant.idempotency_key, balance)
            if replay is not None:
                return replay

            if grant.amount < 0 and balance.balance + grant.amount < 0:
                raise InsufficientCredits(
                    organization_id,
                    requested=-grant.amount,
                    available=balance.balance,
                    details={"transaction_type": grant.transaction_type},
                )

            metadata = grant.to_metadata()
            entry = None
            update_fields = ["balance", "updated_at"]

            if grant.creates_entry:
                entry = CreditEntry.objects.create(
                    organization_id=organization_id,
                    credit_type=grant.transaction_type,
                    amount=grant.amount,
                    remaining=grant.amount,
                    expires_at=grant.expires_at,
                    description=grant.description,
                    metadata=metadata,
                )
                total_field = CreditBalance.TOTAL_FIELDS[grant.transaction_type]
                setattr(balance, total_field, getattr(balance, total_field) + grant.amount)
                update_fields.append(total_field)

            balance.balance += grant.amount
            balance.save(update_fields=update_fields)

            txn = CreditTransaction.objects.create(
                organization_id=organization_id,
                transaction_type=grant.transaction_type,
                amount=grant.amount,
                description=grant.description,
                entry=entry,
                idempotency_key=grant.idempotency_key,
                metadata=metadata,
            )

            return GrantResult(
                new_balance=balance.balance,
                created=True,
                transaction_id=txn.id,
                entry_id=entry.id if entry else None,
            )

        try:
            result = CreditLedgerService._run_atomic(_apply, organization_id, "grant")
        except IntegrityError:
            # Another writer committed the same idempotency key first
            if not grant.idempotency_key:
                raise
            replay = CreditLedgerService._find_replay(
                grant.idempotency_key,
                CreditLedgerService.get_balance(organization_id),
            )
            if replay is None:
                raise
            result = replay

        logger.info(
            "Credits granted" if result.created else "Grant replay ignored",
            extra={
                "organization_id": str(organization_id),
                "transaction_type": grant.transaction_type,
                "amount": grant.amount,
                "idempotency_key": grant.idempotency_key,
                "new_balance": result.new_balance,
            },
        )
        return result

    @staticmethod
    def _find_replay(
        idempotency_key: str | None, balance: CreditBalance
    ) -> GrantResult | None:
        if not idempotency_key:
            return None
        existing = CreditTransaction.objects.filter(
            idempotency_key=idempotency_key
        ).first()
        if existing is None:
            return None
        return GrantResult(
            new_balance=balance.balance,
            created=False,
            transaction_id=existing.id,
            entry_id=existing.entry_id,
        )

    # ==========================================================================
    # Consume
    # ==========================================================================

    @staticmethod
    def plan_consumption(
        organization_id: uuid.UUID | str, amount: int
    ) -> list[ConsumptionAllocation]:
        """
        Allocate amount across entries in pool priority order.

        Pure with respect to the database: nothing is written. Inside a
        transaction the candidate entries are locked. The returned plan may
        cover less than amount when the entries run out.
        """
        allocations: list[ConsumptionAllocation] = []
        outstanding = amount

        for pool in CONSUMPTION_POOLS:
            if outstanding == 0:
                break

            candidates = CreditEntry.objects.filter(
                organization_id=organization_id,
                credit_type=pool.credit_type,
                remaining__gt=0,
            ).order_by(*pool.order_by)
            if connection.in_atomic_block:
                candidates = candidates.select_for_update()

            for entry in candidates:
                consumed = min(outstanding, entry.remaining)
                allocations.append(
                    ConsumptionAllocation(
                        entry_id=entry.id,
                        consumed=consumed,
                        credit_type=entry.credit_type,
                    )
                )
                outstanding -= consumed
                if outstanding == 0:
                    break

        return allocations

    @staticmethod
    def consume(
        organization_id: uuid.UUID | str,
        amount: int,
        description: str,
        service_used: str | None = None,
        user_id: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ConsumeResult:
        """
        Spend credits in priority order (bonus, earned, refunded, purchased).

        The full allocation is planned against the locked entries before
        anything is written; if it falls short nothing changes.

        Args:
            organization_id: Charged organization
            amount: Credits to spend (positive)
            description: What the credits were spent on
            service_used: Consuming service, recorded in metadata
            user_id: Acting user, recorded in metadata

        Returns:
            ConsumeResult with the new balance and per-entry breakdown

        Raises:
            ValidationError: amount is not a positive integer
            InsufficientCredits: Balance does not cover amount
            ConflictRetryExhausted: Balance lock contention
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError(
                "Amount must be a positive integer",
                error_code="INVALID_AMOUNT",
                details={"amount": repr(amount)},
            )

        def _apply() -> ConsumeResult:
            balance = CreditLedgerService._lock_balance(organization_id)
            available = balance.balance if balance else 0
            if available < amount:
                raise InsufficientCredits(organization_id, amount, available)

            allocations = CreditLedgerService.plan_consumption(organization_id, amount)
            allocated = sum(item.consumed for item in allocations)
            if allocated < amount:
                logger.error(
                    "Credit balance exceeds consumable entries",
                    extra={
                        "organization_id": str(organization_id),
                        "balance": available,
                        "consumable": allocated,
                    },
                )
                raise InsufficientCredits(organization_id, amount, allocated)

            now = timezone.now()
            entries = CreditEntry.objects.in_bulk([item.entry_id for item in allocations])
            for item in allocations:
                entry = entries[item.entry_id]
                entry.remaining -= item.consumed
                entry.updated_at = now
            CreditEntry.objects.bulk_update(entries.values(), ["remaining", "updated_at"])

            balance.balance -= amount
            balance.total_used += amount
            balance.save(update_fields=["balance", "total_used", "updated_at"])

            txn_metadata = {
                **(metadata or {}),
                "service_used": service_used,
                "user_id": user_id,
                "allocations": [item.to_dict() for item in allocations],
            }
            txn = CreditTransaction.objects.create(
                organization_id=organization_id,
                transaction_type=TransactionType.USED,
                amount=-amount,
                description=description,
                metadata=txn_metadata,
            )

            return ConsumeResult(
                new_balance=balance.balance,
                breakdown=allocations,
                transaction_id=txn.id,
            )

        result = CreditLedgerService._run_atomic(_apply, organization_id, "consume")

        logger.info(
            "Credits consumed",
            extra={
                "organization_id": str(organization_id),
                "amount": amount,
                "service_used": service_used,
                "new_balance": result.new_balance,
            },
        )
        return result

    # ==========================================================================
    # Expiration
    # ==========================================================================

    @staticmethod
    def expire_entry(entry_id: uuid.UUID | str, now: datetime | None = None) -> int:
        """
        Zero out one lapsed entry and debit its remainder from the balance.

        Returns:
            Credits expired; 0 when the entry is not lapsed or already empty

        Raises:
            CreditEntryNotFound: Unknown entry
            ConflictRetryExhausted: Balance lock contention
        """
        now = now or timezone.now()

        organization_id = (
            CreditEntry.objects.filter(pk=entry_id)
            .values_list("organization_id", flat=True)
            .first()
        )
        if organization_id is None:
            raise CreditEntryNotFound(
                f"Credit entry {entry_id} not found",
                details={"entry_id": str(entry_id)},
            )

        def _apply() -> int:
            balance = CreditLedgerService._lock_balance(organization_id)
            entry = CreditEntry.objects.select_for_update().get(pk=entry_id)

            if (
                balance is None
                or entry.remaining == 0
                or entry.expires_at is None
                or entry.expires_at > now
            ):
                return 0

            expired = entry.remaining
            entry.remaining = 0
            entry.save(update_fields=["remaining", "updated_at"])

            balance.balance -= expired
            balance.save(update_fields=["balance", "updated_at"])

            CreditTransaction.objects.create(
                organization_id=organization_id,
                transaction_type=TransactionType.EXPIRED,
                amount=-expired,
                description=(
                    f"Expired {entry.credit_type} credits: {entry.description}"
                ),
                entry=entry,
                metadata={
                    "entry_id": str(entry.id),
                    "original_amount": entry.amount,
                    "expires_at": entry.expires_at.isoformat(),
                },
            )
            return expired

        expired = CreditLedgerService._run_atomic(_apply, organization_id, "expire")

        if expired:
            logger.info(
                "Credit entry expired",
                extra={
                    "organization_id": str(organization_id),
                    "entry_id": str(entry_id),
                    "amount": expired,
                },
            )
        return expired

    @staticmethod
    def expire_sweep(
        now: datetime | None = None,
        batch_size: int | None = None,
    ) -> SweepResult:
        """
        Expire every lapsed entry with credits left, across organizations.

        Entries are processed one transaction each, so an interrupted sweep
        keeps its progress and a rerun only sees what is still left. An entry
        whose organization stays locked is skipped until the next run.

        Returns:
            SweepResult with the number of entries and credits expired
        """
        now = now or timezone.now()
        batch_size = batch_size or settings.CREDIT_EXPIRY_BATCH_SIZE
        result = SweepResult()
        skipped: set = set()

        while True:
            batch = list(
                CreditEntry.objects.filter(expires_at__lte=now, remaining__gt=0)
                .exclude(id__in=skipped)
                .order_by("expires_at", "id")
                .values_list("id", flat=True)[:batch_size]
            )
            if not batch:
                break

            for entry_id in batch:
                try:
                    expired = CreditLedgerService.expire_entry(entry_id, now=now)
                except ConflictRetryExhausted:
                    logger.warning(
                        "Skipping credit entry locked during sweep",
                        extra={"entry_id": str(entry_id)},
                    )
                    skipped.add(entry_id)
                    continue

                if expired:
                    result.expired_entry_count += 1
                    result.total_expired += expired
                else:
                    skipped.add(entry_id)

        logger.info(
            "Credit expiration sweep finished",
            extra={**result.to_dict(), "skipped": len(skipped)},
        )
        return result

    # ==========================================================================
    # Reads
    # ==========================================================================

    @staticmethod
    def get_balance(organization_id: uuid.UUID | str) -> CreditBalance:
        """
        Return the organization's balance.

        An organization that never received credits reads as an unsaved
        all-zero balance; no row is created.
        """
        balance = CreditBalance.objects.filter(organization_id=organization_id).first()
        if balance is None:
            balance = CreditBalance(organization_id=organization_id)
        return balance

    @staticmethod
    def get_transaction_queryset(organization_id: uuid.UUID | str) -> QuerySet:
        """Transactions of the organization, newest first."""
        return CreditTransaction.objects.filter(
            organization_id=organization_id
        ).order_by("-created_at", "-id")

    @staticmethod
    def get_transactions(
        organization_id: uuid.UUID | str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[CreditTransaction]:
        return list(
            CreditLedgerService.get_transaction_queryset(organization_id)[
                offset : offset + limit
            ]
        )

    @staticmethod
    def get_breakdown(
        organization_id: uuid.UUID | str,
        now: datetime | None = None,
    ) -> CreditBreakdown:
        """
        Group remaining credits by type.

        expiring_soon sums entries whose expiry falls within
        CREDIT_EXPIRING_SOON_DAYS of now.
        """
        now = now or timezone.now()
        horizon = now + timedelta(days=settings.CREDIT_EXPIRING_SOON_DAYS)
        breakdown = CreditBreakdown()

        entries = CreditEntry.objects.filter(
            organization_id=organization_id,
            remaining__gt=0,
        ).order_by("created_at", "id")

        for entry in entries:
            pool = breakdown[entry.credit_type]
            pool.total += entry.remaining
            pool.entries.append(entry)
            if entry.expires_at is not None and entry.expires_at <= horizon:
                pool.expiring_soon += entry.remaining

        return breakdown


# Singleton instance for convenience
# Usage: from billing.ledger.services import credit_ledger
credit_ledger = CreditLedgerService()
