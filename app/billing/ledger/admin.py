"""
Django admin configuration for credit ledger models.

Entries and transactions are read-only: every change must go through
CreditLedgerService so the balance invariant holds. Balances are shown
but not editable by hand.
"""

from django.contrib import admin

from .models import CreditBalance, CreditEntry, CreditTransaction


class ReadOnlyLedgerAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(CreditBalance)
class CreditBalanceAdmin(ReadOnlyLedgerAdmin):
    list_display = [
        "organization",
        "balance",
        "total_earned",
        "total_purchased",
        "total_bonus",
        "total_refunded",
        "total_used",
        "updated_at",
    ]
    search_fields = ["organization__name", "organization__slug"]
    list_select_related = ["organization"]


@admin.register(CreditEntry)
class CreditEntryAdmin(ReadOnlyLedgerAdmin):
    """Grants with their remaining amounts; filter by type to audit a pool."""

    list_display = [
        "id",
        "organization",
        "credit_type",
        "amount",
        "remaining",
        "expires_at",
        "created_at",
    ]
    list_filter = ["credit_type", "created_at", "expires_at"]
    search_fields = ["id", "organization__name", "description"]
    list_select_related = ["organization"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]


@admin.register(CreditTransaction)
class CreditTransactionAdmin(ReadOnlyLedgerAdmin):
    list_display = [
        "id",
        "organization",
        "transaction_type",
        "amount",
        "description",
        "service_used",
        "created_at",
    ]
    list_filter = ["transaction_type", "created_at"]
    search_fields = ["id", "organization__name", "description", "idempotency_key"]
    list_select_related = ["organization"]
    date_hierarchy = "created_at"

    @admin.display(description="Service")
    def service_used(self, obj):
        return obj.get_meta("service_used", "")
