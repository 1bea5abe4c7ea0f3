import django_filters as filters

from billing.ledger.models import CreditTransaction, TransactionType


class CreditTransactionFilter(filters.FilterSet):
    transaction_type = filters.MultipleChoiceFilter(choices=TransactionType.choices)
    start_date = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    end_date = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = CreditTransaction
        fields = ["transaction_type", "start_date", "end_date"]
