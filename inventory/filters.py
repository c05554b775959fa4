import django_filters

from inventory.models import StockLedgerEntry
from masterdata.models import Location, Product, Warehouse


class StockLedgerFilter(django_filters.FilterSet):
    """Move history filters: product, warehouse, location, type and date range."""

    product = django_filters.ModelChoiceFilter(queryset=Product.objects.all())
    warehouse = django_filters.ModelChoiceFilter(queryset=Warehouse.objects.all())
    location = django_filters.ModelChoiceFilter(queryset=Location.objects.all())
    transaction_type = django_filters.ChoiceFilter(choices=StockLedgerEntry.TransactionType.choices)
    reference_doc = django_filters.CharFilter(lookup_expr="iexact")

    created_after = django_filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_before = django_filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = StockLedgerEntry
        fields = ["product", "warehouse", "location", "transaction_type", "reference_doc"]
