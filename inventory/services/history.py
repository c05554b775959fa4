from django.conf import settings

from core.exceptions import ValidationError
from inventory.filters import StockLedgerFilter
from inventory.models import StockLedgerEntry


def list_ledger_history(filters=None, *, limit=None):
    """Ledger entries matching ``filters``, newest first.

    ``filters`` takes the StockLedgerFilter keys: product, warehouse, location,
    transaction_type, reference_doc, created_after, created_before. Values may
    be ids, model instances or (for dates) ISO strings / datetimes.
    """
    filters = {k: v for k, v in (filters or {}).items() if v not in (None, "")}
    if limit is None:
        limit = getattr(settings, "INVENTORY_LEDGER_HISTORY_LIMIT", 100)
    if limit < 0:
        raise ValidationError("Invalid ledger history limit.", details={"limit": ["Enter a non-negative number."]})

    base = StockLedgerEntry.objects.select_related(
        "product", "warehouse", "location", "performed_by"
    )
    filterset = StockLedgerFilter(filters, queryset=base)
    if not filterset.is_valid():
        errors = {field: [str(e) for e in messages] for field, messages in filterset.errors.items()}
        raise ValidationError("Invalid ledger history filter.", details=errors)

    qs = filterset.qs.newest_first()
    if limit:
        qs = qs[:limit]
    return list(qs)
