from django.contrib import admin

from inventory.models import StockLedgerEntry, StockQuant


class ReadOnlyAdminMixin:
    """Rows are written by the validation service only."""

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(StockLedgerEntry)
class StockLedgerEntryAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "created_at", "reference_doc", "transaction_type", "product", "warehouse",
        "location", "quantity", "running_balance", "performed_by",
    )
    list_filter = ("transaction_type", "warehouse")
    search_fields = ("reference_doc", "product__sku", "product__name")
    list_select_related = ("product", "warehouse", "location", "performed_by")
    date_hierarchy = "created_at"


@admin.register(StockQuant)
class StockQuantAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("product", "warehouse", "location", "quantity", "updated_at")
    list_filter = ("warehouse",)
    search_fields = ("product__sku", "product__name")
    list_select_related = ("product", "warehouse", "location")
