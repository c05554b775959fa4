from decimal import Decimal

from django.conf import settings
from django.contrib.contenttypes.fields import GenericForeignKey
from django.contrib.contenttypes.models import ContentType
from django.db import models

ZERO = Decimal("0.000")


class LedgerImmutableError(Exception):
    pass


class StockLedgerQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise LedgerImmutableError("Stock ledger entries cannot be updated.")

    def delete(self):
        raise LedgerImmutableError("Stock ledger entries cannot be deleted.")

    def for_triple(self, product, warehouse, location):
        return self.filter(product=product, warehouse=warehouse, location=location)

    def chronological(self):
        return self.order_by("created_at", "id")

    def newest_first(self):
        return self.order_by("-created_at", "-id")


class StockLedgerEntry(models.Model):
    """Append-only stock movement.

    The ledger is the only source of truth for quantity on hand. For a fixed
    (product, warehouse, location) the entries in chronological order form a
    cumulative sum: running_balance = previous running_balance + quantity,
    starting from 0. Rows are written by inventory.services.ledger and never
    changed afterwards.
    """

    class TransactionType(models.TextChoices):
        RECEIPT = "receipt", "Receipt"
        DELIVERY = "delivery", "Delivery"
        TRANSFER_IN = "transfer_in", "Transfer in"
        TRANSFER_OUT = "transfer_out", "Transfer out"
        ADJUSTMENT = "adjustment", "Adjustment"

    product = models.ForeignKey("masterdata.Product", on_delete=models.PROTECT, related_name="ledger_entries")
    warehouse = models.ForeignKey("masterdata.Warehouse", on_delete=models.PROTECT, related_name="ledger_entries")
    location = models.ForeignKey("masterdata.Location", on_delete=models.PROTECT, related_name="ledger_entries")

    quantity = models.DecimalField(max_digits=14, decimal_places=3)
    running_balance = models.DecimalField(max_digits=14, decimal_places=3)

    transaction_type = models.CharField(max_length=20, choices=TransactionType.choices, db_index=True)

    # Source document: number for display, generic link for navigation
    reference_doc = models.CharField(max_length=40)
    content_type = models.ForeignKey(ContentType, on_delete=models.PROTECT)
    object_id = models.PositiveBigIntegerField()
    document = GenericForeignKey("content_type", "object_id")

    performed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+")
    note = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    objects = StockLedgerQuerySet.as_manager()

    class Meta:
        ordering = ("-created_at", "-id")
        verbose_name_plural = "stock ledger entries"
        indexes = [
            models.Index(fields=["product", "warehouse", "location", "created_at"]),
            models.Index(fields=["content_type", "object_id"]),
        ]

    def __str__(self):
        return f"{self.reference_doc} {self.product_id} {self.quantity:+} -> {self.running_balance}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise LedgerImmutableError("Stock ledger entries cannot be changed once written.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise LedgerImmutableError("Stock ledger entries cannot be deleted.")


class StockQuant(models.Model):
    """Current balance per (product, warehouse, location).

    This row is the lock target for validation: select_for_update on it
    serializes every read-check-write on the same triple, while validations on
    other triples lock other rows and proceed in parallel. It is only written
    together with a ledger append, so quantity == last running_balance.
    """

    product = models.ForeignKey("masterdata.Product", on_delete=models.PROTECT, related_name="quants")
    warehouse = models.ForeignKey("masterdata.Warehouse", on_delete=models.PROTECT, related_name="quants")
    location = models.ForeignKey("masterdata.Location", on_delete=models.PROTECT, related_name="quants")

    quantity = models.DecimalField(max_digits=14, decimal_places=3, default=ZERO)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["product", "warehouse", "location"]
        constraints = [
            models.UniqueConstraint(
                fields=["product", "warehouse", "location"], name="inventory_quant_triple_uniq"
            ),
        ]

    def __str__(self):
        return f"{self.product_id}@{self.warehouse_id}/{self.location_id}: {self.quantity}"

    @property
    def triple(self):
        return (self.product_id, self.warehouse_id, self.location_id)
