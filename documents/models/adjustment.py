from django.db import models
from django_fsm import FSMField, transition
from django_fsm_log.decorators import fsm_log_by
from simple_history.models import HistoricalRecords

from documents.models.base import DocumentLine, SingleLocationDocument, quantity_field
from inventory.models import StockLedgerEntry
from inventory.services.ledger import PlannedMove, last_running_balance


class StockAdjustment(SingleLocationDocument):
    """Correct the books to a physical count: draft -> done | cancelled."""

    KIND = "adjustment"
    HEADER_FIELDS = ("warehouse", "location", "scheduled_date", "notes")

    class State(models.TextChoices):
        DRAFT = "draft", "Draft"
        DONE = "done", "Done"
        CANCELLED = "cancelled", "Cancelled"

    state = FSMField(default=State.DRAFT, choices=State.choices, protected=True)

    history = HistoricalRecords()

    class Meta(SingleLocationDocument.Meta):
        indexes = [models.Index(fields=["state", "created_at"])]

    @fsm_log_by
    @transition(field=state, source=State.DRAFT, target=State.DONE)
    def validate(self, by=None):
        self._stamp_validated(by)

    @fsm_log_by
    @transition(field=state, source=State.DRAFT, target=State.CANCELLED)
    def cancel(self, by=None):
        self._stamp_cancelled()

    def line_defaults(self, product_id):
        """Recorded quantity defaults to what the books say for this location."""
        return {
            "recorded_quantity": last_running_balance(product_id, self.warehouse_id, self.location_id),
        }

    def planned_moves(self):
        """Signed difference: counted 80 vs recorded 100 books -20."""
        return [
            PlannedMove(
                product=line.product,
                warehouse=self.warehouse,
                location=self.location,
                quantity=line.difference,
                transaction_type=StockLedgerEntry.TransactionType.ADJUSTMENT,
                note=f"Stock adjustment - {line.reason}: {line.notes}".rstrip(": "),
            )
            for line in self.get_lines()
        ]


class StockAdjustmentLine(DocumentLine):
    LINE_FIELDS = ("product", "recorded_quantity", "counted_quantity", "reason", "notes")

    class Reason(models.TextChoices):
        DAMAGED = "damaged", "Damaged"
        LOST = "lost", "Lost"
        FOUND = "found", "Found"
        EXPIRED = "expired", "Expired"
        THEFT = "theft", "Theft"
        CYCLE_COUNT = "cycle_count", "Cycle count"
        OTHER = "other", "Other"

    document = models.ForeignKey(StockAdjustment, on_delete=models.CASCADE, related_name="lines")

    recorded_quantity = quantity_field()
    counted_quantity = quantity_field()
    difference = models.DecimalField(max_digits=14, decimal_places=3, default=0, editable=False)
    reason = models.CharField(max_length=20, choices=Reason.choices, default=Reason.CYCLE_COUNT)
    notes = models.CharField(max_length=255, blank=True, default="")

    history = HistoricalRecords()

    class Meta(DocumentLine.Meta):
        unique_together = ("document", "line_no")

    def save(self, *args, **kwargs):
        """difference is always derived, never taken from input."""
        self.difference = self.counted_quantity - self.recorded_quantity
        super().save(*args, **kwargs)
