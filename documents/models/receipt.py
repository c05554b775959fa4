from django.db import models
from django_fsm import FSMField, transition
from django_fsm_log.decorators import fsm_log_by
from simple_history.models import HistoricalRecords

from documents.models.base import DocumentLine, SingleLocationDocument, price_field, quantity_field
from inventory.models import StockLedgerEntry
from inventory.services.ledger import PlannedMove


class Receipt(SingleLocationDocument):
    """Incoming goods from a supplier: draft -> done | cancelled."""

    KIND = "receipt"
    HEADER_FIELDS = (
        "supplier_name", "supplier_contact", "supplier_email",
        "warehouse", "location", "scheduled_date", "notes",
    )

    class State(models.TextChoices):
        DRAFT = "draft", "Draft"
        DONE = "done", "Done"
        CANCELLED = "cancelled", "Cancelled"

    state = FSMField(default=State.DRAFT, choices=State.choices, protected=True)

    supplier_name = models.CharField(max_length=255)
    supplier_contact = models.CharField(max_length=255, blank=True, default="")
    supplier_email = models.EmailField(blank=True, default="")

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

    def planned_moves(self):
        """Received quantity goes into the receiving location."""
        return [
            PlannedMove(
                product=line.product,
                warehouse=self.warehouse,
                location=self.location,
                quantity=line.quantity_received,
                transaction_type=StockLedgerEntry.TransactionType.RECEIPT,
                note=f"Receipt from {self.supplier_name}",
            )
            for line in self.get_lines()
        ]


class ReceiptLine(DocumentLine):
    LINE_FIELDS = ("product", "quantity_ordered", "quantity_received", "unit_price")

    document = models.ForeignKey(Receipt, on_delete=models.CASCADE, related_name="lines")

    quantity_ordered = quantity_field()
    quantity_received = quantity_field()
    unit_price = price_field()

    history = HistoricalRecords()

    class Meta(DocumentLine.Meta):
        unique_together = ("document", "line_no")
