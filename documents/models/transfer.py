from django.core.exceptions import ValidationError
from django.db import models
from django_fsm import FSMField, transition
from django_fsm_log.decorators import fsm_log_by
from simple_history.models import HistoricalRecords

from documents.models.base import DocumentLine, StockDocument, check_location, quantity_field
from inventory.models import StockLedgerEntry
from inventory.services.ledger import PlannedMove


class InternalTransfer(StockDocument):
    """Move stock between two locations (possibly in different warehouses).

    Validation writes a pair of entries per line: transfer_out at the source
    and transfer_in at the destination, so the product's total is unchanged.
    """

    KIND = "transfer"
    HEADER_FIELDS = (
        "source_warehouse", "source_location",
        "destination_warehouse", "destination_location",
        "scheduled_date", "notes",
    )

    class State(models.TextChoices):
        DRAFT = "draft", "Draft"
        IN_TRANSIT = "in_transit", "In transit"
        DONE = "done", "Done"
        CANCELLED = "cancelled", "Cancelled"

    state = FSMField(default=State.DRAFT, choices=State.choices, protected=True)

    source_warehouse = models.ForeignKey("masterdata.Warehouse", on_delete=models.PROTECT, related_name="+")
    source_location = models.ForeignKey("masterdata.Location", on_delete=models.PROTECT, related_name="+")
    destination_warehouse = models.ForeignKey("masterdata.Warehouse", on_delete=models.PROTECT, related_name="+")
    destination_location = models.ForeignKey("masterdata.Location", on_delete=models.PROTECT, related_name="+")

    history = HistoricalRecords()

    class Meta(StockDocument.Meta):
        indexes = [models.Index(fields=["state", "created_at"])]

    def clean(self):
        check_location(self.source_warehouse_id, self.source_location_id, "source_location")
        check_location(self.destination_warehouse_id, self.destination_location_id, "destination_location")
        if self.source_location_id and str(self.source_location_id) == str(self.destination_location_id):
            raise ValidationError({"destination_location": "Source and destination must differ."})

    @fsm_log_by
    @transition(field=state, source=State.DRAFT, target=State.IN_TRANSIT)
    def mark_in_transit(self, by=None):
        pass

    @fsm_log_by
    @transition(field=state, source=[State.DRAFT, State.IN_TRANSIT], target=State.DONE)
    def validate(self, by=None):
        self._stamp_validated(by)

    @fsm_log_by
    @transition(field=state, source=[State.DRAFT, State.IN_TRANSIT], target=State.CANCELLED)
    def cancel(self, by=None):
        self._stamp_cancelled()

    def planned_moves(self):
        moves = []
        for line in self.get_lines():
            qty = line.effective_quantity
            moves.append(PlannedMove(
                product=line.product,
                warehouse=self.source_warehouse,
                location=self.source_location,
                quantity=-qty,
                transaction_type=StockLedgerEntry.TransactionType.TRANSFER_OUT,
                note=f"Transfer to {self.destination_location}",
            ))
            moves.append(PlannedMove(
                product=line.product,
                warehouse=self.destination_warehouse,
                location=self.destination_location,
                quantity=qty,
                transaction_type=StockLedgerEntry.TransactionType.TRANSFER_IN,
                note=f"Transfer from {self.source_location}",
            ))
        return moves


class InternalTransferLine(DocumentLine):
    LINE_FIELDS = ("product", "quantity", "quantity_transferred")

    document = models.ForeignKey(InternalTransfer, on_delete=models.CASCADE, related_name="lines")

    quantity = quantity_field()
    quantity_transferred = quantity_field()

    history = HistoricalRecords()

    class Meta(DocumentLine.Meta):
        unique_together = ("document", "line_no")

    @property
    def effective_quantity(self):
        """Actually transferred amount; the requested quantity when none was recorded."""
        return self.quantity_transferred or self.quantity
