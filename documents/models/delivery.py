from django.db import models
from django_fsm import FSMField, RETURN_VALUE, transition
from django_fsm_log.decorators import fsm_log_by
from simple_history.models import HistoricalRecords

from documents.models.base import DocumentLine, SingleLocationDocument, price_field, quantity_field
from inventory.models import StockLedgerEntry
from inventory.services.ledger import PlannedMove


class Delivery(SingleLocationDocument):
    """Outgoing goods to a customer.

    draft -> picking -> packing/ready -> done, with cancel from any open state.
    Picking and packing only record progress on the lines; validate() is the
    only step that touches stock, and it removes ``quantity_delivered``.
    """

    KIND = "delivery"
    HEADER_FIELDS = (
        "customer_name", "customer_contact", "customer_email", "customer_address",
        "warehouse", "location", "scheduled_date", "notes",
    )

    class State(models.TextChoices):
        DRAFT = "draft", "Draft"
        PICKING = "picking", "Picking"
        PACKING = "packing", "Packing"
        READY = "ready", "Ready"
        DONE = "done", "Done"
        CANCELLED = "cancelled", "Cancelled"

    OPEN_STATES = [State.DRAFT, State.PICKING, State.PACKING, State.READY]

    state = FSMField(default=State.DRAFT, choices=State.choices, protected=True)

    customer_name = models.CharField(max_length=255)
    customer_contact = models.CharField(max_length=255, blank=True, default="")
    customer_email = models.EmailField(blank=True, default="")
    customer_address = models.TextField(blank=True, default="")

    delivered_at = models.DateTimeField(null=True, blank=True)

    history = HistoricalRecords()

    class Meta(SingleLocationDocument.Meta):
        verbose_name_plural = "deliveries"
        indexes = [models.Index(fields=["state", "created_at"])]

    @fsm_log_by
    @transition(field=state, source=[State.DRAFT, State.PICKING], target=State.PICKING)
    def pick(self, quantities, by=None):
        """Record picked quantities: {line_no: qty}. Lines not mentioned keep theirs."""
        lines = {line.line_no: line for line in self.get_lines()}
        for line_no, qty in quantities.items():
            line = lines[line_no]
            line.quantity_picked = qty
            line.save(update_fields=["quantity_picked"])

    @fsm_log_by
    @transition(field=state, source=[State.PICKING, State.PACKING],
                target=RETURN_VALUE(State.PACKING, State.READY))
    def pack(self, quantities, by=None):
        """Record packed quantities: {line_no: qty}.

        Packed quantity is what will ship, so it also becomes the delivered
        quantity. The delivery is ready once every picked unit is packed.
        """
        lines = self.get_lines()
        by_no = {line.line_no: line for line in lines}
        for line_no, qty in quantities.items():
            line = by_no[line_no]
            line.quantity_packed = qty
            line.quantity_delivered = qty
            line.save(update_fields=["quantity_packed", "quantity_delivered"])

        if all(line.quantity_packed >= line.quantity_picked for line in lines):
            return self.State.READY
        return self.State.PACKING

    @fsm_log_by
    @transition(field=state, source=OPEN_STATES, target=State.DONE)
    def validate(self, by=None):
        self._stamp_validated(by)
        self.delivered_at = self.validated_at

    @fsm_log_by
    @transition(field=state, source=OPEN_STATES, target=State.CANCELLED)
    def cancel(self, by=None):
        self._stamp_cancelled()

    def planned_moves(self):
        return [
            PlannedMove(
                product=line.product,
                warehouse=self.warehouse,
                location=self.location,
                quantity=-line.quantity_delivered,
                transaction_type=StockLedgerEntry.TransactionType.DELIVERY,
                note=f"Delivery to {self.customer_name}",
            )
            for line in self.get_lines()
        ]


class DeliveryLine(DocumentLine):
    LINE_FIELDS = (
        "product", "quantity_ordered", "quantity_picked", "quantity_packed",
        "quantity_delivered", "unit_price",
    )

    document = models.ForeignKey(Delivery, on_delete=models.CASCADE, related_name="lines")

    quantity_ordered = quantity_field()
    quantity_picked = quantity_field()
    quantity_packed = quantity_field()
    quantity_delivered = quantity_field()
    unit_price = price_field()

    history = HistoricalRecords()

    class Meta(DocumentLine.Meta):
        unique_together = ("document", "line_no")
