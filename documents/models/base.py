from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from masterdata.models import Location

ZERO = Decimal("0.000")

DRAFT = "draft"
DONE = "done"
CANCELLED = "cancelled"
TERMINAL_STATES = (DONE, CANCELLED)


def check_location(warehouse_id, location_id, field="location"):
    """Raise if the location is unknown, inactive or outside the warehouse."""
    if not (warehouse_id and location_id):
        return
    try:
        location = Location.objects.filter(pk=location_id).first()
    except (ValueError, TypeError):
        return
    if location is None:
        return
    if str(location.warehouse_id) != str(warehouse_id):
        raise ValidationError({field: f"Location {location} does not belong to the selected warehouse."})
    if not location.is_active:
        raise ValidationError({field: f"Location {location} is inactive."})


def quantity_field(**kwargs):
    kwargs.setdefault("default", ZERO)
    return models.DecimalField(
        max_digits=14, decimal_places=3, validators=[MinValueValidator(ZERO)], **kwargs
    )


def price_field(**kwargs):
    kwargs.setdefault("default", Decimal("0.00"))
    return models.DecimalField(
        max_digits=14, decimal_places=2, validators=[MinValueValidator(Decimal("0.00"))], **kwargs
    )


class StockDocument(models.Model):
    """Shared header of the four stock documents.

    A document states an *intent* to move stock. Nothing reaches the ledger
    until validate() runs through documents.services.validation, which writes
    the ledger entries and fires the FSM transition in one transaction.

    Subclasses define:
    - KIND: registry key and number series code ("receipt", ...)
    - State: TextChoices incl. draft/done/cancelled, and an FSMField ``state``
    - HEADER_FIELDS: fields a caller may set on create/update
    - validate(by=None) / cancel(by=None) transitions
    - planned_moves(): list of inventory.services.ledger.PlannedMove
    """

    KIND = None
    HEADER_FIELDS = ()

    number = models.CharField(max_length=40, unique=True, editable=False)
    scheduled_date = models.DateField(default=timezone.localdate)
    notes = models.TextField(blank=True, default="")

    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+")
    validated_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True,
                                     on_delete=models.PROTECT, related_name="+")
    validated_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ("-created_at", "-id")

    def __str__(self):
        return f"{self.number or self.pk} ({self.state})"

    @property
    def is_open(self) -> bool:
        return self.state not in TERMINAL_STATES

    @property
    def is_done(self) -> bool:
        return self.state == DONE

    @property
    def lines_editable(self) -> bool:
        """Line items may only be replaced in the initial state."""
        return self.state == DRAFT

    def get_lines(self):
        return list(self.lines.select_related("product").order_by("line_no"))

    def line_defaults(self, product_id):
        """Initial values for a new line of ``product_id``; explicit input wins."""
        return {}

    def planned_moves(self):
        raise NotImplementedError

    def _stamp_validated(self, by):
        self.validated_by = by
        self.validated_at = timezone.now()

    def _stamp_cancelled(self):
        self.cancelled_at = timezone.now()


class DocumentLine(models.Model):
    """Shared line shape: position + product. Quantities live on the subclass."""

    LINE_FIELDS = ()

    line_no = models.PositiveIntegerField()
    product = models.ForeignKey("masterdata.Product", on_delete=models.PROTECT, related_name="+")

    class Meta:
        abstract = True
        ordering = ["line_no"]

    def __str__(self):
        return f"{self.line_no}: {self.product_id}"


class SingleLocationDocument(StockDocument):
    """Receipts, deliveries and adjustments touch one warehouse/location pair."""

    warehouse = models.ForeignKey("masterdata.Warehouse", on_delete=models.PROTECT, related_name="+")
    location = models.ForeignKey("masterdata.Location", on_delete=models.PROTECT, related_name="+")

    class Meta(StockDocument.Meta):
        abstract = True

    def clean(self):
        check_location(self.warehouse_id, self.location_id)
