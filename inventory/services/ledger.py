"""Writing to the stock ledger.

Everything here must run inside the caller's transaction. The validation
engine wraps a whole document in one ``transaction.atomic()``; if any move
fails, all entries staged for that document are rolled back with it.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.contrib.contenttypes.models import ContentType
from django.db import transaction

from core.exceptions import InsufficientStock
from inventory.models import StockLedgerEntry, StockQuant, ZERO

logger = logging.getLogger(__name__)

# Only removals are checked against the balance; a counted adjustment is always booked.
CHECKED_TYPES = frozenset({
    StockLedgerEntry.TransactionType.DELIVERY,
    StockLedgerEntry.TransactionType.TRANSFER_OUT,
})


@dataclass(frozen=True)
class PlannedMove:
    """One signed quantity change a document wants to apply."""

    product: object
    warehouse: object
    location: object
    quantity: Decimal
    transaction_type: str
    note: str = ""

    @property
    def triple(self):
        return (self.product.pk, self.warehouse.pk, self.location.pk)


def last_running_balance(product, warehouse, location) -> Decimal:
    """Running balance of the newest entry for a triple (0 if none)."""
    entry = (
        StockLedgerEntry.objects
        .for_triple(product, warehouse, location)
        .newest_first()
        .values_list("running_balance", flat=True)
        .first()
    )
    return entry if entry is not None else ZERO


def lock_quants(triples) -> dict:
    """Lock the StockQuant rows for the given triples and return them by triple.

    Rows are locked one at a time in sorted order, so two validations that
    share triples always take their locks in the same sequence and cannot
    deadlock each other. Missing rows are created first, seeded from the
    ledger's last running balance.
    """
    quants = {}
    for product_id, warehouse_id, location_id in sorted(set(triples)):
        lookup = {"product_id": product_id, "warehouse_id": warehouse_id, "location_id": location_id}
        StockQuant.objects.get_or_create(
            **lookup,
            defaults={"quantity": last_running_balance(product_id, warehouse_id, location_id)},
        )
        quants[(product_id, warehouse_id, location_id)] = StockQuant.objects.select_for_update().get(**lookup)
    return quants


def post_moves(document, moves, *, user):
    """Append one ledger entry per move and return the new entries.

    Moves are applied in the given order against the locked balances, so two
    lines for the same triple compound instead of both reading the balance from
    before the transaction. A delivery or transfer-out larger than the current
    balance raises InsufficientStock; the caller's transaction then discards
    every entry written so far. Adjustments record a physical count and are
    booked even when the result is negative.
    """
    moves = [m for m in moves if m.quantity != 0]
    if not moves:
        return []

    if not transaction.get_connection().in_atomic_block:
        raise RuntimeError("post_moves() must run inside transaction.atomic().")

    quants = lock_quants(m.triple for m in moves)
    content_type = ContentType.objects.get_for_model(document)

    entries = []
    for move in moves:
        quant = quants[move.triple]
        balance = quant.quantity + move.quantity

        if move.transaction_type in CHECKED_TYPES and balance < 0:
            logger.warning(
                "Insufficient stock for %s at %s/%s: have %s, need %s (%s)",
                move.product.sku, move.warehouse.pk, move.location.pk,
                quant.quantity, -move.quantity, document.number,
            )
            raise InsufficientStock(
                f"Insufficient stock for product {move.product.sku}: "
                f"available {quant.quantity}, requested {-move.quantity}.",
                product=move.product,
                warehouse=move.warehouse,
                location=move.location,
                available=quant.quantity,
                requested=-move.quantity,
            )

        quant.quantity = balance
        entries.append(StockLedgerEntry.objects.create(
            product=move.product,
            warehouse=move.warehouse,
            location=move.location,
            quantity=move.quantity,
            running_balance=balance,
            transaction_type=move.transaction_type,
            reference_doc=document.number,
            content_type=content_type,
            object_id=document.pk,
            performed_by=user,
            note=move.note[:1000],
        ))

    for quant in quants.values():
        quant.save(update_fields=["quantity", "updated_at"])

    return entries
