"""Internal API of the inventory core.

The HTTP adapter, the admin actions and the management commands all go
through these functions. Every failure is one of the errors in
core.exceptions.
"""

from documents.services.lifecycle import (
    cancel_document,
    create_document,
    mark_transfer_in_transit,
    pack_delivery,
    pick_delivery,
    update_document,
)
from documents.services.validation import validate_document
from inventory.services.history import list_ledger_history
from inventory.services.projection import (
    catalog_levels,
    get_stock_level,
    low_stock_products,
    out_of_stock_products,
    stock_by_location,
)

__all__ = [
    "cancel_document",
    "catalog_levels",
    "create_document",
    "get_stock_level",
    "list_ledger_history",
    "low_stock_products",
    "mark_transfer_in_transit",
    "out_of_stock_products",
    "pack_delivery",
    "pick_delivery",
    "stock_by_location",
    "update_document",
    "validate_document",
]
