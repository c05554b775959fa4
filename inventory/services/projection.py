"""Read side: current stock derived from the ledger.

Nothing here writes. Quantities are sums of ledger deltas, so two reads with no
write in between always agree.
"""

from decimal import Decimal

from django.db.models import Sum

from core.exceptions import NotFound
from inventory.models import StockLedgerEntry, ZERO
from masterdata.models import Product


def _get_product(product):
    if isinstance(product, Product):
        return product
    try:
        return Product.objects.get(pk=product)
    except (Product.DoesNotExist, ValueError, TypeError):
        raise NotFound(f"Product {product} not found.")


def get_stock_level(product, warehouse=None, location=None) -> Decimal:
    """Quantity on hand for a product, optionally narrowed to a warehouse/location.

    A product with no ledger history at all reports its ``initial_stock`` as
    the total. The first ledger entry supersedes that baseline for good.
    Scoped queries are ledger-only: the baseline has no location.
    """
    product = _get_product(product)
    qs = StockLedgerEntry.objects.filter(product=product)

    if warehouse is None and location is None:
        if not qs.exists():
            return product.initial_stock
    if warehouse is not None:
        qs = qs.filter(warehouse=warehouse)
    if location is not None:
        qs = qs.filter(location=location)

    return qs.aggregate(total=Sum("quantity"))["total"] or ZERO


def stock_by_location(product) -> list:
    """Per (warehouse, location) breakdown for one product."""
    product = _get_product(product)
    rows = (
        StockLedgerEntry.objects
        .filter(product=product)
        .values("warehouse_id", "warehouse__code", "location_id", "location__name")
        .annotate(quantity=Sum("quantity"))
        .order_by("warehouse__code", "location__name")
    )
    return [
        {
            "warehouse": r["warehouse_id"],
            "warehouse_code": r["warehouse__code"],
            "location": r["location_id"],
            "location_name": r["location__name"],
            "quantity": r["quantity"],
        }
        for r in rows
    ]


def catalog_levels(products=None) -> dict:
    """Totals for many products in one grouped query: {product_id: quantity}."""
    if products is None:
        products = Product.objects.active()
    products = list(products)

    sums = dict(
        StockLedgerEntry.objects
        .filter(product__in=products)
        .values("product_id")
        .annotate(total=Sum("quantity"))
        .order_by()
        .values_list("product_id", "total")
    )
    return {p.pk: sums[p.pk] if p.pk in sums else p.initial_stock for p in products}


def low_stock_products(products=None) -> list:
    """[(product, quantity)] for products at or below their reorder level."""
    if products is None:
        products = Product.objects.active().select_related("category")
    products = list(products)
    levels = catalog_levels(products)
    return [(p, levels[p.pk]) for p in products if levels[p.pk] <= p.reorder_level]


def out_of_stock_products(products=None) -> list:
    """[(product, quantity)] for products with nothing on hand."""
    if products is None:
        products = Product.objects.active().select_related("category")
    products = list(products)
    levels = catalog_levels(products)
    return [(p, levels[p.pk]) for p in products if levels[p.pk] <= 0]
