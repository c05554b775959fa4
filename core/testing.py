"""Shared fixtures for the app test suites."""

from decimal import Decimal

from django.contrib.auth import get_user_model

from documents.services import api
from masterdata.models import Category, Location, Product, Warehouse


def build_fixtures(target):
    """Create a small catalogue and two warehouses and attach them to ``target``.

    Works for setUpTestData (class) and setUp (instance), so TransactionTestCase
    suites can share it.
    """
    User = get_user_model()
    target.user = User.objects.create_user("operator", password="secret")
    target.other_user = User.objects.create_user("supervisor", password="secret")

    target.category = Category.objects.create(name="Gadgets")
    target.product = Product.objects.create(
        name="Widget", sku=" wid-1 ", category=target.category,
        reorder_level=Decimal("10"), initial_stock=Decimal("25"),
    )
    target.product_b = Product.objects.create(name="Gizmo", sku="GIZ-1", category=target.category)

    target.warehouse = Warehouse.objects.create(name="Main", code="main")
    target.stock = Location.objects.create(name="Stock", warehouse=target.warehouse)
    target.shelf = Location.objects.create(name="Shelf A", warehouse=target.warehouse, parent=target.stock)

    target.annex = Warehouse.objects.create(name="Annex", code="ANX")
    target.annex_stock = Location.objects.create(name="Stock", warehouse=target.annex)


class DocumentHelpers:
    """Shortcuts for building documents through the service API."""

    def receive(self, qty, product=None, location=None, validate=True):
        location = location or self.stock
        qty = Decimal(qty)
        doc = api.create_document(
            "receipt",
            {"supplier_name": "ACME", "warehouse": location.warehouse, "location": location},
            [{"product": (product or self.product).pk, "quantity_ordered": qty, "quantity_received": qty}],
            self.user,
        )
        if validate:
            doc = api.validate_document("receipt", doc.pk, self.user)
        return doc

    def deliver(self, lines, location=None):
        """``lines``: [(product, delivered_qty)]. Returns the unvalidated delivery."""
        location = location or self.stock
        return api.create_document(
            "delivery",
            {"customer_name": "Jane Doe", "warehouse": location.warehouse, "location": location},
            [
                {"product": product.pk, "quantity_ordered": Decimal(qty), "quantity_delivered": Decimal(qty)}
                for product, qty in lines
            ],
            self.user,
        )

    def transfer(self, qty, source=None, destination=None, product=None):
        source = source or self.stock
        destination = destination or self.shelf
        return api.create_document(
            "transfer",
            {
                "source_warehouse": source.warehouse, "source_location": source,
                "destination_warehouse": destination.warehouse, "destination_location": destination,
            },
            [{"product": (product or self.product).pk, "quantity": Decimal(qty)}],
            self.user,
        )

    def adjust(self, counted, recorded=None, product=None, location=None):
        location = location or self.stock
        line = {"product": (product or self.product).pk, "counted_quantity": Decimal(counted)}
        if recorded is not None:
            line["recorded_quantity"] = Decimal(recorded)
        return api.create_document(
            "adjustment",
            {"warehouse": location.warehouse, "location": location},
            [line],
            self.user,
        )
