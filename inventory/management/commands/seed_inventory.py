from __future__ import annotations

import random
from decimal import Decimal, ROUND_HALF_UP

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from documents.services import api
from masterdata.models import Category, Location, Product, Warehouse


def money(x: float) -> Decimal:
    return Decimal(str(x)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


PRODUCTS = [
    ("Wireless Headphones", "pcs"),
    ("High-Capacity Power Bank", "pcs"),
    ("USB-C Docking Station", "pcs"),
    ("Mechanical Keyboard", "pcs"),
    ("Smart Wi-Fi Light Bulb", "box"),
    ("Cable Organizer Box", "box"),
    ("Thermal Paste", "kg"),
    ("Screen Cleaning Fluid", "liter"),
    ("Cat6 Network Cable", "meter"),
    ("Dash Camera", "pcs"),
]

# (name, type, parent name)
LOCATIONS = [
    ("Stock", Location.Type.STORAGE, None),
    ("Shelf A", Location.Type.STORAGE, "Stock"),
    ("Shelf B", Location.Type.STORAGE, "Stock"),
    ("Receiving", Location.Type.TRANSIT, None),
    ("Vendors", Location.Type.VENDOR, None),
    ("Customers", Location.Type.CUSTOMER, None),
]


class Command(BaseCommand):
    help = "Seed a demo category, products, a warehouse with locations and (optionally) opening stock."

    def add_arguments(self, parser):
        parser.add_argument("--seed", type=int, default=42)
        parser.add_argument("--sku-prefix", type=str, default="DEMO")
        parser.add_argument("--warehouse", type=str, default="MAIN", help="Warehouse code")
        parser.add_argument("--with-stock", action="store_true",
                            help="Receive opening stock into Shelf A through a validated receipt")
        parser.add_argument("--user", type=str, default=None,
                            help="Username that creates and validates the opening receipt")

    def handle(self, *args, **options):
        rng = random.Random(options["seed"])
        sku_prefix = (options["sku_prefix"] or "DEMO").upper().strip()
        code = (options["warehouse"] or "MAIN").upper().strip()

        with transaction.atomic():
            category, _ = Category.objects.get_or_create(
                name="Demo gadgets", defaults={"description": "Created by seed_inventory"}
            )
            warehouse, _ = Warehouse.objects.get_or_create(
                code=code, defaults={"name": f"{code.title()} warehouse"}
            )

            locations = {}
            for name, loc_type, parent in LOCATIONS:
                locations[name], _ = Location.objects.get_or_create(
                    warehouse=warehouse, name=name,
                    defaults={"type": loc_type, "parent": locations.get(parent)},
                )

            products = []
            created = 0
            for i, (name, unit) in enumerate(PRODUCTS):
                price = money(rng.uniform(10, 400))
                product, was_created = Product.objects.get_or_create(
                    sku=f"{sku_prefix}-{i + 1:04d}",
                    defaults={
                        "name": name,
                        "category": category,
                        "unit_of_measure": unit,
                        "price": price,
                        "cost": money(float(price) * rng.uniform(0.5, 0.75)),
                        "reorder_level": Decimal(rng.choice([5, 10, 20])),
                        "reorder_quantity": Decimal(rng.choice([25, 50, 100])),
                    },
                )
                products.append(product)
                created += int(was_created)

        self.stdout.write(self.style.SUCCESS(
            f"Warehouse {warehouse.code}: {len(locations)} locations, "
            f"{created} new product(s), {len(products) - created} existing."
        ))

        if options["with_stock"]:
            self._receive_opening_stock(options["user"], rng, warehouse, locations["Shelf A"], products)

    def _receive_opening_stock(self, username, rng, warehouse, location, products):
        User = get_user_model()
        user = (User.objects.filter(username=username).first() if username
                else User.objects.filter(is_superuser=True).order_by("pk").first())
        if user is None:
            raise CommandError("No user found to book opening stock; pass --user.")

        lines = []
        for product in products:
            qty = Decimal(rng.randint(0, 60))
            lines.append({"product": product.pk, "quantity_ordered": qty, "quantity_received": qty})

        receipt = api.create_document(
            "receipt",
            {"supplier_name": "Opening balance", "warehouse": warehouse, "location": location},
            lines,
            user,
        )
        api.validate_document("receipt", receipt.pk, user)
        self.stdout.write(self.style.SUCCESS(f"Opening stock booked with {receipt.number}."))
