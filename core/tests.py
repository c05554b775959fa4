from unittest import mock

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError
from django.test import TestCase, override_settings

from core.exceptions import InsufficientStock, NotFound, ValidationError
from core.models import NumberSeries
from core.services.numbering import get_series, next_document_number
from masterdata.models import Category, Location, Product, Warehouse


class NumberSeriesTest(TestCase):
    def test_allocate_is_sequential_and_zero_padded(self):
        self.assertEqual(next_document_number("receipt"), "RCP-000001")
        self.assertEqual(next_document_number("receipt"), "RCP-000002")
        self.assertEqual(NumberSeries.objects.get(code="receipt").next_number, 3)

    def test_each_kind_has_its_own_counter(self):
        self.assertEqual(next_document_number("receipt"), "RCP-000001")
        self.assertEqual(next_document_number("delivery"), "DEL-000001")
        self.assertEqual(next_document_number("transfer"), "TRF-000001")
        self.assertEqual(next_document_number("adjustment"), "ADJ-000001")
        self.assertEqual(next_document_number("delivery"), "DEL-000002")

    def test_series_is_created_lazily_with_prefix(self):
        self.assertFalse(NumberSeries.objects.filter(code="delivery").exists())
        series = get_series("delivery")
        self.assertEqual(series.prefix, "DEL-")
        self.assertEqual(series.min_width, 6)
        self.assertEqual(get_series("delivery").pk, series.pk)

    @override_settings(INVENTORY_NUMBER_WIDTH=4)
    def test_width_comes_from_settings(self):
        self.assertEqual(next_document_number("adjustment"), "ADJ-0001")

    def test_existing_counter_continues(self):
        NumberSeries.objects.create(code="receipt", prefix="RCP-", next_number=42)
        self.assertEqual(next_document_number("receipt"), "RCP-000042")

    def test_fallback_number_when_allocation_fails(self):
        with mock.patch.object(NumberSeries, "allocate", side_effect=DatabaseError("locked")):
            with self.assertLogs("core.services.numbering", level="WARNING") as logs:
                number = next_document_number("transfer")

        prefix, _, millis = number.partition("-")
        self.assertEqual(prefix, "TRF")
        self.assertTrue(millis.isdigit())
        self.assertGreaterEqual(len(millis), 13)
        self.assertIn("fallback", logs.output[0])


class ErrorTaxonomyTest(TestCase):
    def test_as_dict(self):
        exc = NotFound("Receipt 9 not found.")
        self.assertEqual(exc.as_dict(), {"error": "not_found", "message": "Receipt 9 not found."})

    def test_validation_error_from_django_keeps_field_messages(self):
        category = Category.objects.create(name="Tools")
        product = Product(name="", sku="X-1", category=category)
        with self.assertRaises(DjangoValidationError) as ctx:
            product.full_clean()
        exc = ValidationError.from_django(ctx.exception)
        self.assertIn("name", exc.details)
        self.assertEqual(exc.code, "validation_error")

    def test_insufficient_stock_details(self):
        category = Category.objects.create(name="Tools")
        product = Product.objects.create(name="Hammer", sku="ham-1", category=category)
        warehouse = Warehouse.objects.create(name="Main", code="MAIN")
        location = Location.objects.create(name="Stock", warehouse=warehouse)

        exc = InsufficientStock("short", product=product, warehouse=warehouse, location=location,
                                available=5, requested=8)
        self.assertEqual(exc.details["sku"], "HAM-1")
        self.assertEqual(exc.details["location"], location.pk)
        self.assertEqual(exc.details["available"], "5")
        self.assertEqual(exc.details["requested"], "8")
