from django.core.exceptions import ValidationError
from django.db import IntegrityError
from django.test import TestCase

from masterdata.models import Category, Location, Product, Warehouse


class ProductTest(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.category = Category.objects.create(name="Gadgets")

    def test_sku_is_stripped_and_upper_cased(self):
        product = Product.objects.create(name="Widget", sku="  wid-9 ", category=self.category)
        self.assertEqual(Product.objects.get(pk=product.pk).sku, "WID-9")

    def test_sku_is_unique_case_insensitively(self):
        Product.objects.create(name="Widget", sku="abc", category=self.category)
        with self.assertRaises(IntegrityError):
            Product.objects.create(name="Other", sku="ABC ", category=self.category)

    def test_negative_quantities_are_rejected(self):
        product = Product(name="Widget", sku="W-1", category=self.category, reorder_level=-1)
        with self.assertRaises(ValidationError) as ctx:
            product.full_clean()
        self.assertIn("reorder_level", ctx.exception.message_dict)

    def test_deactivate_is_a_soft_delete(self):
        product = Product.objects.create(name="Widget", sku="W-1", category=self.category)
        product.deactivate()
        self.assertTrue(Product.objects.filter(pk=product.pk).exists())
        self.assertFalse(Product.objects.active().filter(pk=product.pk).exists())

    def test_defaults(self):
        product = Product.objects.create(name="Widget", sku="W-1", category=self.category)
        self.assertEqual(product.unit_of_measure, Product.Unit.PCS)
        self.assertEqual(product.initial_stock, 0)
        self.assertTrue(product.is_active)


class LocationTest(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.main = Warehouse.objects.create(name="Main", code=" main")
        cls.annex = Warehouse.objects.create(name="Annex", code="anx")

    def test_warehouse_code_is_upper_cased(self):
        self.assertEqual(Warehouse.objects.get(pk=self.main.pk).code, "MAIN")

    def test_name_is_unique_per_warehouse(self):
        Location.objects.create(name="Stock", warehouse=self.main)
        Location.objects.create(name="Stock", warehouse=self.annex)
        with self.assertRaises(IntegrityError):
            Location.objects.create(name="Stock", warehouse=self.main)

    def test_parent_must_share_warehouse(self):
        parent = Location.objects.create(name="Stock", warehouse=self.main)
        child = Location(name="Shelf", warehouse=self.annex, parent=parent)
        with self.assertRaises(ValidationError) as ctx:
            child.full_clean()
        self.assertIn("parent", ctx.exception.message_dict)

    def test_tree(self):
        stock = Location.objects.create(name="Stock", warehouse=self.main)
        Location.objects.create(name="Shelf B", warehouse=self.main, parent=stock)
        Location.objects.create(name="Shelf A", warehouse=self.main, parent=stock)

        stock = Location.objects.get(pk=stock.pk)
        self.assertEqual([loc.name for loc in stock.get_children()], ["Shelf A", "Shelf B"])
        self.assertEqual(Location.objects.active().filter(warehouse=self.main).count(), 3)

    def test_deactivate(self):
        stock = Location.objects.create(name="Stock", warehouse=self.main)
        stock.deactivate()
        self.assertFalse(Location.objects.active().filter(pk=stock.pk).exists())
