from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.management import CommandError, call_command
from django.db import transaction
from django.db.models.deletion import ProtectedError
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from core.exceptions import InsufficientStock, NotFound, ValidationError
from core.testing import DocumentHelpers, build_fixtures
from documents.services import api
from inventory import signals
from inventory.models import LedgerImmutableError, StockLedgerEntry, StockQuant
from inventory.services.ledger import last_running_balance, lock_quants
from masterdata.models import Location, Product, Warehouse


class InventoryTestCase(DocumentHelpers, TestCase):
    @classmethod
    def setUpTestData(cls):
        build_fixtures(cls)


class LedgerEntryTest(InventoryTestCase):
    def test_entries_are_immutable(self):
        self.receive(5)
        entry = StockLedgerEntry.objects.get()

        entry.note = "edited"
        with self.assertRaises(LedgerImmutableError):
            entry.save()
        with self.assertRaises(LedgerImmutableError):
            entry.delete()
        with self.assertRaises(LedgerImmutableError):
            StockLedgerEntry.objects.filter(pk=entry.pk).update(quantity=1)
        with self.assertRaises(LedgerImmutableError):
            StockLedgerEntry.objects.all().delete()

    def test_entry_links_back_to_document(self):
        receipt = self.receive(5)
        entry = StockLedgerEntry.objects.get()
        self.assertEqual(entry.reference_doc, receipt.number)
        self.assertEqual(entry.document, receipt)
        self.assertEqual(entry.performed_by, self.user)
        self.assertEqual(entry.note, "Receipt from ACME")

    def test_products_with_history_cannot_be_deleted(self):
        self.receive(5)
        with self.assertRaises(ProtectedError):
            self.product.delete()

    def test_running_balance_is_cumulative_per_triple(self):
        self.receive(10)
        self.receive(5, location=self.shelf)
        self.receive(7)
        api.validate_document("delivery", self.deliver([(self.product, 4)]).pk, self.user)
        api.validate_document("transfer", self.transfer(3).pk, self.user)
        api.validate_document("adjustment", self.adjust(counted=11).pk, self.user)

        triples = StockLedgerEntry.objects.values_list(
            "product_id", "warehouse_id", "location_id").distinct()
        for product_id, warehouse_id, location_id in triples:
            total = Decimal("0")
            entries = StockLedgerEntry.objects.filter(
                product_id=product_id, warehouse_id=warehouse_id, location_id=location_id
            ).chronological()
            for entry in entries:
                total += entry.quantity
                self.assertEqual(entry.running_balance, total)
            quant = StockQuant.objects.get(
                product_id=product_id, warehouse_id=warehouse_id, location_id=location_id)
            self.assertEqual(quant.quantity, total)

        # stock: 10 + 7 - 4 - 3 = 10, counted 11 -> +1
        self.assertEqual(last_running_balance(self.product, self.warehouse, self.stock), Decimal("11"))
        self.assertEqual(last_running_balance(self.product, self.warehouse, self.shelf), Decimal("8"))


class QuantLockTest(InventoryTestCase):
    def triples(self):
        return [
            (self.product_b.pk, self.warehouse.pk, self.stock.pk),
            (self.product.pk, self.annex.pk, self.annex_stock.pk),
            (self.product.pk, self.warehouse.pk, self.shelf.pk),
            (self.product.pk, self.warehouse.pk, self.stock.pk),
            (self.product_b.pk, self.warehouse.pk, self.stock.pk),
        ]

    def test_locks_are_taken_in_sorted_order(self):
        triples = self.triples()
        manager = StockQuant.objects
        with mock.patch.object(manager, "select_for_update", wraps=manager.select_for_update) as locking:
            with transaction.atomic():
                quants = lock_quants(reversed(triples))

        expected = sorted(set(triples))
        self.assertEqual(locking.call_count, len(expected))
        self.assertEqual(list(quants), expected)
        self.assertEqual([quant.triple for quant in quants.values()], expected)

    def test_missing_quants_start_from_the_ledger(self):
        self.receive(6, location=self.shelf)
        StockQuant.objects.all().delete()

        with transaction.atomic():
            quants = lock_quants([(self.product.pk, self.warehouse.pk, self.shelf.pk)])
        self.assertEqual(quants[(self.product.pk, self.warehouse.pk, self.shelf.pk)].quantity, Decimal("6"))


class ProjectionTest(InventoryTestCase):
    def test_initial_stock_is_used_until_first_entry(self):
        self.assertEqual(api.get_stock_level(self.product), Decimal("25"))
        self.assertEqual(api.get_stock_level(self.product, self.warehouse), 0)
        self.assertEqual(api.get_stock_level(self.product, self.warehouse, self.stock), 0)

        self.receive(10)
        self.assertEqual(api.get_stock_level(self.product), Decimal("10"))

    def test_scoped_levels(self):
        self.receive(10)
        self.receive(4, location=self.shelf)
        self.receive(6, location=self.annex_stock)

        self.assertEqual(api.get_stock_level(self.product.pk), Decimal("20"))
        self.assertEqual(api.get_stock_level(self.product, self.warehouse), Decimal("14"))
        self.assertEqual(api.get_stock_level(self.product, self.warehouse, self.shelf), Decimal("4"))
        self.assertEqual(api.get_stock_level(self.product, location=self.annex_stock), Decimal("6"))

    def test_projection_is_idempotent(self):
        self.receive(10)
        first = api.get_stock_level(self.product, self.warehouse, self.stock)
        second = api.get_stock_level(self.product, self.warehouse, self.stock)
        self.assertEqual(first, second)

    def test_unknown_product(self):
        with self.assertRaises(NotFound):
            api.get_stock_level(999999)

    def test_stock_by_location(self):
        self.receive(10)
        self.receive(4, location=self.shelf)
        rows = {row["location"]: row["quantity"] for row in api.stock_by_location(self.product)}
        self.assertEqual(rows, {self.stock.pk: Decimal("10"), self.shelf.pk: Decimal("4")})

    def test_catalog_levels(self):
        self.receive(3, product=self.product_b)
        levels = api.catalog_levels()
        self.assertEqual(levels[self.product.pk], Decimal("25"))
        self.assertEqual(levels[self.product_b.pk], Decimal("3"))

    def test_low_and_out_of_stock(self):
        # product: 25 on hand (baseline), reorder at 10. product_b: nothing, reorder at 0.
        low = [p for p, _ in api.low_stock_products()]
        out = [p for p, _ in api.out_of_stock_products()]
        self.assertEqual(low, [self.product_b])
        self.assertEqual(out, [self.product_b])

        self.receive(8)
        low = dict(api.low_stock_products())
        self.assertEqual(low[self.product], Decimal("8"))
        self.assertNotIn(self.product, dict(api.out_of_stock_products()))

    def test_inactive_products_are_not_reported(self):
        self.product_b.deactivate()
        self.assertEqual(api.low_stock_products(), [])


class LedgerHistoryTest(InventoryTestCase):
    def setUp(self):
        self.receive(10)
        self.receive(5, product=self.product_b)
        api.validate_document("transfer", self.transfer(2).pk, self.user)

    def test_newest_first(self):
        entries = api.list_ledger_history()
        self.assertEqual(len(entries), 4)
        keys = [(e.created_at, e.pk) for e in entries]
        self.assertEqual(keys, sorted(keys, reverse=True))

    def test_filters(self):
        self.assertEqual(len(api.list_ledger_history({"product": self.product_b.pk})), 1)
        self.assertEqual(len(api.list_ledger_history({"product": self.product})), 3)
        self.assertEqual(len(api.list_ledger_history({"location": self.shelf.pk})), 1)
        self.assertEqual(len(api.list_ledger_history({"warehouse": self.warehouse.pk})), 4)

        transfers_out = api.list_ledger_history({"transaction_type": "transfer_out"})
        self.assertEqual([e.quantity for e in transfers_out], [Decimal("-2")])

    def test_date_range(self):
        now = timezone.now()
        self.assertEqual(len(api.list_ledger_history({"created_after": now + timedelta(hours=1)})), 0)
        self.assertEqual(len(api.list_ledger_history({"created_before": now + timedelta(hours=1)})), 4)
        self.assertEqual(len(api.list_ledger_history({"created_after": (now - timedelta(hours=1)).isoformat()})), 4)

    def test_limit(self):
        self.assertEqual(len(api.list_ledger_history(limit=2)), 2)
        with self.settings(INVENTORY_LEDGER_HISTORY_LIMIT=3):
            self.assertEqual(len(api.list_ledger_history()), 3)

    def test_negative_limit(self):
        with self.assertRaises(ValidationError) as ctx:
            api.list_ledger_history(limit=-1)
        self.assertIn("limit", ctx.exception.details)

    def test_invalid_filter(self):
        with self.assertRaises(ValidationError) as ctx:
            api.list_ledger_history({"transaction_type": "teleport"})
        self.assertIn("transaction_type", ctx.exception.details)


class SignalTest(InventoryTestCase):
    def listen(self, signal):
        calls = []

        def receiver(sender, **kwargs):
            calls.append(kwargs)

        signal.connect(receiver, weak=False)
        self.addCleanup(signal.disconnect, receiver)
        return calls

    def test_events_are_sent_after_commit(self):
        created = self.listen(signals.document_created)
        validated = self.listen(signals.document_validated)
        updated = self.listen(signals.stock_updated)

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            receipt = self.receive(10)
            self.assertEqual(created, [])
            self.assertEqual(validated, [])

        self.assertEqual(len(callbacks), 3)
        self.assertEqual(created[0]["document"], receipt)
        self.assertEqual(validated[0]["document"], receipt)
        self.assertEqual(len(validated[0]["entries"]), 1)
        self.assertEqual(updated[0]["product_ids"], [self.product.pk])

    def test_no_stock_event_without_entries(self):
        updated = self.listen(signals.stock_updated)
        with self.captureOnCommitCallbacks(execute=True):
            self.receive(0)
        self.assertEqual(updated, [])

    def test_failed_validation_sends_nothing(self):
        validated = self.listen(signals.document_validated)
        delivery = self.deliver([(self.product, 5)])
        with self.captureOnCommitCallbacks(execute=True):
            with self.assertRaises(InsufficientStock):
                api.validate_document("delivery", delivery.pk, self.user)
        self.assertEqual(validated, [])

    def test_failing_receiver_is_isolated(self):
        def broken(sender, **kwargs):
            raise RuntimeError("dashboard offline")

        signals.document_created.connect(broken, weak=False)
        self.addCleanup(signals.document_created.disconnect, broken)

        with self.assertLogs("inventory.signals", level="ERROR") as logs:
            with self.captureOnCommitCallbacks(execute=True):
                receipt = self.receive(1, validate=False)

        self.assertTrue(receipt.pk)
        self.assertIn("failed", logs.output[0])


class CheckLedgerCommandTest(InventoryTestCase):
    def test_consistent_ledger(self):
        self.receive(10)
        api.validate_document("transfer", self.transfer(4).pk, self.user)
        out = StringIO()
        call_command("check_ledger", stdout=out)
        self.assertIn("Ledger consistent: 2", out.getvalue())

    def test_reports_quant_mismatch(self):
        self.receive(10)
        StockQuant.objects.filter(product=self.product).update(quantity=Decimal("3"))
        err = StringIO()
        with self.assertRaises(CommandError):
            call_command("check_ledger", stdout=StringIO(), stderr=err)
        self.assertIn("ledger says 10", err.getvalue())


class SeedInventoryCommandTest(TestCase):
    def test_seed_is_repeatable(self):
        call_command("seed_inventory", stdout=StringIO())
        call_command("seed_inventory", stdout=StringIO())

        warehouse = Warehouse.objects.get(code="MAIN")
        self.assertEqual(Location.objects.filter(warehouse=warehouse).count(), 6)
        self.assertEqual(Product.objects.filter(sku__startswith="DEMO-").count(), 10)

    def test_seed_with_opening_stock(self):
        get_user_model().objects.create_superuser("admin", "admin@example.com", "secret")

        call_command("seed_inventory", "--with-stock", stdout=StringIO())
        self.assertTrue(StockLedgerEntry.objects.exists())
        call_command("check_ledger", stdout=StringIO())


class StockApiTest(InventoryTestCase):
    def setUp(self):
        self.client.force_login(self.user)

    def test_login_required(self):
        self.client.logout()
        response = self.client.get(reverse("api-stock-level", args=[self.product.pk]))
        self.assertEqual(response.status_code, 302)

    def test_stock_level(self):
        self.receive(10)
        self.receive(4, location=self.shelf)

        data = self.client.get(reverse("api-stock-level", args=[self.product.pk])).json()
        self.assertEqual(Decimal(data["quantity"]), Decimal("14"))
        self.assertEqual(len(data["locations"]), 2)

        url = reverse("api-stock-level", args=[self.product.pk])
        data = self.client.get(url, {"warehouse": self.warehouse.pk, "location": self.shelf.pk}).json()
        self.assertEqual(Decimal(data["quantity"]), Decimal("4"))
        self.assertNotIn("locations", data)

    def test_unknown_product_is_404(self):
        response = self.client.get(reverse("api-stock-level", args=[999999]))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"], "not_found")

    def test_bad_scope_is_400(self):
        response = self.client.get(reverse("api-stock-level", args=[self.product.pk]), {"warehouse": "x"})
        self.assertEqual(response.status_code, 400)

    def test_low_stock(self):
        data = self.client.get(reverse("api-low-stock")).json()
        self.assertEqual([row["sku"] for row in data["low_stock"]], ["GIZ-1"])
        self.assertEqual([row["sku"] for row in data["out_of_stock"]], ["GIZ-1"])

    def test_ledger_history(self):
        self.receive(10)
        self.receive(2, product=self.product_b)

        data = self.client.get(reverse("api-ledger-history"), {"product": self.product_b.pk}).json()
        self.assertEqual(len(data["results"]), 1)
        self.assertEqual(data["results"][0]["sku"], "GIZ-1")
        self.assertEqual(Decimal(data["results"][0]["running_balance"]), Decimal("2"))

        data = self.client.get(reverse("api-ledger-history"), {"limit": 1}).json()
        self.assertEqual(len(data["results"]), 1)

    def test_ledger_history_bad_filter(self):
        response = self.client.get(reverse("api-ledger-history"), {"transaction_type": "teleport"})
        self.assertEqual(response.status_code, 400)

        response = self.client.get(reverse("api-ledger-history"), {"limit": -1})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "validation_error")
