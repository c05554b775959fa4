import json
import threading
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.db import connection
from django.test import TestCase, TransactionTestCase, skipUnlessDBFeature
from django.urls import reverse
from django_fsm_log.models import StateLog

from core.exceptions import (
    AlreadyValidated,
    InsufficientStock,
    InvalidStateTransition,
    NotFound,
    ValidationError,
)
from core.testing import DocumentHelpers, build_fixtures
from documents.models import Delivery, InternalTransfer, Receipt, StockAdjustment
from documents.services import api
from documents.services.common import get_document
from inventory.models import StockLedgerEntry, StockQuant


class DocumentTestCase(DocumentHelpers, TestCase):
    @classmethod
    def setUpTestData(cls):
        build_fixtures(cls)

    def level(self, location=None, product=None):
        location = location or self.stock
        return api.get_stock_level(product or self.product, location.warehouse, location)

    def entries_for(self, doc):
        return StockLedgerEntry.objects.filter(reference_doc=doc.number)


class CreateDocumentTest(DocumentTestCase):
    def test_create_receipt(self):
        receipt = self.receive(5, validate=False)

        self.assertEqual(receipt.number, "RCP-000001")
        self.assertEqual(receipt.state, Receipt.State.DRAFT)
        self.assertEqual(receipt.created_by, self.user)
        self.assertEqual([line.line_no for line in receipt.get_lines()], [1])
        self.assertFalse(StockLedgerEntry.objects.exists())

    def test_numbers_follow_each_other(self):
        self.receive(1, validate=False)
        self.assertEqual(self.receive(1, validate=False).number, "RCP-000002")
        self.assertEqual(self.deliver([(self.product, 1)]).number, "DEL-000001")
        self.assertEqual(self.transfer(1).number, "TRF-000001")
        self.assertEqual(self.adjust(1).number, "ADJ-000001")

    def test_lines_are_required(self):
        with self.assertRaises(ValidationError) as ctx:
            api.create_document(
                "receipt", {"supplier_name": "ACME", "warehouse": self.warehouse, "location": self.stock},
                [], self.user,
            )
        self.assertIn("lines", ctx.exception.details)

    def test_line_errors_are_reported_per_field(self):
        self.product_b.deactivate()
        with self.assertRaises(ValidationError) as ctx:
            api.create_document(
                "receipt",
                {"supplier_name": "ACME", "warehouse": self.warehouse.pk, "location": self.stock.pk},
                [
                    {"product": self.product.pk, "quantity_received": -1},
                    {"product": self.product_b.pk, "quantity_received": 1},
                    {"product": 999999},
                    {"product": self.product.pk, "colour": "red"},
                ],
                self.user,
            )
        details = ctx.exception.details
        self.assertIn("lines.0.quantity_received", details)
        self.assertIn("lines.1.product", details)
        self.assertIn("lines.2.product", details)
        self.assertIn("lines.3.colour", details)
        self.assertFalse(Receipt.objects.exists())

    def test_header_errors(self):
        with self.assertRaises(ValidationError) as ctx:
            api.create_document(
                "receipt",
                {"warehouse": self.warehouse, "location": self.stock, "state": "done"},
                [{"product": self.product.pk, "quantity_received": 1}],
                self.user,
            )
        self.assertIn("supplier_name", ctx.exception.details)
        self.assertIn("state", ctx.exception.details)

    def test_location_must_belong_to_warehouse(self):
        with self.assertRaises(ValidationError) as ctx:
            api.create_document(
                "receipt",
                {"supplier_name": "ACME", "warehouse": self.warehouse, "location": self.annex_stock},
                [{"product": self.product.pk, "quantity_received": 1}],
                self.user,
            )
        self.assertIn("location", ctx.exception.details)

    def test_unknown_kind(self):
        with self.assertRaises(ValidationError) as ctx:
            api.create_document("invoice", {}, [{"product": self.product.pk}], self.user)
        self.assertIn("kind", ctx.exception.details)

    def test_creator_is_required(self):
        with self.assertRaises(ValidationError):
            api.create_document(
                "receipt", {"supplier_name": "ACME", "warehouse": self.warehouse, "location": self.stock},
                [{"product": self.product.pk}], None,
            )

    def test_transfer_needs_two_different_locations(self):
        with self.assertRaises(ValidationError) as ctx:
            self.transfer(1, source=self.stock, destination=self.stock)
        self.assertIn("destination_location", ctx.exception.details)

    def test_adjustment_records_current_balance_by_default(self):
        self.receive(100)
        adjustment = self.adjust(counted=80)
        line = adjustment.get_lines()[0]
        self.assertEqual(line.recorded_quantity, Decimal("100"))
        self.assertEqual(line.difference, Decimal("-20"))

        explicit = self.adjust(counted=80, recorded=90).get_lines()[0]
        self.assertEqual(explicit.recorded_quantity, Decimal("90"))
        self.assertEqual(explicit.difference, Decimal("-10"))

    def test_adjustment_with_malformed_warehouse(self):
        with self.assertRaises(ValidationError) as ctx:
            api.create_document(
                "adjustment",
                {"warehouse": "abc", "location": self.stock.pk},
                [{"product": self.product.pk, "counted_quantity": 1}],
                self.user,
            )
        self.assertIn("warehouse", ctx.exception.details)
        self.assertFalse(StockAdjustment.objects.exists())


class UpdateDocumentTest(DocumentTestCase):
    def test_patch_header_and_replace_lines(self):
        receipt = self.receive(5, validate=False)
        api.update_document("receipt", receipt.pk, {
            "supplier_name": "Globex",
            "lines": [
                {"product": self.product_b.pk, "quantity_ordered": 2, "quantity_received": 2},
                {"product": self.product.pk, "quantity_ordered": 3, "quantity_received": 3},
            ],
        })

        receipt = Receipt.objects.get(pk=receipt.pk)
        self.assertEqual(receipt.supplier_name, "Globex")
        lines = receipt.get_lines()
        self.assertEqual([(line.line_no, line.product_id) for line in lines],
                         [(1, self.product_b.pk), (2, self.product.pk)])
        self.assertFalse(StockLedgerEntry.objects.exists())

    def test_invalid_patch_changes_nothing(self):
        receipt = self.receive(5, validate=False)
        with self.assertRaises(ValidationError):
            api.update_document("receipt", receipt.pk, {"supplier_name": "Globex", "location": self.annex_stock})
        self.assertEqual(Receipt.objects.get(pk=receipt.pk).supplier_name, "ACME")

    def test_missing_document(self):
        with self.assertRaises(NotFound):
            api.update_document("receipt", 999999, {"notes": "x"})

    def test_closed_documents_cannot_change(self):
        receipt = self.receive(5)
        with self.assertRaises(InvalidStateTransition):
            api.update_document("receipt", receipt.pk, {"notes": "too late"})

        delivery = self.deliver([(self.product, 1)])
        api.cancel_document("delivery", delivery.pk, self.user)
        with self.assertRaises(InvalidStateTransition):
            api.update_document("delivery", delivery.pk, {"notes": "too late"})

    def test_lines_are_frozen_after_draft(self):
        delivery = self.deliver([(self.product, 1)])
        api.pick_delivery(delivery.pk, user=self.user)

        api.update_document("delivery", delivery.pk, {"notes": "Leave at the door"})
        self.assertEqual(Delivery.objects.get(pk=delivery.pk).notes, "Leave at the door")

        with self.assertRaises(InvalidStateTransition):
            api.update_document("delivery", delivery.pk, {
                "lines": [{"product": self.product.pk, "quantity_ordered": 9}],
            })


class CancelDocumentTest(DocumentTestCase):
    def test_cancel_draft(self):
        receipt = self.receive(5, validate=False)
        cancelled = api.cancel_document("receipt", receipt.pk, self.user)
        self.assertEqual(cancelled.state, Receipt.State.CANCELLED)
        self.assertIsNotNone(cancelled.cancelled_at)

    def test_cancel_after_done_is_rejected(self):
        receipt = self.receive(5)
        with self.assertRaises(InvalidStateTransition):
            api.cancel_document("receipt", receipt.pk, self.user)

        receipt = Receipt.objects.get(pk=receipt.pk)
        self.assertEqual(receipt.state, Receipt.State.DONE)
        self.assertIsNone(receipt.cancelled_at)
        self.assertEqual(self.entries_for(receipt).count(), 1)
        self.assertEqual(self.level(), Decimal("5"))

    def test_cancel_twice_is_rejected(self):
        receipt = self.receive(5, validate=False)
        api.cancel_document("receipt", receipt.pk)
        with self.assertRaises(InvalidStateTransition):
            api.cancel_document("receipt", receipt.pk)

    def test_cancel_from_any_open_state(self):
        delivery = self.deliver([(self.product, 2)])
        api.pick_delivery(delivery.pk)
        api.pack_delivery(delivery.pk, {1: 1})
        self.assertEqual(api.cancel_document("delivery", delivery.pk).state, Delivery.State.CANCELLED)

        transfer = self.transfer(1)
        api.mark_transfer_in_transit(transfer.pk)
        self.assertEqual(api.cancel_document("transfer", transfer.pk).state, InternalTransfer.State.CANCELLED)

    def test_missing_document(self):
        with self.assertRaises(NotFound):
            api.cancel_document("adjustment", 999999)

    def test_cancelled_document_cannot_be_validated(self):
        receipt = self.receive(5, validate=False)
        api.cancel_document("receipt", receipt.pk)
        with self.assertRaises(InvalidStateTransition):
            api.validate_document("receipt", receipt.pk, self.user)
        self.assertFalse(StockLedgerEntry.objects.exists())


class ValidateDocumentTest(DocumentTestCase):
    def test_zero_receipt_then_full_receipt(self):
        empty = api.create_document(
            "receipt",
            {"supplier_name": "ACME", "warehouse": self.warehouse, "location": self.stock},
            [{"product": self.product.pk, "quantity_ordered": 100, "quantity_received": 0}],
            self.user,
        )
        empty = api.validate_document("receipt", empty.pk, self.user)
        self.assertEqual(empty.state, Receipt.State.DONE)
        self.assertEqual(self.entries_for(empty).count(), 0)

        full = self.receive(100)
        entry = self.entries_for(full).get()
        self.assertEqual(entry.quantity, Decimal("100"))
        self.assertEqual(entry.running_balance, Decimal("100"))
        self.assertEqual(entry.transaction_type, StockLedgerEntry.TransactionType.RECEIPT)
        self.assertEqual(api.get_stock_level(self.product), Decimal("100"))

    def test_delivery_then_insufficient_delivery(self):
        self.receive(100)

        first = self.deliver([(self.product, 30)])
        api.validate_document("delivery", first.pk, self.user)
        entry = self.entries_for(first).get()
        self.assertEqual(entry.quantity, Decimal("-30"))
        self.assertEqual(entry.running_balance, Decimal("70"))
        self.assertEqual(entry.note, "Delivery to Jane Doe")

        second = self.deliver([(self.product, 200)])
        with self.assertRaises(InsufficientStock) as ctx:
            api.validate_document("delivery", second.pk, self.user)
        self.assertEqual(ctx.exception.details["available"], "70.000")
        self.assertEqual(self.level(), Decimal("70"))
        self.assertEqual(Delivery.objects.get(pk=second.pk).state, Delivery.State.DRAFT)

    def test_validation_is_exactly_once(self):
        receipt = self.receive(5, validate=False)
        api.validate_document("receipt", receipt.pk, self.user)
        with self.assertRaises(AlreadyValidated):
            api.validate_document("receipt", receipt.pk, self.other_user)

        self.assertEqual(self.entries_for(receipt).count(), 1)
        receipt = Receipt.objects.get(pk=receipt.pk)
        self.assertEqual(receipt.validated_by, self.user)
        self.assertIsNotNone(receipt.validated_at)

    def test_insufficient_stock_aborts_whole_document(self):
        self.receive(10)
        self.receive(1, product=self.product_b)
        delivery = self.deliver([(self.product, 5), (self.product_b, 3)])

        with self.assertRaises(InsufficientStock):
            api.validate_document("delivery", delivery.pk, self.user)

        self.assertEqual(self.entries_for(delivery).count(), 0)
        self.assertEqual(self.level(), Decimal("10"))
        self.assertEqual(self.level(product=self.product_b), Decimal("1"))
        quant = StockQuant.objects.get(product=self.product, warehouse=self.warehouse, location=self.stock)
        self.assertEqual(quant.quantity, Decimal("10"))

    def test_duplicate_lines_compound(self):
        self.receive(10)
        short = self.deliver([(self.product, 6), (self.product, 6)])
        with self.assertRaises(InsufficientStock):
            api.validate_document("delivery", short.pk, self.user)

        fits = self.deliver([(self.product, 4), (self.product, 5)])
        api.validate_document("delivery", fits.pk, self.user)
        balances = list(self.entries_for(fits).chronological().values_list("running_balance", flat=True))
        self.assertEqual(balances, [Decimal("6"), Decimal("1")])

    def test_transfer_symmetry(self):
        self.receive(10)
        transfer = self.transfer(4, destination=self.annex_stock)
        api.validate_document("transfer", transfer.pk, self.user)

        out, in_ = self.entries_for(transfer).chronological()
        self.assertEqual((out.transaction_type, out.location, out.quantity),
                         ("transfer_out", self.stock, Decimal("-4")))
        self.assertEqual((in_.transaction_type, in_.location, in_.quantity),
                         ("transfer_in", self.annex_stock, Decimal("4")))
        self.assertEqual(in_.warehouse, self.annex)
        self.assertEqual(api.get_stock_level(self.product), Decimal("10"))

    def test_transfer_prefers_transferred_quantity(self):
        self.receive(10)
        transfer = self.transfer(4)
        line = transfer.get_lines()[0]
        line.quantity_transferred = Decimal("3")
        line.save()

        api.validate_document("transfer", transfer.pk, self.user)
        self.assertEqual(self.level(), Decimal("7"))
        self.assertEqual(self.level(self.shelf), Decimal("3"))

    def test_transfer_needs_stock_at_source(self):
        transfer = self.transfer(1)
        with self.assertRaises(InsufficientStock):
            api.validate_document("transfer", transfer.pk, self.user)
        self.assertFalse(StockLedgerEntry.objects.exists())

    def test_adjustment_signs(self):
        self.receive(100)
        down = self.adjust(counted=80, recorded=100)
        api.validate_document("adjustment", down.pk, self.user)
        self.assertEqual(self.entries_for(down).get().quantity, Decimal("-20"))

        up = self.adjust(counted=120, recorded=100)
        api.validate_document("adjustment", up.pk, self.user)
        self.assertEqual(self.entries_for(up).get().quantity, Decimal("20"))
        self.assertEqual(StockAdjustment.objects.get(pk=up.pk).state, StockAdjustment.State.DONE)
        self.assertEqual(self.level(), Decimal("100"))

    def test_adjustment_is_booked_without_stock_on_hand(self):
        adjustment = self.adjust(counted=80, recorded=100)
        api.validate_document("adjustment", adjustment.pk, self.user)

        entry = self.entries_for(adjustment).get()
        self.assertEqual(entry.quantity, Decimal("-20"))
        self.assertEqual(entry.running_balance, Decimal("-20"))
        self.assertEqual(entry.transaction_type, "adjustment")
        self.assertEqual(self.level(), Decimal("-20"))
        self.assertEqual(StockAdjustment.objects.get(pk=adjustment.pk).state, StockAdjustment.State.DONE)

    def test_missing_document(self):
        with self.assertRaises(NotFound):
            api.validate_document("receipt", 999999, self.user)

    def test_transition_is_logged_with_user(self):
        receipt = self.receive(5)
        log = StateLog.objects.for_(receipt).get()
        self.assertEqual(log.transition, "validate")
        self.assertEqual(log.source_state, "draft")
        self.assertEqual(log.state, "done")
        self.assertEqual(log.by, self.user)

    def test_history_is_kept(self):
        receipt = self.receive(5)
        states = list(Receipt.history.filter(id=receipt.pk).order_by("history_id").values_list("state", flat=True))
        self.assertEqual(states, ["draft", "done"])


class DeliveryFlowTest(DocumentTestCase):
    def setUp(self):
        self.receive(20)
        self.delivery = api.create_document(
            "delivery",
            {"customer_name": "Jane Doe", "warehouse": self.warehouse, "location": self.stock},
            [{"product": self.product.pk, "quantity_ordered": 5, "unit_price": "9.95"}],
            self.user,
        )

    def test_pick_pack_validate(self):
        picked = api.pick_delivery(self.delivery.pk, {"1": "5"}, self.user)
        self.assertEqual(picked.state, Delivery.State.PICKING)
        self.assertEqual(picked.get_lines()[0].quantity_picked, Decimal("5"))
        self.assertEqual(self.level(), Decimal("20"))

        packed = api.pack_delivery(self.delivery.pk, {"1": "3"}, self.user)
        self.assertEqual(packed.state, Delivery.State.PACKING)

        packed = api.pack_delivery(self.delivery.pk, {1: 5}, self.user)
        self.assertEqual(packed.state, Delivery.State.READY)
        line = packed.get_lines()[0]
        self.assertEqual((line.quantity_packed, line.quantity_delivered), (Decimal("5"), Decimal("5")))
        self.assertEqual(self.level(), Decimal("20"))

        done = api.validate_document("delivery", self.delivery.pk, self.user)
        self.assertEqual(done.state, Delivery.State.DONE)
        self.assertEqual(done.delivered_at, done.validated_at)
        self.assertEqual(self.level(), Decimal("15"))

    def test_pick_all_by_default(self):
        picked = api.pick_delivery(self.delivery.pk)
        self.assertEqual(picked.get_lines()[0].quantity_picked, Decimal("5"))

    def test_quantities_must_be_a_mapping(self):
        with self.assertRaises(ValidationError) as ctx:
            api.pick_delivery(self.delivery.pk, [1])
        self.assertIn("quantities", ctx.exception.details)
        self.assertEqual(Delivery.objects.get(pk=self.delivery.pk).state, Delivery.State.DRAFT)

    def test_pick_limits(self):
        with self.assertRaises(ValidationError) as ctx:
            api.pick_delivery(self.delivery.pk, {"1": "6"})
        self.assertIn("1", ctx.exception.details)

        with self.assertRaises(ValidationError) as ctx:
            api.pick_delivery(self.delivery.pk, {"7": "1", "x": "1"})
        self.assertEqual(set(ctx.exception.details), {"7", "x"})

        with self.assertRaises(ValidationError):
            api.pick_delivery(self.delivery.pk, {"1": "-1"})
        self.assertEqual(Delivery.objects.get(pk=self.delivery.pk).state, Delivery.State.DRAFT)

    def test_pack_cannot_exceed_picked(self):
        api.pick_delivery(self.delivery.pk, {1: 2})
        with self.assertRaises(ValidationError):
            api.pack_delivery(self.delivery.pk, {1: 3})

    def test_pack_needs_picking_first(self):
        with self.assertRaises(InvalidStateTransition):
            api.pack_delivery(self.delivery.pk)

    def test_no_picking_after_packing(self):
        api.pick_delivery(self.delivery.pk)
        api.pack_delivery(self.delivery.pk, {1: 1})
        with self.assertRaises(InvalidStateTransition):
            api.pick_delivery(self.delivery.pk)


class TransferFlowTest(DocumentTestCase):
    def test_in_transit_then_validate(self):
        self.receive(10)
        transfer = self.transfer(6)

        dispatched = api.mark_transfer_in_transit(transfer.pk, self.user)
        self.assertEqual(dispatched.state, InternalTransfer.State.IN_TRANSIT)
        self.assertFalse(self.entries_for(transfer).exists())

        with self.assertRaises(InvalidStateTransition):
            api.mark_transfer_in_transit(transfer.pk)

        api.validate_document("transfer", transfer.pk, self.user)
        self.assertEqual(self.level(), Decimal("4"))
        self.assertEqual(self.level(self.shelf), Decimal("6"))


class DocumentApiTest(DocumentTestCase):
    def setUp(self):
        self.client.force_login(self.user)

    def post(self, url, payload=None):
        return self.client.post(url, json.dumps(payload or {}), content_type="application/json")

    def create_receipt(self, qty=5):
        return self.post(reverse("api-create-document", args=["receipt"]), {
            "supplier_name": "ACME",
            "warehouse": self.warehouse.pk,
            "location": self.stock.pk,
            "lines": [{"product": self.product.pk, "quantity_ordered": qty, "quantity_received": qty}],
        })

    def test_create_and_validate(self):
        response = self.create_receipt()
        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data["number"], "RCP-000001")
        self.assertEqual(data["state"], "draft")
        self.assertEqual(len(data["lines"]), 1)

        url = reverse("api-validate-document", args=["receipt", data["id"]])
        response = self.post(url)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["state"], "done")

        response = self.post(url)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"], "already_validated")

    def test_get_and_patch(self):
        pk = self.create_receipt().json()["id"]
        url = reverse("api-document", args=["receipt", pk])

        response = self.client.patch(url, json.dumps({"notes": "Dock 3"}), content_type="application/json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get(url).json()["notes"], "Dock 3")

    def test_validation_errors_are_400(self):
        response = self.post(reverse("api-create-document", args=["receipt"]), {"supplier_name": "ACME"})
        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body["error"], "validation_error")
        self.assertIn("lines", body["details"])

        response = self.client.post(reverse("api-create-document", args=["receipt"]), "{nope",
                                    content_type="application/json")
        self.assertEqual(response.status_code, 400)

    def test_not_found_is_404(self):
        response = self.post(reverse("api-validate-document", args=["receipt", 999999]))
        self.assertEqual(response.status_code, 404)

    def test_insufficient_stock_is_409(self):
        delivery = self.deliver([(self.product, 3)])
        response = self.post(reverse("api-validate-document", args=["delivery", delivery.pk]))
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"], "insufficient_stock")

    def test_cancel_after_done_is_409(self):
        pk = self.create_receipt().json()["id"]
        self.post(reverse("api-validate-document", args=["receipt", pk]))
        response = self.post(reverse("api-cancel-document", args=["receipt", pk]))
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"], "invalid_state_transition")

    def test_delivery_workflow_endpoints(self):
        self.receive(10)
        delivery = self.deliver([(self.product, 4)])
        self.post(reverse("api-pick-delivery", args=[delivery.pk]), {"quantities": {"1": 4}})
        response = self.post(reverse("api-pack-delivery", args=[delivery.pk]), {"quantities": {"1": 4}})
        self.assertEqual(response.json()["state"], "ready")
        self.assertEqual(Decimal(response.json()["lines"][0]["quantity_delivered"]), Decimal("4"))

        self.post(reverse("api-validate-document", args=["delivery", delivery.pk]))
        self.assertEqual(self.level(), Decimal("6"))

    def test_pick_with_a_list_is_400(self):
        delivery = self.deliver([(self.product, 1)])
        response = self.post(reverse("api-pick-delivery", args=[delivery.pk]), {"quantities": [1]})
        self.assertEqual(response.status_code, 400)
        self.assertIn("quantities", response.json()["details"])

    def test_transfer_in_transit_endpoint(self):
        transfer = self.transfer(1)
        response = self.post(reverse("api-transfer-in-transit", args=[transfer.pk]))
        self.assertEqual(response.json()["state"], "in_transit")

    def test_wrong_method(self):
        response = self.client.get(reverse("api-create-document", args=["receipt"]))
        self.assertEqual(response.status_code, 405)


class ValidationLockingTest(DocumentTestCase):
    def test_document_row_is_locked(self):
        receipt = self.receive(3, validate=False)
        with mock.patch("documents.services.validation.get_document", wraps=get_document) as fetch:
            api.validate_document("receipt", receipt.pk, self.user)
        fetch.assert_called_once_with("receipt", receipt.pk, for_update=True)

    def test_second_validation_sees_committed_state(self):
        self.receive(10)
        first = self.deliver([(self.product, 7)])
        second = self.deliver([(self.product, 7)])

        api.validate_document("delivery", first.pk, self.user)
        with self.assertRaises(InsufficientStock):
            api.validate_document("delivery", second.pk, self.user)

        quant = StockQuant.objects.get(product=self.product, warehouse=self.warehouse, location=self.stock)
        self.assertEqual(quant.quantity, Decimal("3"))
        self.assertEqual(self.level(), Decimal("3"))
        self.assertEqual(Delivery.objects.get(pk=second.pk).state, Delivery.State.DRAFT)


@skipUnlessDBFeature("has_select_for_update")
class ConcurrentValidationTest(DocumentHelpers, TransactionTestCase):
    """Real parallel validations; needs a database with row locks (PostgreSQL)."""

    def setUp(self):
        build_fixtures(self)

    def run_in_threads(self, kind, pks):
        barrier = threading.Barrier(len(pks))
        results = []

        def attempt(pk):
            try:
                barrier.wait()
                api.validate_document(kind, pk, self.user.pk)
                results.append("ok")
            except (InsufficientStock, AlreadyValidated) as exc:
                results.append(exc.code)
            finally:
                connection.close()

        threads = [threading.Thread(target=attempt, args=(pk,)) for pk in pks]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return sorted(results)

    def test_competing_deliveries_cannot_oversell(self):
        self.receive(10)
        first = self.deliver([(self.product, 7)])
        second = self.deliver([(self.product, 7)])

        results = self.run_in_threads("delivery", [first.pk, second.pk])

        self.assertEqual(results, ["insufficient_stock", "ok"])
        self.assertEqual(api.get_stock_level(self.product, self.warehouse, self.stock), Decimal("3"))

    def test_same_document_validates_once(self):
        receipt = self.receive(10, validate=False)

        results = self.run_in_threads("receipt", [receipt.pk, receipt.pk])

        self.assertEqual(results, ["already_validated", "ok"])
        self.assertEqual(StockLedgerEntry.objects.filter(reference_doc=receipt.number).count(), 1)


class DocumentAdminTest(DocumentTestCase):
    def setUp(self):
        self.admin = get_user_model().objects.create_superuser("boss", "boss@example.com", "secret")
        self.client.force_login(self.admin)

    def test_changelist(self):
        self.receive(5, validate=False)
        response = self.client.get(reverse("admin:documents_receipt_changelist"))
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "RCP-000001")

    def test_validate_button(self):
        receipt = self.receive(5, validate=False)
        url = reverse("admin:documents_receipt_actions", args=[receipt.pk, "validate_action"])

        response = self.client.post(url)

        self.assertEqual(response.status_code, 302)
        receipt = Receipt.objects.get(pk=receipt.pk)
        self.assertEqual(receipt.state, Receipt.State.DONE)
        self.assertEqual(receipt.validated_by, self.admin)
        self.assertEqual(self.level(), Decimal("5"))

    def test_failed_button_reports_error(self):
        delivery = self.deliver([(self.product, 5)])
        url = reverse("admin:documents_delivery_actions", args=[delivery.pk, "validate_action"])

        response = self.client.post(url, follow=True)

        self.assertContains(response, "Insufficient stock")
        self.assertEqual(Delivery.objects.get(pk=delivery.pk).state, Delivery.State.DRAFT)
