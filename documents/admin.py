from django.contrib import admin, messages
from django.db import transaction
from django_object_actions import DjangoObjectActions, action
from guardian.admin import GuardedModelAdmin

from core.exceptions import InventoryError
from core.services.numbering import next_document_number
from documents.models import (
    Delivery,
    DeliveryLine,
    InternalTransfer,
    InternalTransferLine,
    Receipt,
    ReceiptLine,
    StockAdjustment,
    StockAdjustmentLine,
)
from documents.services import api

DOCUMENT_READONLY_FIELDS = (
    "number", "state", "created_by", "validated_by", "validated_at", "cancelled_at",
    "created_at", "updated_at",
)


class DocumentLineInline(admin.TabularInline):
    extra = 0
    fk_name = "document"
    ordering = ("line_no",)

    def _locked(self, obj):
        return obj is not None and not obj.lines_editable

    def get_readonly_fields(self, request, obj=None):
        if self._locked(obj):
            return ("line_no",) + self.model.LINE_FIELDS
        return super().get_readonly_fields(request, obj)

    def has_add_permission(self, request, obj=None):
        return not self._locked(obj) and super().has_add_permission(request, obj)

    def has_delete_permission(self, request, obj=None):
        return not self._locked(obj) and super().has_delete_permission(request, obj)


class ReceiptLineInline(DocumentLineInline):
    model = ReceiptLine


class DeliveryLineInline(DocumentLineInline):
    model = DeliveryLine


class InternalTransferLineInline(DocumentLineInline):
    model = InternalTransferLine


class StockAdjustmentLineInline(DocumentLineInline):
    model = StockAdjustmentLine

    def get_readonly_fields(self, request, obj=None):
        return tuple(super().get_readonly_fields(request, obj)) + ("difference",)


class StockDocumentAdmin(DjangoObjectActions, GuardedModelAdmin, admin.ModelAdmin):
    """Shared admin for the four document kinds.

    Buttons call documents.services.api, so the admin gets exactly the same
    checks, locking and ledger writes as the JSON API.
    """

    list_filter = ("state", "scheduled_date")
    search_fields = ("number",)
    date_hierarchy = "created_at"
    readonly_fields = DOCUMENT_READONLY_FIELDS

    change_actions = ("validate_action", "cancel_action")

    def get_readonly_fields(self, request, obj=None):
        if obj is not None and not obj.is_open:
            return [f.name for f in obj._meta.concrete_fields]
        return super().get_readonly_fields(request, obj)

    def has_delete_permission(self, request, obj=None):
        # Documents are cancelled, never deleted; ledger rows point at them.
        return False

    @transaction.atomic
    def save_model(self, request, obj, form, change):
        if not change:
            obj.created_by = request.user
            obj.number = next_document_number(obj.KIND)
        super().save_model(request, obj, form, change)

    def get_change_actions(self, request, object_id, form_url):
        obj = self.get_object(request, object_id)
        if not obj or not obj.is_open:
            return ()
        return self.open_actions(obj)

    def open_actions(self, obj):
        return self.change_actions

    def _run(self, request, verb, func, *args):
        try:
            doc = func(*args)
        except InventoryError as exc:
            self.message_user(request, exc.message, level=messages.ERROR)
        else:
            self.message_user(request, f"{verb} {doc.number}.", level=messages.SUCCESS)

    @action(label="Validate", description="Book this document's stock moves")
    def validate_action(self, request, obj):
        self._run(request, "Validated", api.validate_document, obj.KIND, obj.pk, request.user)

    @action(label="Cancel", description="Cancel this document")
    def cancel_action(self, request, obj):
        self._run(request, "Cancelled", api.cancel_document, obj.KIND, obj.pk, request.user)


@admin.register(Receipt)
class ReceiptAdmin(StockDocumentAdmin):
    inlines = [ReceiptLineInline]
    list_display = ("number", "supplier_name", "warehouse", "location", "scheduled_date", "state")
    search_fields = ("number", "supplier_name")


@admin.register(Delivery)
class DeliveryAdmin(StockDocumentAdmin):
    inlines = [DeliveryLineInline]
    list_display = ("number", "customer_name", "warehouse", "location", "scheduled_date", "state")
    search_fields = ("number", "customer_name")
    readonly_fields = DOCUMENT_READONLY_FIELDS + ("delivered_at",)

    change_actions = ("pick_all_action", "pack_all_action", "validate_action", "cancel_action")

    def open_actions(self, obj):
        actions = ["validate_action", "cancel_action"]
        if obj.state in (Delivery.State.PICKING, Delivery.State.PACKING):
            actions.insert(0, "pack_all_action")
        if obj.state in (Delivery.State.DRAFT, Delivery.State.PICKING):
            actions.insert(0, "pick_all_action")
        return actions

    @action(label="Pick all", description="Pick every line in full")
    def pick_all_action(self, request, obj):
        self._run(request, "Picked", api.pick_delivery, obj.pk, None, request.user)

    @action(label="Pack all", description="Pack everything picked")
    def pack_all_action(self, request, obj):
        self._run(request, "Packed", api.pack_delivery, obj.pk, None, request.user)


@admin.register(InternalTransfer)
class InternalTransferAdmin(StockDocumentAdmin):
    inlines = [InternalTransferLineInline]
    list_display = ("number", "source_location", "destination_location", "scheduled_date", "state")

    change_actions = ("in_transit_action", "validate_action", "cancel_action")

    def open_actions(self, obj):
        if obj.state == InternalTransfer.State.DRAFT:
            return self.change_actions
        return ("validate_action", "cancel_action")

    @action(label="Dispatch", description="Mark the transfer as in transit")
    def in_transit_action(self, request, obj):
        self._run(request, "Dispatched", api.mark_transfer_in_transit, obj.pk, request.user)


@admin.register(StockAdjustment)
class StockAdjustmentAdmin(StockDocumentAdmin):
    inlines = [StockAdjustmentLineInline]
    list_display = ("number", "warehouse", "location", "scheduled_date", "state")
