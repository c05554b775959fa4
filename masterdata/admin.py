from django.contrib import admin, messages
from guardian.admin import GuardedModelAdmin
from mptt.admin import MPTTModelAdmin

from masterdata.models import Category, Location, Product, Warehouse


class SoftDeleteAdminMixin:
    """Reference data is deactivated, never deleted (ledger rows PROTECT it)."""

    actions = ["deactivate_selected"]

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.action(description="Deactivate selected")
    def deactivate_selected(self, request, queryset):
        count = 0
        for obj in queryset.filter(is_active=True):
            obj.deactivate()
            count += 1
        self.message_user(request, f"Deactivated {count} record(s).", level=messages.SUCCESS)


@admin.register(Category)
class CategoryAdmin(SoftDeleteAdminMixin, GuardedModelAdmin, admin.ModelAdmin):
    list_display = ("name", "is_active")
    list_filter = ("is_active",)
    search_fields = ("name",)


@admin.register(Product)
class ProductAdmin(SoftDeleteAdminMixin, GuardedModelAdmin, admin.ModelAdmin):
    list_display = ("sku", "name", "category", "unit_of_measure", "price", "reorder_level", "is_active")
    list_filter = ("category", "unit_of_measure", "is_active")
    search_fields = ("sku", "name")
    readonly_fields = ("created_at", "updated_at")


class LocationInline(admin.TabularInline):
    model = Location
    extra = 0
    fields = ("name", "type", "parent", "is_active")
    show_change_link = True

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Warehouse)
class WarehouseAdmin(SoftDeleteAdminMixin, GuardedModelAdmin, admin.ModelAdmin):
    inlines = [LocationInline]
    list_display = ("code", "name", "city", "country", "is_active")
    list_filter = ("is_active", "country")
    search_fields = ("code", "name")


@admin.register(Location)
class LocationAdmin(SoftDeleteAdminMixin, MPTTModelAdmin):
    list_display = ("name", "warehouse", "type", "is_active")
    list_filter = ("warehouse", "type", "is_active")
    search_fields = ("name", "warehouse__code")
