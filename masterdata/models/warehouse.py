from django.core.exceptions import ValidationError
from django.db import models
from mptt.managers import TreeManager
from mptt.models import MPTTModel, TreeForeignKey
from mptt.querysets import TreeQuerySet

from .product import ActiveQuerySet


class Warehouse(models.Model):
    name = models.CharField(max_length=255, unique=True)
    code = models.CharField(max_length=20, unique=True)

    street = models.CharField(max_length=255, blank=True, default="")
    city = models.CharField(max_length=100, blank=True, default="")
    state = models.CharField(max_length=100, blank=True, default="")
    zip_code = models.CharField(max_length=20, blank=True, default="")
    country = models.CharField(max_length=100, blank=True, default="")

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ActiveQuerySet.as_manager()

    class Meta:
        ordering = ["code"]

    def __str__(self):
        return f"{self.code} {self.name}"

    def save(self, *args, **kwargs):
        self.code = (self.code or "").strip().upper()
        super().save(*args, **kwargs)

    def deactivate(self):
        self.is_active = False
        self.save(update_fields=["is_active", "updated_at"])


class LocationQuerySet(TreeQuerySet):
    def active(self):
        return self.filter(is_active=True)


class Location(MPTTModel):
    """A place inside a warehouse (tree via django-mptt).

    Stock is tracked per (product, warehouse, location). Vendor/customer
    locations exist so documents always have both ends of a movement.
    """

    class Type(models.TextChoices):
        STORAGE = "storage", "Storage"
        PRODUCTION = "production", "Production"
        TRANSIT = "transit", "Transit"
        VENDOR = "vendor", "Vendor"
        CUSTOMER = "customer", "Customer"

    name = models.CharField(max_length=255)
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name="locations")
    type = models.CharField(max_length=20, choices=Type.choices, default=Type.STORAGE)

    parent = TreeForeignKey("self", null=True, blank=True, on_delete=models.PROTECT, related_name="children")

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TreeManager.from_queryset(LocationQuerySet)()

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["name", "warehouse"], name="masterdata_location_name_warehouse_uniq"),
        ]

    class MPTTMeta:
        order_insertion_by = ["name"]

    def __str__(self):
        return f"{self.warehouse.code}/{self.name}"

    def clean(self):
        if self.parent_id and self.parent.warehouse_id != self.warehouse_id:
            raise ValidationError({"parent": "Parent location must belong to the same warehouse."})

    def deactivate(self):
        self.is_active = False
        self.save(update_fields=["is_active", "updated_at"])
