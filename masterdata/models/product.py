from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models

ZERO = Decimal("0.000")


class ActiveQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)


class Category(models.Model):
    """Product category. Reference data only; no stock semantics."""

    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True, default="")
    is_active = models.BooleanField(default=True)

    objects = ActiveQuerySet.as_manager()

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "categories"

    def __str__(self):
        return self.name

    def deactivate(self):
        self.is_active = False
        self.save(update_fields=["is_active"])


class Product(models.Model):
    """Catalogue product.

    Products are never hard deleted: ledger entries and document lines point at
    them with PROTECT. Use deactivate() instead.

    ``initial_stock`` is a bootstrap baseline. It is reported as the product's
    stock only while the ledger holds no entry for it.
    """

    class Unit(models.TextChoices):
        PCS = "pcs", "Pieces"
        BOX = "box", "Box"
        KG = "kg", "Kilogram"
        LITER = "liter", "Liter"
        METER = "meter", "Meter"

    name = models.CharField(max_length=100)
    sku = models.CharField(max_length=50, unique=True)
    category = models.ForeignKey(Category, on_delete=models.PROTECT, related_name="products")
    description = models.TextField(blank=True, default="")

    unit_of_measure = models.CharField(max_length=10, choices=Unit.choices, default=Unit.PCS)

    cost = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"),
                               validators=[MinValueValidator(Decimal("0.00"))])
    price = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"),
                                validators=[MinValueValidator(Decimal("0.00"))])

    initial_stock = models.DecimalField(max_digits=14, decimal_places=3, default=ZERO,
                                        validators=[MinValueValidator(ZERO)])
    reorder_level = models.DecimalField(max_digits=14, decimal_places=3, default=ZERO,
                                        validators=[MinValueValidator(ZERO)])
    reorder_quantity = models.DecimalField(max_digits=14, decimal_places=3, default=ZERO,
                                           validators=[MinValueValidator(ZERO)])

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ActiveQuerySet.as_manager()

    class Meta:
        ordering = ["sku"]

    def __str__(self):
        return f"{self.sku} {self.name}"

    def save(self, *args, **kwargs):
        """SKUs are case-insensitive: store them stripped and upper-cased."""
        self.sku = (self.sku or "").strip().upper()
        super().save(*args, **kwargs)

    def deactivate(self):
        self.is_active = False
        self.save(update_fields=["is_active", "updated_at"])
