from django.db import models, transaction


class NumberSeries(models.Model):
    """Counter behind document numbers such as RCP-000042. One row per document kind.

    allocate() hands out next_number under a row lock, so receipts created at
    the same moment by two operators still get distinct numbers, and a
    cancelled or removed document never frees its number for reuse.
    """

    code = models.CharField(max_length=50, unique=True)
    prefix = models.CharField(max_length=50, blank=True, default="")
    next_number = models.PositiveIntegerField(default=1)
    min_width = models.PositiveSmallIntegerField(default=6)

    class Meta:
        ordering = ["code"]
        verbose_name_plural = "number series"

    def __str__(self):
        return f"{self.code} ({self.format(self.next_number)})"

    def format(self, value: int) -> str:
        return f"{self.prefix}{str(value).zfill(self.min_width)}"

    @transaction.atomic
    def allocate(self) -> str:
        """Reserve the current counter value and return it formatted.

        The row stays locked until the caller's transaction ends.
        """
        locked = type(self).objects.select_for_update().get(pk=self.pk)
        issued = locked.next_number

        type(self).objects.filter(pk=locked.pk).update(next_number=issued + 1)
        self.next_number = issued + 1
        return locked.format(issued)
