import logging
import time

from django.conf import settings
from django.db import DatabaseError, transaction

from core.models import NumberSeries

logger = logging.getLogger(__name__)

# Document kind -> number prefix. The series rows are created on first use.
DOCUMENT_PREFIXES = {
    "receipt": "RCP",
    "delivery": "DEL",
    "transfer": "TRF",
    "adjustment": "ADJ",
}


def get_series(code: str) -> NumberSeries:
    """Return the series for ``code``, creating it with the default prefix."""
    prefix = DOCUMENT_PREFIXES.get(code, code.upper()[:3])
    series, _ = NumberSeries.objects.get_or_create(
        code=code,
        defaults={
            "prefix": f"{prefix}-",
            "min_width": getattr(settings, "INVENTORY_NUMBER_WIDTH", 6),
        },
    )
    return series


def next_document_number(code: str) -> str:
    """Allocate the next number for a document kind, e.g. ``RCP-000042``.

    Allocation runs in its own savepoint. If the counter cannot be read or
    written we log the anomaly and hand out a timestamp-derived number instead,
    so document creation is not blocked by a broken series row.
    """
    try:
        with transaction.atomic():
            return get_series(code).allocate()
    except DatabaseError:
        prefix = DOCUMENT_PREFIXES.get(code, code.upper()[:3])
        fallback = f"{prefix}-{int(time.time() * 1000)}"
        logger.warning(
            "Number series %r could not allocate; using fallback number %s",
            code, fallback, exc_info=True,
        )
        return fallback
