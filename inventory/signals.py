"""Domain events for collaborators outside the transaction (UI push, dashboards).

Events are only ever sent after the owning transaction commits. A receiver
that raises is logged and otherwise ignored: notifications are fire-and-forget
and must never undo or block a committed stock movement.
"""

import logging

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)

# kwargs: document
document_created = Signal()
# kwargs: document, entries
document_validated = Signal()
# kwargs: document
document_cancelled = Signal()
# kwargs: product_ids, document
stock_updated = Signal()


def send_on_commit(signal, sender, **kwargs):
    def _send():
        for receiver, response in signal.send_robust(sender=sender, **kwargs):
            if isinstance(response, Exception):
                logger.error(
                    "Receiver %r failed for %s", receiver, sender.__name__,
                    exc_info=(type(response), response, response.__traceback__),
                )

    transaction.on_commit(_send)
