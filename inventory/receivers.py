import logging

from django.dispatch import receiver

from inventory.signals import document_cancelled, document_created, document_validated, stock_updated

logger = logging.getLogger(__name__)


@receiver(document_created)
def log_document_created(sender, document, **kwargs):
    logger.info("%s %s created by user %s", sender.__name__, document.number, document.created_by_id)


@receiver(document_validated)
def log_document_validated(sender, document, entries=(), **kwargs):
    logger.info(
        "%s %s validated by user %s (%d ledger entries)",
        sender.__name__, document.number, document.validated_by_id, len(entries),
    )


@receiver(document_cancelled)
def log_document_cancelled(sender, document, **kwargs):
    logger.info("%s %s cancelled", sender.__name__, document.number)


@receiver(stock_updated)
def log_stock_updated(sender, product_ids, **kwargs):
    logger.debug("Stock updated for products %s", sorted(product_ids))
