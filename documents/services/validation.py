import logging

from django.db import transaction
from django_fsm import can_proceed

from core.exceptions import AlreadyValidated, InvalidStateTransition
from documents.services.common import get_document, resolve_user
from inventory.services.ledger import post_moves
from inventory.signals import document_validated, send_on_commit, stock_updated

logger = logging.getLogger(__name__)


def validate_document(kind, pk, user):
    """Turn a document's planned moves into ledger entries and mark it done.

    Everything happens in one transaction: the document row and every
    affected StockQuant are locked, entries are appended, the FSM transition
    fires. Any error rolls the whole lot back and reaches the caller as is.
    Events go out only after commit.
    """
    user = resolve_user(user)

    with transaction.atomic():
        doc = get_document(kind, pk, for_update=True)

        if doc.is_done:
            raise AlreadyValidated(
                f"{doc.number} was already validated.", details={"number": doc.number}
            )
        if not can_proceed(doc.validate):
            raise InvalidStateTransition(f"Cannot validate {doc.number}: document is {doc.state}.")

        entries = post_moves(doc, doc.planned_moves(), user=user)

        doc.validate(by=user)
        doc.save()

        model = type(doc)
        send_on_commit(document_validated, model, document=doc, entries=entries)
        if entries:
            product_ids = sorted({entry.product_id for entry in entries})
            send_on_commit(stock_updated, model, product_ids=product_ids, document=doc)

    logger.info("Validated %s %s: %d ledger entr%s", kind, doc.number,
                len(entries), "y" if len(entries) == 1 else "ies")
    return doc
