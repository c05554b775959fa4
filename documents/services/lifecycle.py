"""Create, edit and progress stock documents. None of this touches the ledger.

Inputs are plain dicts (from the JSON API, admin or tests). Foreign keys may be
given as ids or model instances. Failures are reported with the error classes
in core.exceptions; per-field messages go into ``details`` using keys like
``warehouse`` or ``lines.2.product``.
"""

import logging
from decimal import Decimal, InvalidOperation

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction

from core.exceptions import InvalidStateTransition, ValidationError
from core.services.numbering import next_document_number
from documents.models import Delivery, InternalTransfer
from documents.services.common import ensure_open, fsm_errors, get_document, get_model, resolve_user
from inventory.signals import document_cancelled, document_created, send_on_commit
from masterdata.models import Product

logger = logging.getLogger(__name__)

# number is assigned after validation; full_clean would reassign the protected FSM state.
UNCLEANED_HEADER_FIELDS = ["number", "state"]


def _clean(instance, exclude=None):
    try:
        instance.full_clean(exclude=exclude)
    except DjangoValidationError as exc:
        return dict(ValidationError.from_django(exc).details)
    return {}


def _apply_header(doc, header):
    model = type(doc)
    errors = {}
    for name, value in header.items():
        if name not in model.HEADER_FIELDS:
            errors[name] = ["Unknown or read-only field."]
            continue
        field = model._meta.get_field(name)
        if field.is_relation:
            setattr(doc, field.attname, getattr(value, "pk", value))
        else:
            setattr(doc, name, value)
    return errors


def _product_error(product_id):
    if product_id in (None, ""):
        return "This field is required."
    try:
        exists = Product.objects.filter(pk=product_id, is_active=True).exists()
    except (ValueError, TypeError):
        exists = False
    return None if exists else f"Unknown or inactive product {product_id}."


def _build_lines(doc, lines_data, with_defaults=True):
    """Validate line dicts and return (unsaved lines, errors). Lines are numbered from 1.

    Per-product defaults read the header's refs, so they are skipped when the
    header is already invalid.
    """
    line_model = doc._meta.get_field("lines").related_model
    if not lines_data:
        return [], {"lines": ["At least one line item is required."]}

    lines, errors = [], {}
    for index, data in enumerate(lines_data):
        prefix = f"lines.{index}"
        if not isinstance(data, dict):
            errors[prefix] = ["Expected an object."]
            continue

        unknown = sorted(set(data) - set(line_model.LINE_FIELDS))
        for name in unknown:
            errors[f"{prefix}.{name}"] = ["Unknown or read-only field."]

        product_id = getattr(data.get("product"), "pk", data.get("product"))
        problem = _product_error(product_id)
        if problem:
            errors[f"{prefix}.product"] = [problem]
            continue

        defaults = doc.line_defaults(product_id) if with_defaults else {}
        values = {**defaults, **data}
        values.pop("product", None)
        for name in unknown:
            values.pop(name)

        line = line_model(line_no=index + 1, product_id=product_id, **values)
        for field, messages in _clean(line, exclude=["document"]).items():
            errors[f"{prefix}.{field}"] = messages
        lines.append(line)

    return lines, errors


def _save_lines(doc, lines):
    for line in lines:
        line.document = doc
        line.save()


def create_document(kind, header, lines, creator):
    """Create a draft document with its lines and a fresh number."""
    model = get_model(kind)
    creator = resolve_user(creator)

    doc = model(created_by=creator)
    errors = _apply_header(doc, dict(header or {}))
    errors.update(_clean(doc, exclude=UNCLEANED_HEADER_FIELDS))
    built, line_errors = _build_lines(doc, lines, with_defaults=not errors)
    errors.update(line_errors)
    if errors:
        raise ValidationError(f"Invalid {kind}.", details=errors)

    with transaction.atomic():
        doc.number = next_document_number(model.KIND)
        doc.save()
        _save_lines(doc, built)
        send_on_commit(document_created, model, document=doc)

    logger.info("Created %s %s with %d line(s)", kind, doc.number, len(built))
    return doc


def update_document(kind, pk, patch):
    """Patch header fields and/or replace lines (``patch["lines"]``).

    Header fields can change in any open state; lines only while draft.
    """
    patch = dict(patch or {})
    lines_data = patch.pop("lines", None)

    with transaction.atomic():
        doc = get_document(kind, pk, for_update=True)
        ensure_open(doc, "update")

        errors = _apply_header(doc, patch)
        errors.update(_clean(doc, exclude=UNCLEANED_HEADER_FIELDS))

        built = None
        if lines_data is not None:
            if not doc.lines_editable:
                raise InvalidStateTransition(
                    f"Lines of {doc.number} can no longer be changed (state {doc.state})."
                )
            built, line_errors = _build_lines(doc, lines_data, with_defaults=not errors)
            errors.update(line_errors)

        if errors:
            raise ValidationError(f"Invalid {kind}.", details=errors)

        doc.save()
        if built is not None:
            doc.lines.all().delete()
            _save_lines(doc, built)

    return doc


def cancel_document(kind, pk, user=None):
    """Cancel an open document. Validated documents need a compensating document instead."""
    user = resolve_user(user, required=False)
    with transaction.atomic():
        doc = get_document(kind, pk, for_update=True)
        if doc.is_done:
            raise InvalidStateTransition(
                f"{doc.number} is already validated and cannot be cancelled; "
                f"reverse it with a compensating document."
            )
        ensure_open(doc, "cancel")

        with fsm_errors(doc, "cancel"):
            doc.cancel(by=user)
        doc.save()
        send_on_commit(document_cancelled, type(doc), document=doc)

    logger.info("Cancelled %s %s", kind, doc.number)
    return doc


def _parse_quantities(raw, lines, limit_attr):
    """{line_no: qty} from user input, checked against ``limit_attr`` of each line."""
    if not isinstance(raw, dict):
        raise ValidationError("Invalid quantities.", details={"quantities": ["Expected an object of line number to quantity."]})
    errors, parsed = {}, {}
    for key, value in raw.items():
        try:
            line_no = int(key)
        except (TypeError, ValueError):
            errors[str(key)] = ["Line number must be an integer."]
            continue
        line = lines.get(line_no)
        if line is None:
            errors[str(key)] = ["No such line."]
            continue
        try:
            qty = Decimal(str(value))
        except InvalidOperation:
            errors[str(key)] = ["Enter a number."]
            continue
        if not qty.is_finite() or qty < 0:
            errors[str(key)] = ["Enter a non-negative number."]
            continue
        limit = getattr(line, limit_attr)
        if qty > limit:
            errors[str(key)] = [f"Cannot exceed {limit_attr.replace('_', ' ')} ({limit})."]
            continue
        parsed[line_no] = qty

    if not parsed and not errors:
        errors["quantities"] = ["Nothing to record."]
    if errors:
        raise ValidationError("Invalid quantities.", details=errors)
    return parsed


def pick_delivery(pk, quantities=None, user=None):
    """Record picked quantities. Without ``quantities`` every line is picked in full."""
    user = resolve_user(user, required=False)
    with transaction.atomic():
        doc = get_document(Delivery.KIND, pk, for_update=True)
        ensure_open(doc, "pick")
        lines = {line.line_no: line for line in doc.get_lines()}
        if quantities is None:
            quantities = {no: line.quantity_ordered for no, line in lines.items()}
        parsed = _parse_quantities(quantities, lines, "quantity_ordered")

        with fsm_errors(doc, "pick"):
            doc.pick(parsed, by=user)
        doc.save()
    return doc


def pack_delivery(pk, quantities=None, user=None):
    """Record packed (= to be delivered) quantities. Without ``quantities`` all picked units are packed."""
    user = resolve_user(user, required=False)
    with transaction.atomic():
        doc = get_document(Delivery.KIND, pk, for_update=True)
        ensure_open(doc, "pack")
        lines = {line.line_no: line for line in doc.get_lines()}
        if quantities is None:
            quantities = {no: line.quantity_picked for no, line in lines.items()}
        parsed = _parse_quantities(quantities, lines, "quantity_picked")

        with fsm_errors(doc, "pack"):
            doc.pack(parsed, by=user)
        doc.save()
    return doc


def mark_transfer_in_transit(pk, user=None):
    user = resolve_user(user, required=False)
    with transaction.atomic():
        doc = get_document(InternalTransfer.KIND, pk, for_update=True)
        ensure_open(doc, "dispatch")
        with fsm_errors(doc, "dispatch"):
            doc.mark_in_transit(by=user)
        doc.save()
    return doc
