from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from core.api import api_errors, read_json
from documents.services import api
from documents.services.common import get_document


def serialize_line(line):
    data = {"line_no": line.line_no, "product": line.product_id}
    for name in line.LINE_FIELDS:
        if name != "product":
            data[name] = getattr(line, name)
    if hasattr(line, "difference"):
        data["difference"] = line.difference
    return data


def serialize_document(doc):
    data = {
        "id": doc.pk,
        "kind": doc.KIND,
        "number": doc.number,
        "state": doc.state,
        "created_by": doc.created_by_id,
        "created_at": doc.created_at,
        "validated_by": doc.validated_by_id,
        "validated_at": doc.validated_at,
        "cancelled_at": doc.cancelled_at,
    }
    for name in doc.HEADER_FIELDS:
        data[name] = getattr(doc, doc._meta.get_field(name).attname)
    data["lines"] = [serialize_line(line) for line in doc.get_lines()]
    return data


@login_required
@require_http_methods(["POST"])
@api_errors
def api_create_document(request, kind):
    payload = read_json(request)
    lines = payload.pop("lines", None)
    doc = api.create_document(kind, payload, lines, request.user)
    return JsonResponse(serialize_document(doc), status=201)


@login_required
@require_http_methods(["GET", "PATCH"])
@api_errors
def api_document(request, kind, pk: int):
    if request.method == "PATCH":
        doc = api.update_document(kind, pk, read_json(request))
    else:
        doc = get_document(kind, pk)
    return JsonResponse(serialize_document(doc))


@login_required
@require_http_methods(["POST"])
@api_errors
def api_validate_document(request, kind, pk: int):
    doc = api.validate_document(kind, pk, request.user)
    return JsonResponse(serialize_document(doc))


@login_required
@require_http_methods(["POST"])
@api_errors
def api_cancel_document(request, kind, pk: int):
    doc = api.cancel_document(kind, pk, request.user)
    return JsonResponse(serialize_document(doc))


@login_required
@require_http_methods(["POST"])
@api_errors
def api_pick_delivery(request, pk: int):
    doc = api.pick_delivery(pk, read_json(request).get("quantities"), request.user)
    return JsonResponse(serialize_document(doc))


@login_required
@require_http_methods(["POST"])
@api_errors
def api_pack_delivery(request, pk: int):
    doc = api.pack_delivery(pk, read_json(request).get("quantities"), request.user)
    return JsonResponse(serialize_document(doc))


@login_required
@require_http_methods(["POST"])
@api_errors
def api_transfer_in_transit(request, pk: int):
    doc = api.mark_transfer_in_transit(pk, request.user)
    return JsonResponse(serialize_document(doc))
