from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from core.api import api_errors, int_param
from documents.services import api


def _product_row(product, quantity):
    return {
        "id": product.id,
        "sku": product.sku,
        "name": product.name,
        "quantity": quantity,
        "reorder_level": product.reorder_level,
        "reorder_quantity": product.reorder_quantity,
    }


@login_required
@require_http_methods(["GET"])
@api_errors
def api_stock_level(request, product_id: int):
    warehouse = int_param(request.GET, "warehouse")
    location = int_param(request.GET, "location")

    data = {
        "product": product_id,
        "warehouse": warehouse,
        "location": location,
        "quantity": api.get_stock_level(product_id, warehouse, location),
    }
    if warehouse is None and location is None:
        data["locations"] = api.stock_by_location(product_id)
    return JsonResponse(data)


@login_required
@require_http_methods(["GET"])
@api_errors
def api_low_stock(request):
    return JsonResponse({
        "low_stock": [_product_row(p, qty) for p, qty in api.low_stock_products()],
        "out_of_stock": [_product_row(p, qty) for p, qty in api.out_of_stock_products()],
    })


@login_required
@require_http_methods(["GET"])
@api_errors
def api_ledger_history(request):
    filters = {key: value for key, value in request.GET.items() if key != "limit"}
    entries = api.list_ledger_history(filters, limit=int_param(request.GET, "limit"))

    data = []
    for e in entries:
        data.append({
            "id": e.id,
            "product": e.product_id,
            "sku": e.product.sku,
            "warehouse": e.warehouse_id,
            "location": e.location_id,
            "quantity": e.quantity,
            "running_balance": e.running_balance,
            "transaction_type": e.transaction_type,
            "reference_doc": e.reference_doc,
            "performed_by": e.performed_by_id,
            "note": e.note,
            "created_at": e.created_at.isoformat(),
        })
    return JsonResponse({"results": data})
