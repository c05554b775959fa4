"""Helpers shared by the JSON views."""

import json
from decimal import Decimal
from functools import wraps

from django.http import JsonResponse

from core.exceptions import (
    AlreadyValidated,
    InsufficientStock,
    InvalidStateTransition,
    InventoryError,
    NotFound,
    ValidationError,
)

STATUS_CODES = {
    NotFound: 404,
    ValidationError: 400,
    InvalidStateTransition: 409,
    AlreadyValidated: 409,
    InsufficientStock: 409,
}


def error_status(exc):
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 400


def api_errors(view):
    """Render service errors as ``{"error", "message", "details"}`` with a matching status."""
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except InventoryError as exc:
            return JsonResponse(exc.as_dict(), status=error_status(exc))
    return wrapper


def read_json(request):
    """Parse the request body as a JSON object. Numbers with a fraction become Decimal."""
    if not request.body:
        return {}
    try:
        data = json.loads(request.body, parse_float=Decimal)
    except (ValueError, UnicodeDecodeError):
        raise ValidationError("Request body is not valid JSON.")
    if not isinstance(data, dict):
        raise ValidationError("Expected a JSON object.")
    return data


def int_param(params, name):
    value = params.get(name)
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name}.", details={name: ["Enter a whole number."]})
