"""Errors raised by the inventory services.

Every error here is recoverable by the caller: it carries a short ``code`` for
classification (the JSON API maps it to an HTTP status) and a human message.
"""


class InventoryError(Exception):
    code = "inventory_error"

    def __init__(self, message="", *, details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def as_dict(self):
        data = {"error": self.code, "message": self.message}
        if self.details:
            data["details"] = self.details
        return data


class NotFound(InventoryError):
    code = "not_found"


class ValidationError(InventoryError):
    """Malformed or missing input fields."""
    code = "validation_error"

    @classmethod
    def from_django(cls, exc, message="Invalid input."):
        """Wrap django.core.exceptions.ValidationError, keeping per-field messages."""
        if hasattr(exc, "message_dict"):
            details = exc.message_dict
        else:
            details = {"__all__": list(exc.messages)}
        return cls(message, details=details)


class InvalidStateTransition(InventoryError):
    code = "invalid_state_transition"


class AlreadyValidated(InventoryError):
    code = "already_validated"


class InsufficientStock(InventoryError):
    code = "insufficient_stock"

    def __init__(self, message="", *, product=None, warehouse=None, location=None,
                 available=None, requested=None):
        details = {}
        if product is not None:
            details = {
                "product": product.pk,
                "sku": product.sku,
                "warehouse": getattr(warehouse, "pk", warehouse),
                "location": getattr(location, "pk", location),
                "available": str(available),
                "requested": str(requested),
            }
        super().__init__(message, details=details)
