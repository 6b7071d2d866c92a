# Overview: Error taxonomy shared by services and the API boundary.

"""
Every service failure is a StockroomError carrying a stable `code` tag.

The tag, not the class, is what crosses the API boundary: routes turn any
StockroomError into {"success": false, "error": <message>, "code": <tag>}.
Subclasses exist so services can raise with a useful message and so callers
inside the process can catch narrowly.
"""
from __future__ import annotations

from decimal import Decimal


class StockroomError(Exception):
    """Base class for recoverable, user-facing service errors."""

    code = "ERROR"
    http_status = 400

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(StockroomError, ValueError):
    """Malformed or missing input, detected before the store is touched."""

    code = "VALIDATION_ERROR"


class NotFoundError(StockroomError):
    code = "NOT_FOUND"
    http_status = 404


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id):
        super().__init__(f"Product {product_id} not found", details={"product_id": product_id})


class UnitNotFoundError(NotFoundError):
    def __init__(self, product_id, unit: str):
        super().__init__(
            f"Unit {unit!r} is not defined for product {product_id}",
            details={"product_id": product_id, "unit": unit},
        )


class InsufficientStockError(StockroomError):
    code = "INSUFFICIENT_STOCK"
    http_status = 409

    def __init__(self, product_id, product_name: str, required: Decimal, available: Decimal):
        from .numeric import quantity_str

        super().__init__(
            f"Insufficient stock for {product_name}: "
            f"required {quantity_str(required)}, available {quantity_str(available)}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "required": quantity_str(required),
                "available": quantity_str(available),
            },
        )


class InvalidQuantityError(StockroomError):
    code = "INVALID_QUANTITY"


class CapExceededError(StockroomError):
    code = "CAP_EXCEEDED"
    http_status = 409

    def __init__(self, product_id, product_name: str, remaining: Decimal, requested: Decimal):
        from .numeric import quantity_str

        super().__init__(
            f"Return quantity for {product_name} exceeds what remains returnable: "
            f"remaining {quantity_str(remaining)}, requested {quantity_str(requested)}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "remaining": quantity_str(remaining),
                "requested": quantity_str(requested),
            },
        )


class InvalidStateError(StockroomError):
    """Document is not in a status that permits the operation."""

    code = "INVALID_STATE"
    http_status = 409


class ConflictError(StockroomError):
    """Duplicate key or a delete blocked by references."""

    code = "CONFLICT"
    http_status = 409
