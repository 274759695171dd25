# Overview: Error taxonomy shared by every engine operation.

"""
Engine errors.

Every business rejection raised by the services is an EngineError subclass
with typed attributes. The HTTP layer (not part of this package) maps
status_code to a 4xx response; anything else escaping a service is an
unexpected store failure (5xx).
"""

from __future__ import annotations

from decimal import Decimal


class EngineError(Exception):
    """Base class for recoverable engine errors."""

    status_code = 400
    code = "ENGINE_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class NotFoundError(EngineError):
    """Product, sale, unit or company absent (or outside the caller's company)."""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id=None, message: str | None = None):
        if message is None:
            message = f"{entity} {entity_id} not found" if entity_id is not None else f"{entity} not found"
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"entity": self.entity, "entity_id": self.entity_id})
        return data


class InvalidStateError(EngineError):
    """Request is well-formed but not valid for the current product/sale state."""

    status_code = 422
    code = "INVALID_STATE"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["field"] = self.field
        return data


class InsufficientStockError(EngineError):
    """Requested quantity exceeds what is available."""

    status_code = 409
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: int, requested, available, message: str | None = None):
        requested = Decimal(requested)
        available = Decimal(available)
        if message is None:
            message = (
                f"Insufficient stock for product {product_id}. "
                f"Available: {available.normalize():f}, requested: {requested.normalize():f}"
            )
        super().__init__(message)
        self.product_id = product_id
        self.requested = requested
        self.available = available

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "product_id": self.product_id,
            "requested": str(self.requested),
            "available": str(self.available),
        })
        return data


class ConflictError(EngineError):
    """Unit already sold, or barcode already issued within the company."""

    status_code = 409
    code = "CONFLICT"

    def __init__(self, message: str, unit_id: int | None = None, barcode: str | None = None):
        super().__init__(message)
        self.unit_id = unit_id
        self.barcode = barcode

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"unit_id": self.unit_id, "barcode": self.barcode})
        return data
