"""
Inventory domain errors.

Every error carries a stable ``code`` for programmatic handling, a human
readable ``message``, the HTTP ``status_code`` the API layer renders it with
and optional structured ``errors``. Bulk adjustment records ``message`` per
failed item instead of raising.
"""

from typing import Any

from rest_framework import status


class InventoryError(Exception):
    code = "inventory_error"
    default_message = "Inventory operation failed."
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str | None = None, *, errors: Any = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)

    def as_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "errors": self.errors}


class ProductNotFound(InventoryError):
    code = "product_not_found"
    default_message = "Product not found"
    status_code = status.HTTP_404_NOT_FOUND


class MissingProductIdentifier(ProductNotFound):
    default_message = "Product identifier is required"


class NoWarehouseAvailable(InventoryError):
    code = "validation_error"
    default_message = "No warehouse available for stock movement"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str | None = None, *, errors: Any = None):
        message = message or self.default_message
        super().__init__(message, errors=errors or {"warehouse_id": [message]})


class InvalidQuantity(InventoryError):
    code = "invalid_quantity"
    default_message = "Movement quantity must be greater than zero."


class LedgerWriteError(InventoryError):
    code = "storage_error"
    default_message = "Stock movement could not be recorded."
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ImmutableMovementError(InventoryError):
    code = "immutable_movement"
    default_message = "Stock movements are immutable; record an offsetting movement instead."
    status_code = status.HTTP_409_CONFLICT


class InsufficientStock(InventoryError):
    code = "insufficient_stock"
    default_message = "Insufficient source stock for transfer."


class InvalidTransferState(InventoryError):
    code = "invalid_transfer_state"
    default_message = "Transfer is not in a valid state for this operation."
