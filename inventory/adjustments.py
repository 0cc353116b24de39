"""
Stock adjustments: single-item processing and bulk coordination.

A single adjustment resolves the product and the warehouse, derives the
current balance, computes the movement needed to reach the requested state and
appends at most one ledger row. Bulk adjustment runs the same steps per item
and collects results instead of raising, so one bad item never blocks the rest.
"""

import logging
import uuid
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any

from django.db import DatabaseError, transaction

from inventory.balances import ZERO, current_stock
from inventory.exceptions import InventoryError, MissingProductIdentifier, NoWarehouseAvailable, ProductNotFound
from inventory.ledger import record_movement
from inventory.models import Product, StockMove
from inventory.warehouses import WarehouseResolver
from integrations.models import ProductStoreMapping
from integrations.scoping import StockScope

logger = logging.getLogger("inventory")

SET = "set"
ADJUSTMENT_DIRECTIONS = (StockMove.Direction.IN, StockMove.Direction.OUT, SET)


@dataclass(frozen=True)
class AdjustmentRequest:
    direction: str
    quantity: Decimal
    product_id: Any = None
    external_id: str | None = None
    warehouse_id: Any = None
    reason: str | None = None

    @property
    def identifier(self):
        if self.product_id not in (None, ""):
            return str(self.product_id)
        return self.external_id or None


@dataclass(frozen=True)
class AdjustmentResult:
    product_id: Any
    sku: str
    old_quantity: Decimal
    new_quantity: Decimal
    warehouse_id: Any = None
    branch_id: Any = None
    movement: StockMove | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "product_id": str(self.product_id),
            "sku": self.sku,
            "warehouse_id": str(self.warehouse_id) if self.warehouse_id else None,
            "old_quantity": str(self.old_quantity),
            "new_quantity": str(self.new_quantity),
            "movement_id": str(self.movement.id) if self.movement else None,
        }


@dataclass(frozen=True)
class BulkFailure:
    identifier: Any
    error: str
    code: str = "inventory_error"

    def as_dict(self) -> dict[str, Any]:
        return {"identifier": self.identifier, "error": self.error, "code": self.code}


@dataclass
class BulkAdjustmentResult:
    success: list[AdjustmentResult] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": [item.as_dict() for item in self.success],
            "failed": [item.as_dict() for item in self.failed],
        }


def resolve_product(request: AdjustmentRequest, scope: StockScope) -> Product:
    """Find the product by internal id (branch scoped) or by the store's external id."""
    product = None

    if request.product_id not in (None, ""):
        try:
            product_id = uuid.UUID(str(request.product_id))
        except ValueError:
            raise ProductNotFound()
        products = Product.objects.select_related("branch")
        if scope.branch_id:
            products = products.filter(branch_id=scope.branch_id)
        product = products.filter(id=product_id).first()
    elif request.external_id:
        if scope.store is not None:
            mapping = (
                ProductStoreMapping.objects.select_related("product__branch")
                .filter(store=scope.store, external_id=request.external_id)
                .first()
            )
            product = mapping.product if mapping else None
    else:
        raise MissingProductIdentifier()

    if product is None:
        raise ProductNotFound()
    return product


def compute_target(old_quantity: Decimal, direction: str, requested: Decimal):
    """Return (movement direction, applied quantity, new quantity)."""
    requested = Decimal(requested)
    if direction == SET:
        new_quantity = requested
        delta = new_quantity - old_quantity
        movement_direction = StockMove.Direction.IN if delta >= 0 else StockMove.Direction.OUT
        return movement_direction, abs(delta), new_quantity

    applied = abs(requested)
    if direction == StockMove.Direction.IN:
        return StockMove.Direction.IN, applied, old_quantity + applied
    return StockMove.Direction.OUT, applied, old_quantity - applied


class StockAdjustmentProcessor:
    default_reason = "API stock update"

    def __init__(self, resolver: WarehouseResolver | None = None, reference_type=StockMove.ReferenceType.API_SYNC):
        self.resolver = resolver or WarehouseResolver()
        self.reference_type = reference_type

    def adjust(self, request: AdjustmentRequest, scope: StockScope | None = None, *, user=None, default_reason=None) -> AdjustmentResult:
        scope = scope or StockScope.unscoped()
        product = resolve_product(request, scope)
        return self.apply(product, request, user=user, default_reason=default_reason)

    def apply(self, product: Product, request: AdjustmentRequest, *, user=None, default_reason=None) -> AdjustmentResult:
        warehouse_id = self._resolve_warehouse(request.warehouse_id, product)

        old_quantity = current_stock(product.id, warehouse_id, product.branch_id)
        direction, applied, new_quantity = compute_target(old_quantity, request.direction, request.quantity)

        movement = None
        if applied > 0:
            movement = record_movement(
                product=product,
                warehouse_id=warehouse_id,
                branch_id=product.branch_id,
                direction=direction,
                quantity=applied,
                reason=request.reason or default_reason or self.default_reason,
                reference_type=self.reference_type,
                user=user,
            )

        logger.info(
            "stock.adjust",
            extra={
                "product_id": str(product.id),
                "warehouse_id": str(warehouse_id),
                "direction": request.direction,
                "quantity": str(applied),
                "old_quantity": str(old_quantity),
                "new_quantity": str(new_quantity),
            },
        )
        # The ledger keeps the true signed balance; only the reported value is floored.
        return AdjustmentResult(
            product_id=product.id,
            sku=product.sku,
            old_quantity=old_quantity,
            new_quantity=max(new_quantity, ZERO),
            warehouse_id=warehouse_id,
            branch_id=product.branch_id,
            movement=movement,
        )

    def _resolve_warehouse(self, preferred_id, product: Product):
        # A caller-supplied id is taken as-is; an unknown id fails at the
        # foreign key when the movement is written (LedgerWriteError).
        warehouse_id = self.resolver.resolve(preferred_id, product.branch_id)
        if warehouse_id is None:
            raise NoWarehouseAvailable()
        return warehouse_id


class BulkAdjustmentCoordinator:
    default_reason = "API bulk stock update"

    def __init__(self, processor: StockAdjustmentProcessor | None = None):
        self.processor = processor or StockAdjustmentProcessor()

    def adjust_many(self, items, scope: StockScope | None = None, *, default_warehouse_id=None, user=None) -> BulkAdjustmentResult:
        scope = scope or StockScope.unscoped()
        result = BulkAdjustmentResult()

        for item in items:
            if item.warehouse_id in (None, "") and default_warehouse_id:
                item = replace(item, warehouse_id=default_warehouse_id)

            try:
                with transaction.atomic():
                    outcome = self.processor.adjust(item, scope, user=user, default_reason=self.default_reason)
            except InventoryError as exc:
                self._record_failure(result, item, exc.message, exc.code)
                continue
            except DatabaseError as exc:
                logger.exception("stock.bulk_item_failed", extra={"identifier": item.identifier})
                self._record_failure(result, item, str(exc), "storage_error")
                continue

            result.success.append(outcome)

        return result

    def _record_failure(self, result, item, message, code):
        logger.warning("stock.bulk_item_rejected", extra={"identifier": item.identifier, "error": message})
        result.failed.append(BulkFailure(identifier=item.identifier, error=message, code=code))
