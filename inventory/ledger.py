"""
Stock movement ledger: the append-only source of truth for stock levels.

Movements are only ever inserted. Each insert runs in its own atomic block so
a storage failure rolls back that single row and nothing else.
"""

import logging
from decimal import Decimal

from django.db import DatabaseError, transaction

from inventory.exceptions import InvalidQuantity, LedgerWriteError
from inventory.models import StockMove

logger = logging.getLogger("inventory")


def record_movement(
    *,
    product,
    warehouse_id,
    branch_id,
    direction,
    quantity,
    reason,
    reference_type=StockMove.ReferenceType.MANUAL,
    reference_id=None,
    user=None,
):
    quantity = Decimal(quantity)
    if quantity <= 0:
        raise InvalidQuantity(errors={"quantity": [str(quantity)]})
    if direction not in StockMove.Direction.values:
        raise InvalidQuantity(f"Unknown movement direction: {direction}")

    try:
        with transaction.atomic():
            move = StockMove.objects.create(
                product=product,
                warehouse_id=warehouse_id,
                branch_id=branch_id,
                direction=direction,
                quantity=quantity,
                reason=reason,
                reference_type=reference_type,
                reference_id=reference_id,
                user=user,
            )
    except DatabaseError as exc:
        logger.error(
            "stock.movement_write_failed",
            extra={
                "product_id": str(product.pk),
                "warehouse_id": str(warehouse_id),
                "direction": direction,
                "quantity": str(quantity),
                "error": str(exc),
            },
        )
        raise LedgerWriteError(f"Stock movement could not be recorded: {exc}") from exc

    logger.info(
        "stock.movement_recorded",
        extra={
            "product_id": str(product.pk),
            "warehouse_id": str(warehouse_id),
            "branch_id": str(branch_id),
            "direction": direction,
            "quantity": str(quantity),
        },
    )
    return move


def movement_history(
    branch_id=None,
    product_id=None,
    warehouse_id=None,
    direction=None,
    start_date=None,
    end_date=None,
):
    """Movements newest first; dates filter on the calendar day of creation, inclusive."""
    qs = StockMove.objects.select_related("product", "warehouse")

    if branch_id:
        qs = qs.filter(branch_id=branch_id)
    if product_id:
        qs = qs.filter(product_id=product_id)
    if warehouse_id:
        qs = qs.filter(warehouse_id=warehouse_id)
    if direction:
        qs = qs.filter(direction=direction)
    if start_date:
        qs = qs.filter(created_at__date__gte=start_date)
    if end_date:
        qs = qs.filter(created_at__date__lte=end_date)

    return qs.order_by("-created_at", "-id")
