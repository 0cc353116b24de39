import logging

from django.db import transaction
from django.utils import timezone

from core.models import User
from inventory.balances import current_stock
from inventory.exceptions import InsufficientStock, InvalidTransferState
from inventory.ledger import record_movement
from inventory.models import StockMove, StockTransfer

logger = logging.getLogger("inventory")


def find_transfer_shortages(transfer):
    shortages = []
    for line in transfer.lines.select_related("product"):
        available = current_stock(line.product_id, transfer.source_warehouse_id, transfer.branch_id)
        if available < line.quantity:
            shortages.append(
                {
                    "product_id": str(line.product_id),
                    "product_name": line.product.name,
                    "available": str(available),
                    "required": str(line.quantity),
                }
            )
    return shortages


def can_approve(user, transfer):
    if not transfer.requires_supervisor_approval:
        return True
    if getattr(user, "is_superuser", False):
        return True
    return getattr(user, "role", None) in [User.Role.SUPERVISOR, User.Role.ADMIN]


def approve_transfer(transfer, user):
    if transfer.status != StockTransfer.Status.DRAFT:
        raise InvalidTransferState("Only draft transfers can be approved.")
    if not can_approve(user, transfer):
        raise InvalidTransferState("Supervisor approval is required for this transfer.")

    transfer.status = StockTransfer.Status.APPROVED
    transfer.approved_by = user
    transfer.approved_at = timezone.now()
    transfer.save(update_fields=["status", "approved_by", "approved_at", "updated_at"])
    logger.info("stock.transfer_approved", extra={"branch_id": str(transfer.branch_id), "identifier": transfer.reference})
    return transfer


def complete_transfer(transfer, user=None):
    """
    Post an approved transfer to the ledger.

    Each line becomes an ``out`` movement at the source and an ``in`` movement at
    the destination. Either every movement and the status change commit, or none do.
    """
    if transfer.status != StockTransfer.Status.APPROVED:
        raise InvalidTransferState("Only approved transfers can be completed.")

    shortages = find_transfer_shortages(transfer)
    if shortages:
        raise InsufficientStock(errors={"shortages": shortages})

    movements = []
    reason = f"Transfer {transfer.reference}"
    with transaction.atomic():
        for line in transfer.lines.select_related("product"):
            for warehouse_id, direction in (
                (transfer.source_warehouse_id, StockMove.Direction.OUT),
                (transfer.destination_warehouse_id, StockMove.Direction.IN),
            ):
                movements.append(
                    record_movement(
                        product=line.product,
                        warehouse_id=warehouse_id,
                        branch_id=transfer.branch_id,
                        direction=direction,
                        quantity=line.quantity,
                        reason=reason,
                        reference_type=StockMove.ReferenceType.TRANSFER,
                        reference_id=transfer.id,
                        user=user,
                    )
                )

        transfer.status = StockTransfer.Status.COMPLETED
        transfer.completed_at = timezone.now()
        transfer.save(update_fields=["status", "completed_at", "updated_at"])

    logger.info(
        "stock.transfer_completed",
        extra={"branch_id": str(transfer.branch_id), "identifier": transfer.reference, "quantity": str(len(movements))},
    )
    return movements
