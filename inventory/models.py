import uuid

from django.conf import settings
from django.db import models

from core.models import Branch
from inventory.exceptions import ImmutableMovementError, InvalidQuantity


class Product(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT)
    sku = models.CharField(max_length=64)
    barcode = models.CharField(max_length=128, null=True, blank=True)
    name = models.CharField(max_length=255)
    unit = models.CharField(max_length=32, blank=True, default="")
    minimum_quantity = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("branch", "sku")
        indexes = [
            models.Index(fields=["branch", "barcode"], name="product_branch_barcode_idx"),
            models.Index(fields=["branch", "is_active"], name="product_branch_active_idx"),
        ]

    def __str__(self):
        return f"{self.sku} {self.name}"


class Warehouse(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT)
    name = models.CharField(max_length=255)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("branch", "name")
        indexes = [
            models.Index(fields=["branch", "is_active"], name="warehouse_branch_active_idx"),
            models.Index(fields=["is_active", "created_at"], name="warehouse_active_created_idx"),
        ]

    def __str__(self):
        return self.name


class StockMove(models.Model):
    """One immutable ledger entry. Balances are always derived from these rows."""

    class Direction(models.TextChoices):
        IN = "in", "In"
        OUT = "out", "Out"

    class ReferenceType(models.TextChoices):
        MANUAL = "manual", "Manual"
        API_SYNC = "api_sync", "API sync"
        TRANSFER = "transfer", "Transfer"
        SEED = "seed", "Seed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT)
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="stock_moves")
    direction = models.CharField(max_length=8, choices=Direction.choices)
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    reason = models.CharField(max_length=255)
    reference_type = models.CharField(max_length=32, choices=ReferenceType.choices, default=ReferenceType.MANUAL)
    reference_id = models.UUIDField(null=True, blank=True)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["product", "warehouse", "branch"], name="stockmove_scope_idx"),
            models.Index(fields=["warehouse", "product", "created_at"], name="stockmove_wh_product_idx"),
            models.Index(fields=["branch", "created_at"], name="stockmove_branch_created_idx"),
            models.Index(fields=["reference_type", "reference_id"], name="stockmove_reference_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gt=0), name="stockmove_quantity_positive"),
            models.CheckConstraint(condition=models.Q(direction__in=["in", "out"]), name="stockmove_direction_valid"),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableMovementError()
        if self.quantity is None or self.quantity <= 0:
            raise InvalidQuantity(errors={"quantity": [str(self.quantity)]})
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableMovementError()

    @property
    def signed_quantity(self):
        return self.quantity if self.direction == self.Direction.IN else -self.quantity

    def __str__(self):
        sign = "+" if self.direction == self.Direction.IN else "-"
        return f"{sign}{self.quantity} | {self.reason}"


class StockTransfer(models.Model):
    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        APPROVED = "approved", "Approved"
        COMPLETED = "completed", "Completed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT)
    source_warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name="outgoing_transfers")
    destination_warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name="incoming_transfers")
    reference = models.CharField(max_length=64)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.DRAFT)
    requires_supervisor_approval = models.BooleanField(default=False)
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="approved_stock_transfers",
        null=True,
        blank=True,
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("branch", "reference")
        indexes = [
            models.Index(fields=["branch", "status", "created_at"], name="transfer_branch_status_idx"),
            models.Index(fields=["source_warehouse", "destination_warehouse"], name="transfer_route_idx"),
        ]


class StockTransferLine(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    transfer = models.ForeignKey(StockTransfer, on_delete=models.CASCADE, related_name="lines")
    product = models.ForeignKey(Product, on_delete=models.PROTECT)
    quantity = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        unique_together = ("transfer", "product")
        indexes = [
            models.Index(fields=["transfer"], name="transferline_transfer_idx"),
            models.Index(fields=["product"], name="transferline_product_idx"),
        ]
