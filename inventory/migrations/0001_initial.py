import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("core", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("sku", models.CharField(max_length=64)),
                ("barcode", models.CharField(blank=True, max_length=128, null=True)),
                ("name", models.CharField(max_length=255)),
                ("unit", models.CharField(blank=True, default="", max_length=32)),
                ("minimum_quantity", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("branch", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="core.branch")),
            ],
            options={
                "unique_together": {("branch", "sku")},
                "indexes": [
                    models.Index(fields=["branch", "barcode"], name="product_branch_barcode_idx"),
                    models.Index(fields=["branch", "is_active"], name="product_branch_active_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Warehouse",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("branch", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="core.branch")),
            ],
            options={
                "unique_together": {("branch", "name")},
                "indexes": [
                    models.Index(fields=["branch", "is_active"], name="warehouse_branch_active_idx"),
                    models.Index(fields=["is_active", "created_at"], name="warehouse_active_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockMove",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("direction", models.CharField(choices=[("in", "In"), ("out", "Out")], max_length=8)),
                ("quantity", models.DecimalField(decimal_places=2, max_digits=12)),
                ("reason", models.CharField(max_length=255)),
                (
                    "reference_type",
                    models.CharField(
                        choices=[("manual", "Manual"), ("api_sync", "API sync"), ("transfer", "Transfer"), ("seed", "Seed")],
                        default="manual",
                        max_length=32,
                    ),
                ),
                ("reference_id", models.UUIDField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("branch", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="core.branch")),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="stock_moves", to="inventory.product"
                    ),
                ),
                ("warehouse", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="inventory.warehouse")),
                (
                    "user",
                    models.ForeignKey(
                        blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["product", "warehouse", "branch"], name="stockmove_scope_idx"),
                    models.Index(fields=["warehouse", "product", "created_at"], name="stockmove_wh_product_idx"),
                    models.Index(fields=["branch", "created_at"], name="stockmove_branch_created_idx"),
                    models.Index(fields=["reference_type", "reference_id"], name="stockmove_reference_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("quantity__gt", 0)), name="stockmove_quantity_positive"),
                    models.CheckConstraint(
                        condition=models.Q(("direction__in", ["in", "out"])), name="stockmove_direction_valid"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockTransfer",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("reference", models.CharField(max_length=64)),
                (
                    "status",
                    models.CharField(
                        choices=[("draft", "Draft"), ("approved", "Approved"), ("completed", "Completed")],
                        default="draft",
                        max_length=16,
                    ),
                ),
                ("requires_supervisor_approval", models.BooleanField(default=False)),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "approved_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="approved_stock_transfers",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                ("branch", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="core.branch")),
                (
                    "destination_warehouse",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="incoming_transfers",
                        to="inventory.warehouse",
                    ),
                ),
                (
                    "source_warehouse",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="outgoing_transfers",
                        to="inventory.warehouse",
                    ),
                ),
            ],
            options={
                "unique_together": {("branch", "reference")},
                "indexes": [
                    models.Index(fields=["branch", "status", "created_at"], name="transfer_branch_status_idx"),
                    models.Index(fields=["source_warehouse", "destination_warehouse"], name="transfer_route_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockTransferLine",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("quantity", models.DecimalField(decimal_places=2, max_digits=12)),
                ("product", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="inventory.product")),
                (
                    "transfer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="lines", to="inventory.stocktransfer"
                    ),
                ),
            ],
            options={
                "unique_together": {("transfer", "product")},
                "indexes": [
                    models.Index(fields=["transfer"], name="transferline_transfer_idx"),
                    models.Index(fields=["product"], name="transferline_product_idx"),
                ],
            },
        ),
    ]
