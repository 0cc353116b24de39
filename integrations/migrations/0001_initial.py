import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("core", "0001_initial"),
        ("inventory", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Store",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("key_prefix", models.CharField(db_index=True, max_length=8)),
                ("key_hash", models.CharField(max_length=64, unique=True)),
                ("is_active", models.BooleanField(default=True)),
                ("last_used_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "branch",
                    models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="stores", to="core.branch"),
                ),
            ],
            options={
                "unique_together": {("branch", "name")},
                "indexes": [models.Index(fields=["branch", "is_active"], name="store_branch_active_idx")],
            },
        ),
        migrations.CreateModel(
            name="ProductStoreMapping",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("external_id", models.CharField(max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="store_mappings", to="inventory.product"
                    ),
                ),
                (
                    "store",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="product_mappings",
                        to="integrations.store",
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["product"], name="storemapping_product_idx")],
                "constraints": [
                    models.UniqueConstraint(fields=("store", "external_id"), name="uniq_store_external_id"),
                ],
            },
        ),
    ]
