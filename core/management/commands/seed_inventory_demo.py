from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from core.models import Branch, SystemSetting
from core.settings_provider import set_system_setting
from integrations.models import ProductStoreMapping, Store
from inventory.balances import current_stock
from inventory.ledger import record_movement
from inventory.models import Product, StockMove, Warehouse

DEMO_PRODUCTS = [
    ("SKU-1001", "Espresso Beans 1kg", Decimal("10"), Decimal("40")),
    ("SKU-1002", "Oat Milk 1L", Decimal("24"), Decimal("18")),
    ("SKU-1003", "Paper Cups (50)", Decimal("5"), Decimal("120")),
]


class Command(BaseCommand):
    help = "Seed demo branch, users, warehouses, products, a store and opening stock for local development."

    @transaction.atomic
    def handle(self, *args, **options):
        User = get_user_model()

        branch, _ = Branch.objects.get_or_create(
            code="MAIN",
            defaults={"name": "Main Branch", "timezone": "UTC", "is_active": True},
        )

        credentials = []
        for username, role, is_superuser in [
            ("admin", User.Role.ADMIN, True),
            ("supervisor", User.Role.SUPERVISOR, False),
            ("clerk", User.Role.CLERK, False),
        ]:
            user, created = User.objects.get_or_create(
                username=username,
                defaults={
                    "email": f"{username}@example.com",
                    "role": role,
                    "branch": branch,
                    "is_staff": is_superuser,
                    "is_superuser": is_superuser,
                    "is_active": True,
                },
            )
            if created:
                user.set_password(f"{username}1234")
                user.save(update_fields=["password"])
            credentials.append(f"{username}/{username}1234")

        warehouse_main, _ = Warehouse.objects.get_or_create(branch=branch, name="Main Warehouse", defaults={"is_active": True})
        Warehouse.objects.get_or_create(branch=branch, name="Overflow Warehouse", defaults={"is_active": True})
        set_system_setting(
            SystemSetting.DEFAULT_WAREHOUSE_ID,
            str(warehouse_main.id),
            description="Warehouse used when a stock update does not name one.",
        )

        store = Store.objects.filter(branch=branch, name="Demo Webshop").first()
        raw_key = None
        if store is None:
            store = Store(branch=branch, name="Demo Webshop")
            raw_key = store.set_new_api_key()
            store.save()

        for sku, name, minimum, opening in DEMO_PRODUCTS:
            product, _ = Product.objects.get_or_create(
                branch=branch,
                sku=sku,
                defaults={"name": name, "minimum_quantity": minimum, "unit": "pcs"},
            )
            ProductStoreMapping.objects.get_or_create(store=store, external_id=f"web-{sku.lower()}", defaults={"product": product})

            # Re-running only tops up to the opening balance.
            missing = opening - current_stock(product.id, warehouse_main.id, branch.id)
            if missing > 0:
                record_movement(
                    product=product,
                    warehouse_id=warehouse_main.id,
                    branch_id=branch.id,
                    direction=StockMove.Direction.IN,
                    quantity=missing,
                    reason="Opening balance",
                    reference_type=StockMove.ReferenceType.SEED,
                )

        self.stdout.write(self.style.SUCCESS("Inventory demo data seeded successfully."))
        self.stdout.write(f"Credentials: {', '.join(credentials)}")
        self.stdout.write(f"Branch: {branch.code} | Default warehouse: {warehouse_main.id}")
        if raw_key:
            self.stdout.write(f"Store '{store.name}' API key (shown once): {raw_key}")
        else:
            self.stdout.write(f"Store '{store.name}' already exists; rotate its key via the admin API to get a new one.")
