import uuid
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.test import TestCase, TransactionTestCase
from django.utils import timezone
from rest_framework.test import APIClient

from core.models import AuditLog, Branch, SystemSetting
from core.settings_provider import StaticSettingsProvider, set_system_setting
from integrations.scoping import StockScope
from inventory.adjustments import AdjustmentRequest, BulkAdjustmentCoordinator, StockAdjustmentProcessor
from inventory.balances import current_stock, negative_balances, stock_levels
from inventory.exceptions import (
    ImmutableMovementError,
    InvalidQuantity,
    LedgerWriteError,
    MissingProductIdentifier,
    NoWarehouseAvailable,
    ProductNotFound,
)
from inventory.ledger import movement_history, record_movement
from inventory.models import Product, StockMove, StockTransfer, Warehouse
from inventory.warehouses import WarehouseResolver


class InventoryFixtureMixin:
    def create_fixtures(self):
        self.user_model = get_user_model()
        self.branch_a = Branch.objects.create(code="A", name="Branch A")
        self.branch_b = Branch.objects.create(code="B", name="Branch B")

        self.warehouse_a = Warehouse.objects.create(branch=self.branch_a, name="A Main")
        self.warehouse_b = Warehouse.objects.create(branch=self.branch_b, name="B Main")
        self.set_created_at(self.warehouse_a, minutes_ago=30)
        self.set_created_at(self.warehouse_b, minutes_ago=20)

        self.product_a = Product.objects.create(branch=self.branch_a, sku="A-001", name="A Product", minimum_quantity=Decimal("10"))
        self.product_a2 = Product.objects.create(branch=self.branch_a, sku="A-002", name="A Product 2", minimum_quantity=Decimal("10"))
        self.product_b = Product.objects.create(branch=self.branch_b, sku="B-001", name="B Product")

    def set_created_at(self, warehouse, minutes_ago):
        Warehouse.objects.filter(id=warehouse.id).update(created_at=timezone.now() - timedelta(minutes=minutes_ago))
        warehouse.refresh_from_db()

    def move(self, product, warehouse, direction, quantity):
        return record_movement(
            product=product,
            warehouse_id=warehouse.id,
            branch_id=product.branch_id,
            direction=direction,
            quantity=Decimal(quantity),
            reason="test",
        )


class LedgerBalanceTests(InventoryFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixtures()

    def test_balance_is_sum_of_in_minus_out(self):
        self.assertEqual(current_stock(self.product_a.id), Decimal("0"))

        self.move(self.product_a, self.warehouse_a, "out", "3")
        self.move(self.product_a, self.warehouse_a, "in", "10")
        self.move(self.product_a, self.warehouse_a, "in", "5")

        self.assertEqual(current_stock(self.product_a.id, self.warehouse_a.id, self.branch_a.id), Decimal("12"))

    def test_balance_filters_are_independent(self):
        other_warehouse = Warehouse.objects.create(branch=self.branch_a, name="A Overflow")
        self.move(self.product_a, self.warehouse_a, "in", "4")
        self.move(self.product_a, other_warehouse, "in", "6")

        self.assertEqual(current_stock(self.product_a.id), Decimal("10"))
        self.assertEqual(current_stock(self.product_a.id, warehouse_id=other_warehouse.id), Decimal("6"))
        self.assertEqual(current_stock(self.product_a.id, branch_id=self.branch_b.id), Decimal("0"))

    def test_non_positive_quantity_is_rejected_without_writing(self):
        with self.assertRaises(InvalidQuantity):
            self.move(self.product_a, self.warehouse_a, "in", "0")
        with self.assertRaises(InvalidQuantity):
            self.move(self.product_a, self.warehouse_a, "in", "-2")

        self.assertFalse(StockMove.objects.exists())

    def test_movements_are_immutable(self):
        movement = self.move(self.product_a, self.warehouse_a, "in", "4")

        movement.reason = "edited"
        with self.assertRaises(ImmutableMovementError):
            movement.save()
        with self.assertRaises(ImmutableMovementError):
            movement.delete()

        movement.refresh_from_db()
        self.assertEqual(movement.reason, "test")

    def test_storage_failure_is_wrapped(self):
        with patch.object(StockMove.objects, "create", side_effect=DatabaseError("disk full")):
            with self.assertRaises(LedgerWriteError) as ctx:
                self.move(self.product_a, self.warehouse_a, "in", "4")

        self.assertEqual(ctx.exception.code, "storage_error")
        self.assertEqual(ctx.exception.status_code, 500)

    def test_movement_history_filters_and_orders_newest_first(self):
        older = self.move(self.product_a, self.warehouse_a, "in", "4")
        newer = self.move(self.product_a, self.warehouse_a, "out", "1")
        self.move(self.product_a2, self.warehouse_a, "in", "2")
        StockMove.objects.filter(id=older.id).update(created_at=timezone.now() - timedelta(days=3))

        history = list(movement_history(product_id=self.product_a.id))
        self.assertEqual([item.id for item in history], [newer.id, older.id])

        recent = movement_history(product_id=self.product_a.id, start_date=timezone.localdate() - timedelta(days=1))
        self.assertEqual([item.id for item in recent], [newer.id])

        outbound = movement_history(branch_id=self.branch_a.id, direction="out")
        self.assertEqual([item.id for item in outbound], [newer.id])

    def test_negative_balances_are_reported(self):
        self.move(self.product_a, self.warehouse_a, "out", "3")
        self.move(self.product_a2, self.warehouse_a, "in", "3")

        rows = list(negative_balances(branch_id=self.branch_a.id))

        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["product_id"], self.product_a.id)
        self.assertEqual(Decimal(rows[0]["balance"]), Decimal("-3"))


class StockLevelTests(InventoryFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixtures()

    def test_low_stock_keeps_products_at_or_below_minimum(self):
        self.move(self.product_a, self.warehouse_a, "in", "8")
        self.move(self.product_a2, self.warehouse_a, "in", "12")

        skus = [product.sku for product in stock_levels(branch_id=self.branch_a.id, low_stock=True)]

        self.assertEqual(skus, ["A-001"])

    def test_warehouse_filter_lists_only_products_stocked_there(self):
        overflow = Warehouse.objects.create(branch=self.branch_a, name="A Overflow")
        self.move(self.product_a, self.warehouse_a, "in", "8")
        self.move(self.product_a2, overflow, "in", "3")
        self.move(self.product_a2, self.warehouse_a, "in", "20")

        empty = Warehouse.objects.create(branch=self.branch_a, name="A Empty")
        self.assertEqual(list(stock_levels(branch_id=self.branch_a.id, warehouse_id=empty.id, low_stock=True)), [])

        levels = {product.sku: product.current_quantity for product in stock_levels(branch_id=self.branch_a.id, warehouse_id=overflow.id)}
        self.assertEqual(levels, {"A-002": Decimal("3")})


class WarehouseResolverTests(InventoryFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixtures()

    def test_preferred_id_wins_without_existence_check(self):
        preferred = uuid.uuid4()
        resolver = WarehouseResolver(StaticSettingsProvider({SystemSetting.DEFAULT_WAREHOUSE_ID: str(self.warehouse_b.id)}))

        self.assertEqual(resolver.resolve(preferred, self.branch_a.id), preferred)

    def test_configured_default_beats_branch_warehouse(self):
        set_system_setting(SystemSetting.DEFAULT_WAREHOUSE_ID, self.warehouse_b.id)

        self.assertEqual(WarehouseResolver().resolve(None, self.branch_a.id), self.warehouse_b.id)

    def test_blank_or_malformed_default_is_skipped(self):
        set_system_setting(SystemSetting.DEFAULT_WAREHOUSE_ID, "")
        self.assertEqual(WarehouseResolver().resolve(None, self.branch_b.id), self.warehouse_b.id)

        resolver = WarehouseResolver(StaticSettingsProvider({SystemSetting.DEFAULT_WAREHOUSE_ID: "not-a-uuid"}))
        self.assertEqual(resolver.resolve(None, self.branch_b.id), self.warehouse_b.id)

    def test_branch_warehouse_is_oldest_active(self):
        newer = Warehouse.objects.create(branch=self.branch_a, name="A Newer")
        older = Warehouse.objects.create(branch=self.branch_a, name="A Oldest")
        self.set_created_at(older, minutes_ago=90)
        Warehouse.objects.filter(id=older.id).update(is_active=False)

        resolver = WarehouseResolver(StaticSettingsProvider())

        self.assertEqual(resolver.resolve(None, self.branch_a.id), self.warehouse_a.id)
        self.assertNotEqual(resolver.resolve(None, self.branch_a.id), newer.id)

    def test_falls_back_to_any_active_warehouse(self):
        Warehouse.objects.filter(branch=self.branch_b).update(is_active=False)
        resolver = WarehouseResolver(StaticSettingsProvider())

        self.assertEqual(resolver.resolve(None, self.branch_b.id), self.warehouse_a.id)
        self.assertEqual(resolver.resolve(), self.warehouse_a.id)

    def test_returns_none_without_active_warehouses(self):
        Warehouse.objects.update(is_active=False)

        self.assertIsNone(WarehouseResolver(StaticSettingsProvider()).resolve(None, self.branch_a.id))


class StockAdjustmentProcessorTests(InventoryFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixtures()
        self.processor = StockAdjustmentProcessor(WarehouseResolver(StaticSettingsProvider()))

    def adjust(self, direction, qty, product=None, **kwargs):
        product = product or self.product_a
        request = AdjustmentRequest(direction=direction, quantity=Decimal(qty), product_id=product.id, **kwargs)
        return self.processor.adjust(request, StockScope(branch_id=product.branch_id))

    def test_set_writes_difference_and_is_idempotent(self):
        self.adjust("in", "10")
        self.adjust("out", "3")

        first = self.adjust("set", "5")
        self.assertEqual((first.old_quantity, first.new_quantity), (Decimal("7"), Decimal("5")))
        self.assertEqual(first.movement.direction, StockMove.Direction.OUT)
        self.assertEqual(first.movement.quantity, Decimal("2"))

        second = self.adjust("set", "5")
        self.assertEqual((second.old_quantity, second.new_quantity), (Decimal("5"), Decimal("5")))
        self.assertIsNone(second.movement)
        self.assertEqual(StockMove.objects.filter(product=self.product_a).count(), 3)

    def test_relative_adjustments_accumulate(self):
        self.adjust("in", "4")
        self.adjust("in", "6")
        self.adjust("in", "10", product=self.product_a2)

        self.assertEqual(current_stock(self.product_a.id), current_stock(self.product_a2.id))
        self.assertEqual(StockMove.objects.filter(product=self.product_a).count(), 2)

    def test_movement_uses_default_reason_and_reference_type(self):
        result = self.adjust("in", "4")

        self.assertEqual(result.movement.reason, "API stock update")
        self.assertEqual(result.movement.reference_type, StockMove.ReferenceType.API_SYNC)
        self.assertEqual(result.movement.warehouse_id, self.warehouse_a.id)
        self.assertEqual(result.movement.branch_id, self.branch_a.id)

        custom = self.adjust("in", "1", reason="Cycle count")
        self.assertEqual(custom.movement.reason, "Cycle count")

    def test_zero_quantity_is_a_successful_no_op(self):
        result = self.adjust("in", "0")

        self.assertEqual(result.old_quantity, result.new_quantity)
        self.assertIsNone(result.movement)
        self.assertFalse(StockMove.objects.exists())

    def test_outbound_beyond_balance_keeps_ledger_negative_but_reports_zero(self):
        self.adjust("in", "2")

        result = self.adjust("out", "5")

        self.assertEqual(result.new_quantity, Decimal("0"))
        self.assertEqual(current_stock(self.product_a.id), Decimal("-3"))

    def test_missing_warehouse_fails_before_writing(self):
        Warehouse.objects.update(is_active=False)

        with self.assertRaises(NoWarehouseAvailable) as ctx:
            self.adjust("in", "4")

        self.assertEqual(ctx.exception.errors, {"warehouse_id": ["No warehouse available for stock movement"]})
        self.assertFalse(StockMove.objects.exists())

    def test_preferred_warehouse_is_used_as_given(self):
        result = self.adjust("in", "4", warehouse_id=self.warehouse_b.id)

        self.assertEqual(result.warehouse_id, self.warehouse_b.id)
        self.assertEqual(result.movement.warehouse_id, self.warehouse_b.id)
        self.assertEqual(result.movement.branch_id, self.branch_a.id)
        self.assertEqual(current_stock(self.product_a.id, self.warehouse_b.id), Decimal("4"))

    def test_product_lookup_respects_scope(self):
        request = AdjustmentRequest(direction="in", quantity=Decimal("1"), product_id=self.product_b.id)

        with self.assertRaises(ProductNotFound):
            self.processor.adjust(request, StockScope(branch_id=self.branch_a.id))
        with self.assertRaises(ProductNotFound):
            self.processor.adjust(AdjustmentRequest(direction="in", quantity=Decimal("1"), product_id="not-a-uuid"))
        with self.assertRaises(MissingProductIdentifier):
            self.processor.adjust(AdjustmentRequest(direction="in", quantity=Decimal("1")))

        self.assertEqual(self.processor.adjust(request, StockScope.unscoped()).product_id, self.product_b.id)


class BulkAdjustmentCoordinatorTests(InventoryFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixtures()
        self.product_a3 = Product.objects.create(branch=self.branch_a, sku="A-003", name="A Product 3")
        self.coordinator = BulkAdjustmentCoordinator(StockAdjustmentProcessor(WarehouseResolver(StaticSettingsProvider())))
        self.scope = StockScope(branch_id=self.branch_a.id)

    def request_for(self, product_id, direction="in", qty="5", **kwargs):
        return AdjustmentRequest(direction=direction, quantity=Decimal(qty), product_id=product_id, **kwargs)

    def test_missing_product_does_not_block_other_items(self):
        missing_id = uuid.uuid4()
        result = self.coordinator.adjust_many(
            [self.request_for(self.product_a.id), self.request_for(missing_id), self.request_for(self.product_a2.id)],
            self.scope,
        )

        self.assertEqual([item.product_id for item in result.success], [self.product_a.id, self.product_a2.id])
        self.assertEqual(len(result.failed), 1)
        self.assertEqual(result.failed[0].identifier, str(missing_id))
        self.assertEqual(result.failed[0].error, "Product not found")
        self.assertEqual(StockMove.objects.count(), 2)

    def test_storage_failure_is_isolated_to_its_item(self):
        original_create = StockMove.objects.create

        def flaky_create(**kwargs):
            if kwargs["product"].id == self.product_a2.id:
                raise DatabaseError("disk full")
            return original_create(**kwargs)

        with patch.object(StockMove.objects, "create", side_effect=flaky_create):
            result = self.coordinator.adjust_many(
                [self.request_for(self.product_a.id), self.request_for(self.product_a2.id), self.request_for(self.product_a3.id)],
                self.scope,
            )

        self.assertEqual([item.product_id for item in result.success], [self.product_a.id, self.product_a3.id])
        self.assertEqual(result.failed[0].identifier, str(self.product_a2.id))
        self.assertEqual(result.failed[0].code, "storage_error")
        self.assertIn("disk full", result.failed[0].error)
        self.assertEqual(current_stock(self.product_a3.id), Decimal("5"))
        self.assertEqual(current_stock(self.product_a2.id), Decimal("0"))

    def test_request_warehouse_is_the_per_item_fallback(self):
        overflow = Warehouse.objects.create(branch=self.branch_a, name="A Overflow")

        result = self.coordinator.adjust_many(
            [self.request_for(self.product_a.id), self.request_for(self.product_a2.id, warehouse_id=self.warehouse_a.id)],
            self.scope,
            default_warehouse_id=overflow.id,
        )

        self.assertEqual(result.success[0].warehouse_id, overflow.id)
        self.assertEqual(result.success[1].warehouse_id, self.warehouse_a.id)
        self.assertEqual(result.success[0].movement.reason, "API bulk stock update")

    def test_item_without_identifier_is_reported(self):
        result = self.coordinator.adjust_many([AdjustmentRequest(direction="in", quantity=Decimal("1"))], self.scope)

        self.assertEqual(result.success, [])
        self.assertIsNone(result.failed[0].identifier)
        self.assertEqual(result.failed[0].error, "Product identifier is required")

    def test_missing_warehouse_is_reported_per_item(self):
        Warehouse.objects.update(is_active=False)

        result = self.coordinator.adjust_many([self.request_for(self.product_a.id)], self.scope)

        self.assertEqual(result.failed[0].error, "No warehouse available for stock movement")
        self.assertEqual(result.failed[0].code, "validation_error")


class UnknownWarehouseTests(InventoryFixtureMixin, TransactionTestCase):
    """Foreign keys are checked at commit, so these run outside a wrapping transaction."""

    def setUp(self):
        self.create_fixtures()
        self.processor = StockAdjustmentProcessor(WarehouseResolver(StaticSettingsProvider()))
        self.scope = StockScope(branch_id=self.branch_a.id)

    def test_unknown_warehouse_fails_as_storage_error(self):
        request = AdjustmentRequest(direction="in", quantity=Decimal("4"), product_id=self.product_a.id, warehouse_id=uuid.uuid4())

        with self.assertRaises(LedgerWriteError) as ctx:
            self.processor.adjust(request, self.scope)

        self.assertEqual(ctx.exception.code, "storage_error")
        self.assertFalse(StockMove.objects.exists())

    def test_unknown_warehouse_is_isolated_in_bulk(self):
        coordinator = BulkAdjustmentCoordinator(self.processor)

        result = coordinator.adjust_many(
            [
                AdjustmentRequest(direction="in", quantity=Decimal("4"), product_id=self.product_a.id, warehouse_id=uuid.uuid4()),
                AdjustmentRequest(direction="in", quantity=Decimal("2"), product_id=self.product_a2.id),
            ],
            self.scope,
        )

        self.assertEqual([item.product_id for item in result.success], [self.product_a2.id])
        self.assertEqual(result.failed[0].identifier, str(self.product_a.id))
        self.assertEqual(result.failed[0].code, "storage_error")
        self.assertEqual(current_stock(self.product_a.id), Decimal("0"))
        self.assertEqual(current_stock(self.product_a2.id, self.warehouse_a.id), Decimal("2"))


class StockApiTests(InventoryFixtureMixin, TestCase):
    def setUp(self):
        self.client = APIClient()
        self.create_fixtures()
        self.supervisor_a = self.user_model.objects.create_user(
            username="supervisor-a",
            password="pass1234",
            branch=self.branch_a,
            role=self.user_model.Role.SUPERVISOR,
        )
        self.clerk_a = self.user_model.objects.create_user(username="clerk-a", password="pass1234", branch=self.branch_a)

    def test_adjust_returns_old_and_new_quantity(self):
        self.move(self.product_a, self.warehouse_a, "in", "10")
        self.move(self.product_a, self.warehouse_a, "out", "3")
        self.client.force_authenticate(user=self.supervisor_a)

        response = self.client.post(
            "/api/v1/inventory/stock/adjust/",
            {"product_id": str(self.product_a.id), "direction": "set", "qty": "5"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["product_id"], str(self.product_a.id))
        self.assertEqual(payload["sku"], "A-001")
        self.assertEqual(Decimal(payload["old_quantity"]), Decimal("7"))
        self.assertEqual(Decimal(payload["new_quantity"]), Decimal("5"))

        movement = StockMove.objects.get(id=payload["movement_id"])
        self.assertEqual(movement.user_id, self.supervisor_a.id)
        audit = AuditLog.objects.get(action="stock.adjust")
        self.assertEqual(audit.actor_id, self.supervisor_a.id)
        self.assertEqual(audit.branch_id, self.branch_a.id)

    def test_adjust_unknown_product_returns_not_found_envelope(self):
        self.client.force_authenticate(user=self.supervisor_a)

        response = self.client.post(
            "/api/v1/inventory/stock/adjust/",
            {"product_id": str(self.product_b.id), "direction": "in", "qty": "1"},
            format="json",
        )

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"code": "product_not_found", "message": "Product not found", "errors": None, "status": 404})

    def test_adjust_without_warehouse_returns_validation_error(self):
        Warehouse.objects.update(is_active=False)
        self.client.force_authenticate(user=self.supervisor_a)

        response = self.client.post(
            "/api/v1/inventory/stock/adjust/",
            {"product_id": str(self.product_a.id), "direction": "in", "qty": "1"},
            format="json",
        )

        self.assertEqual(response.status_code, 422)
        payload = response.json()
        self.assertEqual(payload["code"], "validation_error")
        self.assertIn("warehouse_id", payload["errors"])
        self.assertFalse(StockMove.objects.exists())

    def test_adjust_rejects_invalid_payload(self):
        self.client.force_authenticate(user=self.supervisor_a)

        bad_direction = self.client.post(
            "/api/v1/inventory/stock/adjust/",
            {"product_id": str(self.product_a.id), "direction": "sideways", "qty": "1"},
            format="json",
        )
        negative_qty = self.client.post(
            "/api/v1/inventory/stock/adjust/",
            {"product_id": str(self.product_a.id), "direction": "in", "qty": "-1"},
            format="json",
        )
        no_identifier = self.client.post("/api/v1/inventory/stock/adjust/", {"direction": "in", "qty": "1"}, format="json")

        for response in (bad_direction, negative_qty, no_identifier):
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json()["code"], "validation_error")

    def test_clerk_cannot_adjust_and_anonymous_is_rejected(self):
        payload = {"product_id": str(self.product_a.id), "direction": "in", "qty": "1"}

        anonymous = self.client.post("/api/v1/inventory/stock/adjust/", payload, format="json")
        self.assertEqual(anonymous.status_code, 401)
        self.assertEqual(anonymous.json()["code"], "not_authenticated")

        self.client.force_authenticate(user=self.clerk_a)
        clerk = self.client.post("/api/v1/inventory/stock/adjust/", payload, format="json")
        self.assertEqual(clerk.status_code, 403)
        self.assertEqual(clerk.json()["code"], "permission_denied")

    def test_user_without_branch_cannot_read_stock(self):
        orphan = self.user_model.objects.create_user(username="orphan", password="pass1234")
        self.client.force_authenticate(user=orphan)

        response = self.client.get("/api/v1/inventory/stock/")

        self.assertEqual(response.status_code, 403)

    def test_bulk_adjust_reports_success_and_failed(self):
        self.client.force_authenticate(user=self.supervisor_a)
        missing_id = str(uuid.uuid4())

        response = self.client.post(
            "/api/v1/inventory/stock/bulk-adjust/",
            {
                "warehouse_id": str(self.warehouse_a.id),
                "updates": [
                    {"product_id": str(self.product_a.id), "direction": "in", "qty": "3"},
                    {"product_id": missing_id, "direction": "in", "qty": "3"},
                    {"product_id": str(self.product_a2.id), "direction": "set", "qty": "9"},
                ],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual([item["sku"] for item in payload["success"]], ["A-001", "A-002"])
        self.assertEqual(payload["failed"], [{"identifier": missing_id, "error": "Product not found", "code": "product_not_found"}])
        self.assertEqual(current_stock(self.product_a2.id), Decimal("9"))
        self.assertTrue(AuditLog.objects.filter(action="stock.bulk_adjust", branch=self.branch_a).exists())

    def test_bulk_adjust_requires_updates(self):
        self.client.force_authenticate(user=self.supervisor_a)

        response = self.client.post("/api/v1/inventory/stock/bulk-adjust/", {"updates": []}, format="json")

        self.assertEqual(response.status_code, 400)

    def test_stock_listing_is_branch_scoped_and_clamped(self):
        self.move(self.product_a, self.warehouse_a, "out", "4")
        self.move(self.product_a2, self.warehouse_a, "in", "12")
        self.move(self.product_b, self.warehouse_b, "in", "1")
        self.client.force_authenticate(user=self.clerk_a)

        response = self.client.get("/api/v1/inventory/stock/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(sorted(payload.keys()), ["count", "next", "previous", "results"])
        levels = {item["sku"]: Decimal(item["current_quantity"]) for item in payload["results"]}
        self.assertEqual(levels, {"A-001": Decimal("0"), "A-002": Decimal("12")})

    def test_stock_listing_filters(self):
        self.move(self.product_a, self.warehouse_a, "in", "8")
        self.move(self.product_a2, self.warehouse_a, "in", "12")
        self.client.force_authenticate(user=self.clerk_a)

        low = self.client.get("/api/v1/inventory/stock/", {"low_stock": "true"})
        by_sku = self.client.get("/api/v1/inventory/stock/", {"sku": "A-002"})
        paged = self.client.get("/api/v1/inventory/stock/", {"page_size": 1})

        self.assertEqual([item["sku"] for item in low.json()["results"]], ["A-001"])
        self.assertEqual([item["sku"] for item in by_sku.json()["results"]], ["A-002"])
        self.assertEqual(paged.json()["count"], 2)
        self.assertEqual(len(paged.json()["results"]), 1)

    def test_superuser_sees_every_branch(self):
        root = self.user_model.objects.create_superuser(username="root", password="pass1234", email="root@example.com")
        self.client.force_authenticate(user=root)

        response = self.client.get("/api/v1/inventory/stock/")

        self.assertEqual({item["sku"] for item in response.json()["results"]}, {"A-001", "A-002", "B-001"})

    def test_movement_listing_filters(self):
        self.move(self.product_a, self.warehouse_a, "in", "8")
        outbound = self.move(self.product_a, self.warehouse_a, "out", "2")
        self.move(self.product_a2, self.warehouse_a, "in", "1")
        self.move(self.product_b, self.warehouse_b, "in", "1")
        self.client.force_authenticate(user=self.clerk_a)

        everything = self.client.get("/api/v1/inventory/movements/")
        filtered = self.client.get("/api/v1/inventory/movements/", {"product_id": str(self.product_a.id), "direction": "out"})
        bad_range = self.client.get("/api/v1/inventory/movements/", {"start_date": "2024-02-01", "end_date": "2024-01-01"})

        self.assertEqual(everything.json()["count"], 3)
        self.assertEqual([item["id"] for item in filtered.json()["results"]], [str(outbound.id)])
        self.assertEqual(filtered.json()["results"][0]["product_sku"], "A-001")
        self.assertEqual(bad_range.status_code, 400)


class AdminCatalogTests(InventoryFixtureMixin, TestCase):
    def setUp(self):
        self.client = APIClient()
        self.create_fixtures()
        self.admin_a = self.user_model.objects.create_user(
            username="admin-a",
            password="pass1234",
            branch=self.branch_a,
            role=self.user_model.Role.ADMIN,
        )

    def test_admin_create_product_ignores_injected_branch(self):
        self.client.force_authenticate(user=self.admin_a)

        response = self.client.post(
            "/api/v1/admin/products/",
            {"branch": str(self.branch_b.id), "sku": "A-NEW", "name": "Created Product", "minimum_quantity": "3"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        created = Product.objects.get(id=response.json()["id"])
        self.assertEqual(created.branch_id, self.branch_a.id)
        self.assertTrue(AuditLog.objects.filter(action="product.create", entity_id=created.id).exists())

    def test_admin_create_product_duplicate_sku_returns_validation_error(self):
        self.client.force_authenticate(user=self.admin_a)

        response = self.client.post("/api/v1/admin/products/", {"sku": "A-001", "name": "Duplicate"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"], {"sku": ["A product with this SKU already exists in your branch."]})

    def test_warehouse_with_movements_cannot_be_deleted(self):
        self.move(self.product_a, self.warehouse_a, "in", "1")
        self.client.force_authenticate(user=self.admin_a)

        response = self.client.delete(f"/api/v1/admin/warehouses/{self.warehouse_a.id}/")

        self.assertEqual(response.status_code, 400)
        self.assertTrue(Warehouse.objects.filter(id=self.warehouse_a.id).exists())

    def test_admin_cannot_read_other_branch_warehouse(self):
        self.client.force_authenticate(user=self.admin_a)

        response = self.client.get(f"/api/v1/admin/warehouses/{self.warehouse_b.id}/")

        self.assertEqual(response.status_code, 404)


class StockTransferFlowTests(InventoryFixtureMixin, TestCase):
    def setUp(self):
        self.client = APIClient()
        self.create_fixtures()
        self.destination = Warehouse.objects.create(branch=self.branch_a, name="A Store Room")
        self.supervisor_a = self.user_model.objects.create_user(
            username="supervisor-a",
            password="pass1234",
            branch=self.branch_a,
            role=self.user_model.Role.SUPERVISOR,
        )
        self.clerk_a = self.user_model.objects.create_user(username="clerk-a", password="pass1234", branch=self.branch_a)

    def create_transfer(self, quantity="4"):
        self.client.force_authenticate(user=self.supervisor_a)
        response = self.client.post(
            "/api/v1/admin/stock-transfers/",
            {
                "source_warehouse": str(self.warehouse_a.id),
                "destination_warehouse": str(self.destination.id),
                "reference": f"TR-{uuid.uuid4().hex[:6]}",
                "requires_supervisor_approval": True,
                "lines": [{"product": str(self.product_a.id), "quantity": quantity}],
            },
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        return response.json()["id"]

    def test_transfer_lifecycle_creates_paired_moves(self):
        self.move(self.product_a, self.warehouse_a, "in", "10")
        transfer_id = self.create_transfer()

        approve = self.client.post(f"/api/v1/admin/stock-transfers/{transfer_id}/approve/")
        complete = self.client.post(f"/api/v1/admin/stock-transfers/{transfer_id}/complete/")

        self.assertEqual(approve.status_code, 200)
        self.assertEqual(complete.status_code, 200)
        self.assertEqual(complete.json()["status"], StockTransfer.Status.COMPLETED)

        moves = StockMove.objects.filter(reference_type=StockMove.ReferenceType.TRANSFER, reference_id=transfer_id)
        self.assertEqual(moves.count(), 2)
        self.assertEqual(current_stock(self.product_a.id, self.warehouse_a.id), Decimal("6"))
        self.assertEqual(current_stock(self.product_a.id, self.destination.id), Decimal("4"))

    def test_transfer_complete_validates_source_stock(self):
        self.move(self.product_a, self.warehouse_a, "in", "1")
        transfer_id = self.create_transfer(quantity="4")
        self.client.post(f"/api/v1/admin/stock-transfers/{transfer_id}/approve/")

        response = self.client.post(f"/api/v1/admin/stock-transfers/{transfer_id}/complete/")

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["code"], "insufficient_stock")
        self.assertEqual(payload["errors"]["shortages"][0]["product_id"], str(self.product_a.id))
        self.assertFalse(StockMove.objects.filter(reference_type=StockMove.ReferenceType.TRANSFER).exists())

    def test_draft_transfer_cannot_be_completed(self):
        transfer_id = self.create_transfer()

        response = self.client.post(f"/api/v1/admin/stock-transfers/{transfer_id}/complete/")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "invalid_transfer_state")

    def test_clerk_cannot_approve_stock_transfer(self):
        transfer_id = self.create_transfer()
        self.client.force_authenticate(user=self.clerk_a)

        response = self.client.post(f"/api/v1/admin/stock-transfers/{transfer_id}/approve/")

        self.assertEqual(response.status_code, 403)

    def test_transfer_between_same_warehouse_is_rejected(self):
        self.client.force_authenticate(user=self.supervisor_a)

        response = self.client.post(
            "/api/v1/admin/stock-transfers/",
            {
                "source_warehouse": str(self.warehouse_a.id),
                "destination_warehouse": str(self.warehouse_a.id),
                "reference": "TR-SAME",
                "lines": [{"product": str(self.product_a.id), "quantity": "1"}],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 400)
