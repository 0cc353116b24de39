from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from core.models import AuditLog, Branch
from integrations.models import ProductStoreMapping, Store, hash_api_key
from inventory.balances import current_stock
from inventory.models import Product, StockMove, Warehouse


class StoreApiKeyTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()

        self.branch_a = Branch.objects.create(code="SA", name="Store Branch A")
        self.branch_b = Branch.objects.create(code="SB", name="Store Branch B")
        self.warehouse_a = Warehouse.objects.create(branch=self.branch_a, name="A Main")
        self.warehouse_b = Warehouse.objects.create(branch=self.branch_b, name="B Main")

        self.product_a = Product.objects.create(branch=self.branch_a, sku="A-001", name="A Product")
        self.product_b = Product.objects.create(branch=self.branch_b, sku="B-001", name="B Product")

        self.store = Store(branch=self.branch_a, name="Webshop A")
        self.raw_key = self.store.set_new_api_key()
        self.store.save()
        ProductStoreMapping.objects.create(store=self.store, product=self.product_a, external_id="web-1")

    def post_adjust(self, payload, key=None):
        return self.client.post(
            "/api/v1/inventory/stock/adjust/",
            payload,
            format="json",
            HTTP_X_STORE_KEY=key if key is not None else self.raw_key,
        )

    def test_raw_key_is_never_stored(self):
        self.assertNotEqual(self.store.key_hash, self.raw_key)
        self.assertEqual(self.store.key_hash, hash_api_key(self.raw_key))
        self.assertEqual(self.store.key_prefix, self.raw_key[:8])

    def test_store_adjusts_by_external_id(self):
        response = self.post_adjust({"external_id": "web-1", "direction": "set", "qty": "12"})

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["product_id"], str(self.product_a.id))
        self.assertEqual(Decimal(payload["new_quantity"]), Decimal("12"))
        self.assertEqual(current_stock(self.product_a.id), Decimal("12"))

        movement = StockMove.objects.get(id=payload["movement_id"])
        self.assertIsNone(movement.user_id)
        self.assertEqual(movement.reference_type, StockMove.ReferenceType.API_SYNC)

        audit = AuditLog.objects.get(action="stock.adjust")
        self.assertIsNone(audit.actor_id)
        self.assertEqual(audit.after_snapshot["store_id"], str(self.store.id))

        self.store.refresh_from_db()
        self.assertIsNotNone(self.store.last_used_at)

    def test_unknown_external_id_returns_not_found(self):
        response = self.post_adjust({"external_id": "web-404", "direction": "in", "qty": "1"})

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "product_not_found")

    def test_store_cannot_touch_other_branch_products(self):
        response = self.post_adjust({"product_id": str(self.product_b.id), "direction": "in", "qty": "1"})

        self.assertEqual(response.status_code, 404)
        self.assertFalse(StockMove.objects.exists())

    def test_store_stock_listing_is_limited_to_its_branch(self):
        response = self.client.get("/api/v1/inventory/stock/", HTTP_X_STORE_KEY=self.raw_key)

        self.assertEqual(response.status_code, 200)
        self.assertEqual([item["sku"] for item in response.json()["results"]], ["A-001"])

    def test_store_bulk_adjust_mixes_identifiers(self):
        response = self.client.post(
            "/api/v1/inventory/stock/bulk-adjust/",
            {
                "updates": [
                    {"external_id": "web-1", "direction": "in", "qty": "4"},
                    {"external_id": "web-2", "direction": "in", "qty": "4"},
                    {"product_id": str(self.product_a.id), "direction": "out", "qty": "1"},
                ]
            },
            format="json",
            HTTP_X_STORE_KEY=self.raw_key,
        )

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(len(payload["success"]), 2)
        self.assertEqual(payload["failed"], [{"identifier": "web-2", "error": "Product not found", "code": "product_not_found"}])
        self.assertEqual(current_stock(self.product_a.id), Decimal("3"))

    def test_invalid_or_inactive_key_is_rejected(self):
        invalid = self.post_adjust({"external_id": "web-1", "direction": "in", "qty": "1"}, key="not-a-key")
        self.assertEqual(invalid.status_code, 401)
        self.assertEqual(invalid.json()["code"], "authentication_failed")

        Store.objects.filter(id=self.store.id).update(is_active=False)
        inactive = self.post_adjust({"external_id": "web-1", "direction": "in", "qty": "1"})
        self.assertEqual(inactive.status_code, 401)
        self.assertFalse(StockMove.objects.exists())

    def test_key_matching_only_the_prefix_is_rejected(self):
        forged_key = self.raw_key[:8] + "x" * (len(self.raw_key) - 8)

        response = self.post_adjust({"external_id": "web-1", "direction": "in", "qty": "1"}, key=forged_key)

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "authentication_failed")
        self.assertFalse(StockMove.objects.exists())

    def test_store_cannot_reach_admin_endpoints(self):
        products = self.client.get("/api/v1/admin/products/", HTTP_X_STORE_KEY=self.raw_key)
        stores = self.client.get("/api/v1/admin/stores/", HTTP_X_STORE_KEY=self.raw_key)
        transfers = self.client.get("/api/v1/admin/stock-transfers/", HTTP_X_STORE_KEY=self.raw_key)

        for response in (products, stores, transfers):
            self.assertEqual(response.status_code, 403)

    def test_external_id_without_store_is_not_found(self):
        supervisor = self.user_model.objects.create_user(
            username="supervisor-a",
            password="pass1234",
            branch=self.branch_a,
            role=self.user_model.Role.SUPERVISOR,
        )
        self.client.force_authenticate(user=supervisor)

        response = self.client.post(
            "/api/v1/inventory/stock/adjust/",
            {"external_id": "web-1", "direction": "in", "qty": "1"},
            format="json",
        )

        self.assertEqual(response.status_code, 404)


class StoreAdminTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()

        self.branch_a = Branch.objects.create(code="SA", name="Store Branch A")
        self.branch_b = Branch.objects.create(code="SB", name="Store Branch B")
        Warehouse.objects.create(branch=self.branch_a, name="A Main")
        self.product_a = Product.objects.create(branch=self.branch_a, sku="A-001", name="A Product")
        self.product_b = Product.objects.create(branch=self.branch_b, sku="B-001", name="B Product")

        self.admin_a = self.user_model.objects.create_user(
            username="admin-a",
            password="pass1234",
            branch=self.branch_a,
            role=self.user_model.Role.ADMIN,
        )
        self.supervisor_a = self.user_model.objects.create_user(
            username="supervisor-a",
            password="pass1234",
            branch=self.branch_a,
            role=self.user_model.Role.SUPERVISOR,
        )

    def create_store(self, name="Webshop"):
        self.client.force_authenticate(user=self.admin_a)
        response = self.client.post("/api/v1/admin/stores/", {"name": name}, format="json")
        self.assertEqual(response.status_code, 201)
        return response.json()

    def test_store_create_returns_key_once(self):
        created = self.create_store()

        self.assertIn("api_key", created)
        self.assertEqual(created["branch"], str(self.branch_a.id))
        self.assertTrue(AuditLog.objects.filter(action="store.create", entity_id=created["id"]).exists())

        detail = self.client.get(f"/api/v1/admin/stores/{created['id']}/")
        self.assertNotIn("api_key", detail.json())

        self.client.force_authenticate(user=None)
        listing = self.client.get("/api/v1/inventory/stock/", HTTP_X_STORE_KEY=created["api_key"])
        self.assertEqual(listing.status_code, 200)

    def test_rotate_key_invalidates_previous_key(self):
        created = self.create_store()

        rotated = self.client.post(f"/api/v1/admin/stores/{created['id']}/rotate-key/")
        self.assertEqual(rotated.status_code, 200)
        self.assertNotEqual(rotated.json()["api_key"], created["api_key"])

        self.client.force_authenticate(user=None)
        old_key = self.client.get("/api/v1/inventory/stock/", HTTP_X_STORE_KEY=created["api_key"])
        new_key = self.client.get("/api/v1/inventory/stock/", HTTP_X_STORE_KEY=rotated.json()["api_key"])
        self.assertEqual(old_key.status_code, 401)
        self.assertEqual(new_key.status_code, 200)

    def test_supervisor_cannot_manage_stores(self):
        self.client.force_authenticate(user=self.supervisor_a)

        response = self.client.post("/api/v1/admin/stores/", {"name": "Sneaky"}, format="json")

        self.assertEqual(response.status_code, 403)
        self.assertFalse(Store.objects.exists())

    def test_mapping_product_must_match_store_branch(self):
        created = self.create_store()

        valid = self.client.post(
            "/api/v1/admin/store-mappings/",
            {"store": created["id"], "product": str(self.product_a.id), "external_id": "web-1"},
            format="json",
        )
        cross_branch = self.client.post(
            "/api/v1/admin/store-mappings/",
            {"store": created["id"], "product": str(self.product_b.id), "external_id": "web-2"},
            format="json",
        )

        self.assertEqual(valid.status_code, 201)
        self.assertEqual(valid.json()["product_sku"], "A-001")
        self.assertEqual(cross_branch.status_code, 400)
        self.assertIn("product", cross_branch.json()["errors"])

    def test_mapping_store_must_belong_to_admin_branch(self):
        other_store = Store(branch=self.branch_b, name="Webshop B")
        other_store.set_new_api_key()
        other_store.save()
        self.client.force_authenticate(user=self.admin_a)

        response = self.client.post(
            "/api/v1/admin/store-mappings/",
            {"store": str(other_store.id), "product": str(self.product_b.id), "external_id": "web-9"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("store", response.json()["errors"])
