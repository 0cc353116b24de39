from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase
from rest_framework.test import APIClient

from core.models import AuditLog, Branch, SystemSetting
from core.settings_provider import StaticSettingsProvider, SystemSettingsProvider, set_system_setting
from integrations.models import ProductStoreMapping, Store
from inventory.balances import current_stock
from inventory.ledger import record_movement
from inventory.models import Product, StockMove, Warehouse


class SettingsProviderTests(TestCase):
    def test_blank_setting_is_treated_as_unset(self):
        set_system_setting(SystemSetting.DEFAULT_WAREHOUSE_ID, "   ")

        self.assertIsNone(SystemSettingsProvider().get(SystemSetting.DEFAULT_WAREHOUSE_ID))
        self.assertEqual(SystemSettingsProvider().get("missing", "fallback"), "fallback")

    def test_set_system_setting_overwrites_existing_row(self):
        set_system_setting("feature", "one")
        set_system_setting("feature", None)

        self.assertEqual(SystemSetting.objects.get(key="feature").value, "")
        self.assertEqual(StaticSettingsProvider({"feature": "two"}).get("feature"), "two")


class SystemSettingApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.branch = Branch.objects.create(code="ST", name="Settings")
        self.warehouse = Warehouse.objects.create(branch=self.branch, name="Main")
        self.admin = self.user_model.objects.create_user(
            username="settings-admin",
            password="pass1234",
            branch=self.branch,
            role=self.user_model.Role.ADMIN,
        )
        self.supervisor = self.user_model.objects.create_user(
            username="settings-supervisor",
            password="pass1234",
            branch=self.branch,
            role=self.user_model.Role.SUPERVISOR,
        )

    def test_admin_sets_default_warehouse_and_change_is_audited(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(
            "/api/v1/admin/settings/",
            {"key": SystemSetting.DEFAULT_WAREHOUSE_ID, "value": str(self.warehouse.id)},
            format="json",
            HTTP_X_REQUEST_ID="req-setting",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(SystemSettingsProvider().get(SystemSetting.DEFAULT_WAREHOUSE_ID), str(self.warehouse.id))
        self.assertTrue(AuditLog.objects.filter(action="setting.create", entity="system_setting", request_id="req-setting").exists())

    def test_default_warehouse_must_reference_active_warehouse(self):
        Warehouse.objects.filter(id=self.warehouse.id).update(is_active=False)
        self.client.force_authenticate(user=self.admin)

        inactive = self.client.post(
            "/api/v1/admin/settings/",
            {"key": SystemSetting.DEFAULT_WAREHOUSE_ID, "value": str(self.warehouse.id)},
            format="json",
        )
        malformed = self.client.post(
            "/api/v1/admin/settings/",
            {"key": SystemSetting.DEFAULT_WAREHOUSE_ID, "value": "warehouse-one"},
            format="json",
        )

        self.assertEqual(inactive.status_code, 400)
        self.assertEqual(malformed.status_code, 400)
        self.assertEqual(malformed.json()["errors"], {"value": ["Default warehouse must reference an active warehouse."]})

    def test_supervisor_cannot_manage_settings_and_denial_is_logged(self):
        self.client.force_authenticate(user=self.supervisor)

        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.get("/api/v1/admin/settings/")

        self.assertEqual(response.status_code, 403)
        self.assertTrue(any("permission_denied" in message for message in cm.output))


class BranchAccessRoleTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()

        self.branch_a = Branch.objects.create(code="BA", name="Branch A")
        self.branch_b = Branch.objects.create(code="BB", name="Branch B")

        self.admin = self.user_model.objects.create_user(
            username="branch-admin",
            password="pass1234",
            branch=self.branch_a,
            role=self.user_model.Role.ADMIN,
        )
        self.clerk = self.user_model.objects.create_user(
            username="branch-clerk",
            password="pass1234",
            branch=self.branch_a,
        )

    def test_admin_can_list_multiple_branches(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/branches/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(sorted(payload.keys()), ["count", "next", "previous", "results"])
        ids = {item["id"] for item in payload["results"]}
        self.assertIn(str(self.branch_a.id), ids)
        self.assertIn(str(self.branch_b.id), ids)

    def test_non_admin_branch_scope_is_preserved(self):
        self.client.force_authenticate(user=self.clerk)

        response = self.client.get("/api/v1/branches/")

        self.assertEqual(response.status_code, 200)
        ids = {item["id"] for item in response.json()["results"]}
        self.assertEqual(ids, {str(self.branch_a.id)})


class AuditLogTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.branch = Branch.objects.create(code="AL", name="Audit")
        self.other_branch = Branch.objects.create(code="AO", name="Audit Other")
        self.admin = self.user_model.objects.create_user(
            username="audit-admin",
            password="pass1234",
            branch=self.branch,
            role=self.user_model.Role.ADMIN,
        )

    def test_audit_logs_are_read_only(self):
        self.client.force_authenticate(user=self.admin)
        log = AuditLog.objects.create(action="test.action", entity="test", branch=self.branch, actor=self.admin)

        patch_res = self.client.patch(f"/api/v1/admin/audit-logs/{log.id}/", {"action": "changed"}, format="json")
        delete_res = self.client.delete(f"/api/v1/admin/audit-logs/{log.id}/")

        self.assertEqual(patch_res.status_code, 405)
        self.assertEqual(delete_res.status_code, 405)

    def test_audit_logs_are_branch_scoped_and_filterable(self):
        AuditLog.objects.create(action="stock.adjust", entity="product", branch=self.branch)
        AuditLog.objects.create(action="product.create", entity="product", branch=self.branch)
        AuditLog.objects.create(action="stock.adjust", entity="product", branch=self.other_branch)
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/admin/audit-logs/", {"action": "stock.adjust"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["count"], 1)

    def test_audit_log_export_is_csv(self):
        AuditLog.objects.create(action="stock.adjust", entity="product", branch=self.branch, actor=self.admin)
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/admin/audit-logs/export/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], "text/csv")
        self.assertIn("stock.adjust", response.content.decode())


class AuthAndHealthTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.branch = Branch.objects.create(code="AU", name="Auth")
        self.user = self.user_model.objects.create_user(
            username="token-user",
            email="Token@Example.com",
            password="pass1234",
            branch=self.branch,
            role=self.user_model.Role.SUPERVISOR,
        )

    def test_token_obtain_accepts_username_or_email(self):
        by_username = self.client.post("/api/v1/token/", {"username": "token-user", "password": "pass1234"}, format="json")
        by_email = self.client.post("/api/v1/token/", {"username": "token@example.com", "password": "pass1234"}, format="json")

        self.assertEqual(by_username.status_code, 200)
        self.assertEqual(by_email.status_code, 200)
        self.assertIn("access", by_username.json())

    def test_bearer_token_reaches_stock_endpoints(self):
        token = self.client.post("/api/v1/token/", {"username": "token-user", "password": "pass1234"}, format="json").json()["access"]

        response = self.client.get("/api/v1/inventory/stock/", HTTP_AUTHORIZATION=f"Bearer {token}")

        self.assertEqual(response.status_code, 200)

    def test_wrong_password_is_rejected_with_envelope(self):
        response = self.client.post("/api/v1/token/", {"username": "token-user", "password": "nope"}, format="json")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "authentication_failed")

    def test_healthz_echoes_request_id(self):
        response = self.client.get("/api/v1/healthz/", HTTP_X_REQUEST_ID="req-health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "request_id": "req-health"})
        self.assertEqual(response["X-Request-ID"], "req-health")


class ManagementCommandTests(TestCase):
    def test_seed_inventory_demo_is_idempotent(self):
        out = StringIO()
        call_command("seed_inventory_demo", stdout=out)
        call_command("seed_inventory_demo", stdout=StringIO())

        self.assertIn("API key (shown once)", out.getvalue())
        branch = Branch.objects.get(code="MAIN")
        self.assertEqual(get_user_model().objects.filter(branch=branch).count(), 3)
        self.assertEqual(Store.objects.filter(branch=branch).count(), 1)
        self.assertEqual(ProductStoreMapping.objects.count(), 3)

        product = Product.objects.get(branch=branch, sku="SKU-1001")
        self.assertEqual(current_stock(product.id), Decimal("40"))
        self.assertEqual(StockMove.objects.filter(reference_type=StockMove.ReferenceType.SEED).count(), 3)
        self.assertIsNotNone(SystemSettingsProvider().get(SystemSetting.DEFAULT_WAREHOUSE_ID))

    def test_report_negative_stock_lists_negative_scopes(self):
        branch = Branch.objects.create(code="NG", name="Negative")
        warehouse = Warehouse.objects.create(branch=branch, name="Main")
        product = Product.objects.create(branch=branch, sku="NEG-1", name="Oversold")

        clean = StringIO()
        call_command("report_negative_stock", stdout=clean)
        self.assertIn("No negative stock balances found.", clean.getvalue())

        record_movement(
            product=product,
            warehouse_id=warehouse.id,
            branch_id=branch.id,
            direction=StockMove.Direction.OUT,
            quantity=Decimal("2"),
            reason="Oversold",
        )
        out = StringIO()
        call_command("report_negative_stock", "--branch-id", str(branch.id), stdout=out)

        self.assertIn("NEG-1 @ Main", out.getvalue())
