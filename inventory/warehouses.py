import logging
import uuid

from core.models import SystemSetting
from core.settings_provider import SettingsProvider, SystemSettingsProvider
from inventory.models import Warehouse

logger = logging.getLogger("inventory")


class WarehouseResolver:
    """
    Pick the warehouse for a stock operation that may not name one.

    Priority, first hit wins:
        1. the caller's preferred warehouse id (taken as-is)
        2. the configured default warehouse (``default_warehouse_id`` setting)
        3. the first active warehouse of the given branch
        4. the first active warehouse anywhere
    Active warehouses are ordered by creation time, then id, so the choice is stable.
    Returns None only when no active warehouse exists at all.
    """

    setting_key = SystemSetting.DEFAULT_WAREHOUSE_ID

    def __init__(self, settings_provider: SettingsProvider | None = None):
        self.settings_provider = settings_provider or SystemSettingsProvider()

    def resolve(self, preferred_id=None, branch_id=None):
        if preferred_id not in (None, ""):
            return preferred_id

        default_id = self._configured_default()
        if default_id is not None:
            return default_id

        active = Warehouse.objects.filter(is_active=True).order_by("created_at", "id")

        if branch_id is not None:
            branch_warehouse_id = active.filter(branch_id=branch_id).values_list("id", flat=True).first()
            if branch_warehouse_id is not None:
                return branch_warehouse_id

        return active.values_list("id", flat=True).first()

    def _configured_default(self):
        value = self.settings_provider.get(self.setting_key)
        if value in (None, ""):
            return None
        if isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(str(value).strip())
        except ValueError:
            logger.warning("default_warehouse_setting_invalid value=%s", value)
            return None
