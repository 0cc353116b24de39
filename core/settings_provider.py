from __future__ import annotations

from typing import Any, Mapping, Protocol

from core.models import SystemSetting


class SettingsProvider(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...


class SystemSettingsProvider:
    """Reads runtime settings from the SystemSetting table.

    Blank values are treated as unset so an admin can clear a setting without
    deleting its row.
    """

    def get(self, key: str, default: Any = None) -> Any:
        value = SystemSetting.objects.filter(key=key).values_list("value", flat=True).first()
        if value is None or str(value).strip() == "":
            return default
        return value


class StaticSettingsProvider:
    def __init__(self, values: Mapping[str, Any] | None = None):
        self._values = dict(values or {})

    def get(self, key: str, default: Any = None) -> Any:
        value = self._values.get(key)
        return default if value is None else value


def set_system_setting(key: str, value, *, description: str = "") -> SystemSetting:
    setting, _ = SystemSetting.objects.update_or_create(
        key=key,
        defaults={"value": "" if value is None else str(value), "description": description},
    )
    return setting
