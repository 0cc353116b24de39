from __future__ import annotations

from dataclasses import dataclass

from rest_framework.exceptions import PermissionDenied

from integrations.models import Store


@dataclass(frozen=True)
class StockScope:
    """Branch (and store) filter applied to every stock read and write of a caller.

    ``branch_id`` of None means unscoped (superusers and tooling).
    """

    branch_id: object = None
    store: Store | None = None

    @property
    def store_id(self):
        return self.store.id if self.store is not None else None

    @classmethod
    def unscoped(cls) -> "StockScope":
        return cls()


def resolve_stock_scope(request) -> StockScope:
    user = getattr(request, "user", None)
    if user is None or not user.is_authenticated:
        return StockScope.unscoped()

    if getattr(user, "is_store", False):
        return StockScope(branch_id=user.store.branch_id, store=user.store)

    if user.is_superuser:
        return StockScope.unscoped()

    branch_id = getattr(user, "branch_id", None)
    if not branch_id:
        raise PermissionDenied("Authenticated user must belong to a branch to access stock.")
    return StockScope(branch_id=branch_id)
