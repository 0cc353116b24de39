from django.urls import path
from rest_framework.routers import DefaultRouter

from inventory.views import (
    AdminProductViewSet,
    AdminStockTransferViewSet,
    AdminWarehouseViewSet,
    BulkStockAdjustView,
    ProductViewSet,
    StockAdjustView,
    StockLevelView,
    StockMovementListView,
    StockTransferViewSet,
    WarehouseViewSet,
)

router = DefaultRouter()
router.register(r"products", ProductViewSet, basename="product")
router.register(r"warehouses", WarehouseViewSet, basename="warehouse")
router.register(r"stock-transfers", StockTransferViewSet, basename="stock-transfer")
router.register(r"admin/products", AdminProductViewSet, basename="admin-product")
router.register(r"admin/warehouses", AdminWarehouseViewSet, basename="admin-warehouse")
router.register(r"admin/stock-transfers", AdminStockTransferViewSet, basename="admin-stock-transfer")

urlpatterns = router.urls + [
    path("inventory/stock/", StockLevelView.as_view(), name="stock-levels"),
    path("inventory/stock/adjust/", StockAdjustView.as_view(), name="stock-adjust"),
    path("inventory/stock/bulk-adjust/", BulkStockAdjustView.as_view(), name="stock-bulk-adjust"),
    path("inventory/movements/", StockMovementListView.as_view(), name="stock-movements"),
]
