from rest_framework.routers import DefaultRouter

from integrations.views import AdminProductStoreMappingViewSet, AdminStoreViewSet

router = DefaultRouter()
router.register(r"admin/stores", AdminStoreViewSet, basename="admin-store")
router.register(r"admin/store-mappings", AdminProductStoreMappingViewSet, basename="admin-store-mapping")

urlpatterns = router.urls
