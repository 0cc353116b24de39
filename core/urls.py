from django.urls import path
from rest_framework.routers import DefaultRouter

from core.views import AuditLogViewSet, BranchViewSet, SystemSettingViewSet, healthz, readyz

router = DefaultRouter()
router.register(r"branches", BranchViewSet, basename="branch")
router.register(r"admin/settings", SystemSettingViewSet, basename="system-setting")
router.register(r"admin/audit-logs", AuditLogViewSet, basename="audit-log")

urlpatterns = router.urls + [
    path("healthz/", healthz, name="healthz"),
    path("readyz/", readyz, name="readyz"),
]
