import csv
import logging

from django.db import DatabaseError, connections
from django.http import HttpResponse
from rest_framework import status, viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework_simplejwt.views import TokenObtainPairView

from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission, user_has_capability
from core.models import AuditLog, Branch, SystemSetting
from core.serializers import (
    AuditLogQuerySerializer,
    AuditLogSerializer,
    BranchSerializer,
    EmailOrUsernameTokenObtainPairSerializer,
    SystemSettingSerializer,
)

logger = logging.getLogger(__name__)

CRUD_ACTIONS = ["list", "retrieve", "create", "update", "partial_update", "destroy"]
AUDIT_EXPORT_COLUMNS = ["id", "created_at", "actor", "branch", "action", "entity", "entity_id", "request_id"]


def scoped_queryset_for_user(queryset, user):
    """Rows of the caller's branch; superusers see everything, branchless users nothing."""
    if not user.is_authenticated:
        return queryset.none()
    if user.is_superuser:
        return queryset
    if getattr(user, "branch_id", None):
        return queryset.filter(branch_id=user.branch_id)
    return queryset.none()


class EmailOrUsernameTokenObtainPairView(TokenObtainPairView):
    serializer_class = EmailOrUsernameTokenObtainPairSerializer
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth"


class BranchViewSet(viewsets.ModelViewSet):
    queryset = Branch.objects.all().order_by("code")
    serializer_class = BranchSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        **{name: "admin.records.manage" for name in CRUD_ACTIONS},
        "list": "inventory.view",
        "retrieve": "inventory.view",
    }

    def get_queryset(self):
        queryset = super().get_queryset()
        user = self.request.user
        # Admins pick branches for users and stores, so they see all of them.
        if user_has_capability(user, "admin.records.manage"):
            return queryset
        if getattr(user, "branch_id", None):
            return queryset.filter(id=user.branch_id)
        return queryset.none()


class SystemSettingViewSet(viewsets.ModelViewSet):
    """Runtime settings such as ``default_warehouse_id``; every change is audited."""

    queryset = SystemSetting.objects.all()
    serializer_class = SystemSettingSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {name: "settings.manage" for name in CRUD_ACTIONS}

    def _audit(self, verb, before_snapshot=None, after_snapshot=None):
        create_audit_log_from_request(
            self.request,
            action=f"setting.{verb}",
            entity="system_setting",
            before_snapshot=before_snapshot,
            after_snapshot=after_snapshot,
        )

    def perform_create(self, serializer):
        instance = serializer.save()
        self._audit("create", after_snapshot=self.get_serializer(instance).data)

    def perform_update(self, serializer):
        before_snapshot = self.get_serializer(serializer.instance).data
        instance = serializer.save()
        self._audit("update", before_snapshot=before_snapshot, after_snapshot=self.get_serializer(instance).data)

    def perform_destroy(self, instance):
        self._audit("delete", before_snapshot=self.get_serializer(instance).data)
        instance.delete()


class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = AuditLog.objects.select_related("actor", "branch").order_by("-created_at")
    serializer_class = AuditLogSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "admin.records.manage", "retrieve": "admin.records.manage", "export": "admin.records.manage"}

    def get_queryset(self):
        qs = scoped_queryset_for_user(super().get_queryset(), self.request.user)

        query = AuditLogQuerySerializer(data=self.request.query_params)
        query.is_valid(raise_exception=True)
        filters = query.validated_data

        if filters.get("start_date"):
            qs = qs.filter(created_at__gte=filters["start_date"])
        if filters.get("end_date"):
            qs = qs.filter(created_at__lte=filters["end_date"])
        for field in ("action", "entity", "entity_id"):
            if filters.get(field):
                qs = qs.filter(**{field: filters[field]})
        return qs

    @action(detail=False, methods=["get"], url_path="export")
    def export(self, request):
        response = HttpResponse(content_type="text/csv")
        response["Content-Disposition"] = 'attachment; filename="audit-logs.csv"'

        writer = csv.writer(response)
        writer.writerow(AUDIT_EXPORT_COLUMNS)
        for log in self.get_queryset():
            writer.writerow(
                [
                    log.id,
                    log.created_at.isoformat(),
                    getattr(log.actor, "username", ""),
                    getattr(log.branch, "code", ""),
                    log.action,
                    log.entity,
                    log.entity_id or "",
                    log.request_id or "",
                ]
            )
        return response


@api_view(["GET"])
@permission_classes([AllowAny])
def healthz(request):
    return Response({"status": "ok", "request_id": getattr(request, "request_id", None)})


@api_view(["GET"])
@permission_classes([AllowAny])
def readyz(request):
    request_id = getattr(request, "request_id", None)
    try:
        with connections["default"].cursor() as cursor:
            cursor.execute("SELECT 1")
    except DatabaseError as exc:
        logger.exception("readiness_check_failed")
        return Response({"status": "error", "request_id": request_id, "detail": str(exc)}, status=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response({"status": "ready", "request_id": request_id})
