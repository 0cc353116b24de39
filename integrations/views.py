from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission
from core.views import scoped_queryset_for_user
from integrations.models import ProductStoreMapping, Store
from integrations.serializers import ProductStoreMappingSerializer, StoreSerializer
from inventory.views import AuditedMutationMixin

ADMIN_ACTIONS = ["list", "retrieve", "create", "update", "partial_update", "destroy"]


class AdminStoreViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    """Stores are created with a fresh API key that is returned exactly once."""

    queryset = Store.objects.all().order_by("name")
    serializer_class = StoreSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {**{name: "admin.records.manage" for name in ADMIN_ACTIONS}, "rotate_key": "admin.records.manage"}
    audit_entity = "store"

    def get_queryset(self):
        return scoped_queryset_for_user(super().get_queryset(), self.request.user)

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        if not getattr(request.user, "branch_id", None):
            raise ValidationError("Authenticated user must belong to a branch to create records.")

        store = Store(branch_id=request.user.branch_id, **serializer.validated_data)
        raw_key = store.set_new_api_key()
        store.save()
        data = self.get_serializer(store).data
        self._audit(action="store.create", instance=store, after_snapshot=data)
        return Response({**data, "api_key": raw_key}, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="rotate-key")
    def rotate_key(self, request, pk=None):
        store = self.get_object()
        raw_key = store.set_new_api_key()
        store.save(update_fields=["key_prefix", "key_hash", "updated_at"])
        data = self.get_serializer(store).data
        self._audit(action="store.rotate_key", instance=store, after_snapshot=data)
        return Response({**data, "api_key": raw_key})


class AdminProductStoreMappingViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    queryset = ProductStoreMapping.objects.select_related("store", "product").order_by("store__name", "external_id")
    serializer_class = ProductStoreMappingSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {name: "admin.records.manage" for name in ADMIN_ACTIONS}
    audit_entity = "product_store_mapping"

    def get_queryset(self):
        queryset = super().get_queryset()
        user = self.request.user
        if user.is_superuser:
            return queryset
        if getattr(user, "branch_id", None):
            return queryset.filter(store__branch_id=user.branch_id)
        return queryset.none()

    def get_serializer_context(self):
        context = super().get_serializer_context()
        if not self.request.user.is_superuser:
            context["branch_id"] = getattr(self.request.user, "branch_id", None)
        return context

    def perform_create(self, serializer):
        instance = serializer.save()
        self._audit(action="product_store_mapping.create", instance=instance, after_snapshot=self.get_serializer(instance).data)

    def _audit(self, *, action, instance, before_snapshot=None, after_snapshot=None):
        create_audit_log_from_request(
            self.request,
            action=action,
            entity=self.audit_entity,
            entity_id=instance.id,
            before_snapshot=before_snapshot,
            after_snapshot=after_snapshot,
            branch_id=instance.store.branch_id,
        )
