from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.generics import ListAPIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.audit import create_audit_log_from_request
from common.pagination import MovementHistoryPagination, StockLevelPagination
from common.permissions import RoleCapabilityPermission
from core.models import User
from core.views import scoped_queryset_for_user
from integrations.scoping import resolve_stock_scope
from inventory.adjustments import BulkAdjustmentCoordinator, StockAdjustmentProcessor
from inventory.balances import stock_levels
from inventory.ledger import movement_history
from inventory.models import Product, StockTransfer, Warehouse
from inventory.serializers import (
    BulkStockAdjustmentSerializer,
    MovementQuerySerializer,
    ProductSerializer,
    StockAdjustmentSerializer,
    StockLevelQuerySerializer,
    StockLevelSerializer,
    StockMoveSerializer,
    StockTransferSerializer,
    WarehouseSerializer,
)
from inventory.transfers import approve_transfer, complete_transfer


def _ledger_user(request):
    """Only real users are stored on movements; store principals are not."""
    user = request.user
    return user if isinstance(user, User) else None


class AuditedMutationMixin:
    audit_entity = None

    def _audit(self, *, action, instance, before_snapshot=None, after_snapshot=None):
        create_audit_log_from_request(
            self.request,
            action=action,
            entity=self.audit_entity,
            entity_id=instance.id,
            before_snapshot=before_snapshot,
            after_snapshot=after_snapshot,
            branch=getattr(instance, "branch", None),
        )

    def perform_create(self, serializer):
        user = self.request.user
        if not getattr(user, "branch_id", None):
            raise ValidationError("Authenticated user must belong to a branch to create records.")

        instance = serializer.save(branch_id=user.branch_id)
        self._audit(action=f"{self.audit_entity}.create", instance=instance, after_snapshot=self.get_serializer(instance).data)

    def perform_update(self, serializer):
        before_snapshot = self.get_serializer(serializer.instance).data
        instance = serializer.save()
        self._audit(action=f"{self.audit_entity}.update", instance=instance, before_snapshot=before_snapshot, after_snapshot=self.get_serializer(instance).data)

    def perform_destroy(self, instance):
        before_snapshot = self.get_serializer(instance).data
        self._audit(action=f"{self.audit_entity}.delete", instance=instance, before_snapshot=before_snapshot)
        instance.delete()


class ProductViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Product.objects.all().order_by("sku")
    serializer_class = ProductSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "inventory.view", "retrieve": "inventory.view"}

    def get_queryset(self):
        return scoped_queryset_for_user(super().get_queryset(), self.request.user)


class WarehouseViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Warehouse.objects.all().order_by("created_at", "id")
    serializer_class = WarehouseSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "inventory.view", "retrieve": "inventory.view"}

    def get_queryset(self):
        return scoped_queryset_for_user(super().get_queryset(), self.request.user)


class AdminProductViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    queryset = Product.objects.all().order_by("sku")
    serializer_class = ProductSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {action: "admin.records.manage" for action in ["list", "retrieve", "create", "update", "partial_update", "destroy"]}
    audit_entity = "product"

    def get_queryset(self):
        return scoped_queryset_for_user(super().get_queryset(), self.request.user)

    def perform_destroy(self, instance):
        if instance.stock_moves.exists():
            raise ValidationError("Products with stock movements cannot be deleted; deactivate them instead.")
        super().perform_destroy(instance)


class AdminWarehouseViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    queryset = Warehouse.objects.all().order_by("created_at", "id")
    serializer_class = WarehouseSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {action: "admin.records.manage" for action in ["list", "retrieve", "create", "update", "partial_update", "destroy"]}
    audit_entity = "warehouse"

    def get_queryset(self):
        return scoped_queryset_for_user(super().get_queryset(), self.request.user)

    def perform_destroy(self, instance):
        if instance.stockmove_set.exists():
            raise ValidationError("Warehouses with stock movements cannot be deleted; deactivate them instead.")
        super().perform_destroy(instance)


class StockLevelView(ListAPIView):
    serializer_class = StockLevelSerializer
    pagination_class = StockLevelPagination
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "inventory.view"}

    def get_queryset(self):
        query = StockLevelQuerySerializer(data=self.request.query_params)
        query.is_valid(raise_exception=True)
        scope = resolve_stock_scope(self.request)
        return stock_levels(
            branch_id=scope.branch_id,
            sku=query.validated_data.get("sku") or None,
            warehouse_id=query.validated_data.get("warehouse_id"),
            low_stock=query.validated_data.get("low_stock", False),
        )


class StockAdjustView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"post": "stock.adjust"}
    processor_class = StockAdjustmentProcessor

    def post(self, request):
        serializer = StockAdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        scope = resolve_stock_scope(request)

        result = self.processor_class().adjust(serializer.to_adjustment_request(), scope, user=_ledger_user(request))
        payload = result.as_dict()

        create_audit_log_from_request(
            request,
            action="stock.adjust",
            entity="product",
            entity_id=result.product_id,
            after_snapshot={**payload, "direction": serializer.validated_data["direction"], "store_id": scope.store_id},
            branch_id=result.branch_id,
        )
        return Response(payload, status=status.HTTP_200_OK)


class BulkStockAdjustView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"post": "stock.adjust"}
    coordinator_class = BulkAdjustmentCoordinator

    def post(self, request):
        serializer = BulkStockAdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        scope = resolve_stock_scope(request)

        result = self.coordinator_class().adjust_many(
            serializer.to_adjustment_requests(),
            scope,
            default_warehouse_id=serializer.validated_data.get("warehouse_id"),
            user=_ledger_user(request),
        )
        payload = result.as_dict()

        create_audit_log_from_request(
            request,
            action="stock.bulk_adjust",
            entity="product",
            after_snapshot={
                "success_count": len(result.success),
                "failed_count": len(result.failed),
                "store_id": scope.store_id,
                "failed": payload["failed"],
            },
            branch_id=scope.branch_id,
        )
        return Response(payload, status=status.HTTP_200_OK)


class StockMovementListView(ListAPIView):
    serializer_class = StockMoveSerializer
    pagination_class = MovementHistoryPagination
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "inventory.view"}

    def get_queryset(self):
        query = MovementQuerySerializer(data=self.request.query_params)
        query.is_valid(raise_exception=True)
        scope = resolve_stock_scope(self.request)
        return movement_history(branch_id=scope.branch_id, **query.validated_data)


class StockTransferViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = StockTransfer.objects.select_related("source_warehouse", "destination_warehouse", "approved_by").prefetch_related("lines__product").order_by("-created_at")
    serializer_class = StockTransferSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "inventory.view", "retrieve": "inventory.view"}

    def get_queryset(self):
        return scoped_queryset_for_user(super().get_queryset(), self.request.user)


class AdminStockTransferViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    queryset = StockTransfer.objects.select_related("source_warehouse", "destination_warehouse", "approved_by").prefetch_related("lines__product").order_by("-created_at")
    serializer_class = StockTransferSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "stock.transfer.manage",
        "retrieve": "stock.transfer.manage",
        "create": "stock.transfer.manage",
        "update": "stock.transfer.manage",
        "partial_update": "stock.transfer.manage",
        "destroy": "stock.transfer.manage",
        "approve": "stock.transfer.approve",
        "complete": "stock.transfer.complete",
    }
    audit_entity = "stock_transfer"

    def get_queryset(self):
        return scoped_queryset_for_user(super().get_queryset(), self.request.user)

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context["branch_id"] = getattr(self.request.user, "branch_id", None)
        return context

    def perform_destroy(self, instance):
        if instance.status == StockTransfer.Status.COMPLETED:
            raise ValidationError("Completed transfers cannot be deleted.")
        super().perform_destroy(instance)

    @action(detail=True, methods=["post"], url_path="approve")
    def approve(self, request, pk=None):
        transfer = approve_transfer(self.get_object(), request.user)
        data = self.get_serializer(transfer).data
        self._audit(action="stock_transfer.approve", instance=transfer, after_snapshot=data)
        return Response(data)

    @action(detail=True, methods=["post"], url_path="complete")
    def complete(self, request, pk=None):
        transfer = self.get_object()
        complete_transfer(transfer, user=_ledger_user(request))
        data = self.get_serializer(transfer).data
        self._audit(action="stock_transfer.complete", instance=transfer, after_snapshot=data)
        return Response(data)
