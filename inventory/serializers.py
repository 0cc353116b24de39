from decimal import Decimal

from django.db import transaction
from rest_framework import serializers

from inventory.adjustments import ADJUSTMENT_DIRECTIONS, AdjustmentRequest
from inventory.models import Product, StockMove, StockTransfer, StockTransferLine, Warehouse

BULK_ADJUSTMENT_LIMIT = 500


def _context_branch_id(serializer):
    if serializer.instance is not None:
        return serializer.instance.branch_id
    request = serializer.context.get("request")
    return getattr(getattr(request, "user", None), "branch_id", None)


class ProductSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = [
            "id",
            "branch",
            "sku",
            "barcode",
            "name",
            "unit",
            "minimum_quantity",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "branch", "created_at", "updated_at"]

    def validate(self, attrs):
        # Blank barcodes from form submissions are stored as NULL.
        if self.initial_data.get("barcode", None) == "":
            attrs["barcode"] = None
        if attrs.get("minimum_quantity") is not None and attrs["minimum_quantity"] < 0:
            raise serializers.ValidationError({"minimum_quantity": "Minimum quantity cannot be negative."})

        sku = attrs.get("sku")
        branch_id = _context_branch_id(self)
        if sku and branch_id:
            duplicates = Product.objects.filter(branch_id=branch_id, sku=sku)
            if self.instance is not None:
                duplicates = duplicates.exclude(pk=self.instance.pk)
            if duplicates.exists():
                raise serializers.ValidationError({"sku": "A product with this SKU already exists in your branch."})
        return attrs


class WarehouseSerializer(serializers.ModelSerializer):
    class Meta:
        model = Warehouse
        fields = ["id", "branch", "name", "is_active", "created_at", "updated_at"]
        read_only_fields = ["id", "branch", "created_at", "updated_at"]

    def validate_name(self, value):
        branch_id = _context_branch_id(self)
        duplicates = Warehouse.objects.filter(branch_id=branch_id, name=value)
        if self.instance is not None:
            duplicates = duplicates.exclude(pk=self.instance.pk)
        if branch_id and duplicates.exists():
            raise serializers.ValidationError("A warehouse with this name already exists in your branch.")
        return value


class StockLevelSerializer(serializers.ModelSerializer):
    current_quantity = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = ["id", "branch", "sku", "name", "minimum_quantity", "current_quantity"]

    def get_current_quantity(self, obj):
        value = Decimal(getattr(obj, "current_quantity", None) or 0)
        return str(max(value, Decimal("0")))


class StockLevelQuerySerializer(serializers.Serializer):
    sku = serializers.CharField(required=False, allow_blank=True)
    warehouse_id = serializers.UUIDField(required=False)
    low_stock = serializers.BooleanField(required=False, default=False)


class StockMoveSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)
    product_sku = serializers.CharField(source="product.sku", read_only=True)
    warehouse_name = serializers.CharField(source="warehouse.name", read_only=True)

    class Meta:
        model = StockMove
        fields = [
            "id",
            "branch",
            "warehouse",
            "warehouse_name",
            "product",
            "product_name",
            "product_sku",
            "direction",
            "quantity",
            "reason",
            "reference_type",
            "reference_id",
            "user",
            "created_at",
        ]
        read_only_fields = fields


class MovementQuerySerializer(serializers.Serializer):
    product_id = serializers.UUIDField(required=False)
    warehouse_id = serializers.UUIDField(required=False)
    direction = serializers.ChoiceField(choices=StockMove.Direction.choices, required=False)
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)

    def validate(self, attrs):
        start_date = attrs.get("start_date")
        end_date = attrs.get("end_date")
        if start_date and end_date and end_date < start_date:
            raise serializers.ValidationError({"end_date": "End date must be on or after start date."})
        return attrs


class StockAdjustmentItemSerializer(serializers.Serializer):
    product_id = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    external_id = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=255)
    direction = serializers.ChoiceField(choices=ADJUSTMENT_DIRECTIONS)
    qty = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))
    warehouse_id = serializers.UUIDField(required=False, allow_null=True)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255)

    def to_adjustment_request(self, data=None):
        data = data if data is not None else self.validated_data
        return AdjustmentRequest(
            direction=data["direction"],
            quantity=data["qty"],
            product_id=data.get("product_id") or None,
            external_id=data.get("external_id") or None,
            warehouse_id=data.get("warehouse_id"),
            reason=data.get("reason") or None,
        )


class StockAdjustmentSerializer(StockAdjustmentItemSerializer):
    def validate(self, attrs):
        if not attrs.get("product_id") and not attrs.get("external_id"):
            raise serializers.ValidationError({"product_id": "Either product_id or external_id is required."})
        return attrs


class BulkStockAdjustmentSerializer(serializers.Serializer):
    warehouse_id = serializers.UUIDField(required=False, allow_null=True)
    updates = StockAdjustmentItemSerializer(many=True, allow_empty=False)

    def validate_updates(self, value):
        if len(value) > BULK_ADJUSTMENT_LIMIT:
            raise serializers.ValidationError(f"At most {BULK_ADJUSTMENT_LIMIT} updates are accepted per request.")
        return value

    def to_adjustment_requests(self):
        item_serializer = StockAdjustmentItemSerializer()
        return [item_serializer.to_adjustment_request(item) for item in self.validated_data["updates"]]


class StockTransferLineSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)

    class Meta:
        model = StockTransferLine
        fields = ["id", "product", "product_name", "quantity"]
        read_only_fields = ["id"]

    def validate_quantity(self, value):
        if value <= 0:
            raise serializers.ValidationError("Transfer quantity must be greater than zero.")
        return value


class StockTransferSerializer(serializers.ModelSerializer):
    lines = StockTransferLineSerializer(many=True)

    class Meta:
        model = StockTransfer
        fields = [
            "id",
            "branch",
            "source_warehouse",
            "destination_warehouse",
            "reference",
            "status",
            "requires_supervisor_approval",
            "approved_by",
            "approved_at",
            "completed_at",
            "notes",
            "created_at",
            "updated_at",
            "lines",
        ]
        read_only_fields = ["id", "branch", "status", "approved_by", "approved_at", "completed_at", "created_at", "updated_at"]

    def validate(self, attrs):
        source = attrs.get("source_warehouse") or getattr(self.instance, "source_warehouse", None)
        destination = attrs.get("destination_warehouse") or getattr(self.instance, "destination_warehouse", None)
        branch_id = self.context.get("branch_id") or getattr(self.instance, "branch_id", None)

        if self.instance is not None and self.instance.status != StockTransfer.Status.DRAFT:
            raise serializers.ValidationError("Only draft transfers can be edited.")
        if source and destination and source.id == destination.id:
            raise serializers.ValidationError({"destination_warehouse": "Destination must differ from source warehouse."})
        if source and branch_id and source.branch_id != branch_id:
            raise serializers.ValidationError({"source_warehouse": "Source warehouse must belong to transfer branch."})
        if destination and branch_id and destination.branch_id != branch_id:
            raise serializers.ValidationError({"destination_warehouse": "Destination warehouse must belong to transfer branch."})
        for line in attrs.get("lines", []):
            if branch_id and line["product"].branch_id != branch_id:
                raise serializers.ValidationError({"lines": "Transfer products must belong to transfer branch."})
        return attrs

    @transaction.atomic
    def create(self, validated_data):
        lines = validated_data.pop("lines", [])
        transfer = StockTransfer.objects.create(**validated_data)
        for line in lines:
            StockTransferLine.objects.create(transfer=transfer, product=line["product"], quantity=line["quantity"])
        return transfer

    @transaction.atomic
    def update(self, instance, validated_data):
        lines = validated_data.pop("lines", None)
        instance = super().update(instance, validated_data)
        if lines is not None:
            instance.lines.all().delete()
            for line in lines:
                StockTransferLine.objects.create(transfer=instance, product=line["product"], quantity=line["quantity"])
        return instance
