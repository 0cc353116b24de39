from rest_framework import serializers

from integrations.models import ProductStoreMapping, Store


class StoreSerializer(serializers.ModelSerializer):
    class Meta:
        model = Store
        fields = ["id", "branch", "name", "key_prefix", "is_active", "last_used_at", "created_at", "updated_at"]
        read_only_fields = ["id", "branch", "key_prefix", "last_used_at", "created_at", "updated_at"]


class ProductStoreMappingSerializer(serializers.ModelSerializer):
    product_sku = serializers.CharField(source="product.sku", read_only=True)

    class Meta:
        model = ProductStoreMapping
        fields = ["id", "store", "product", "product_sku", "external_id", "created_at", "updated_at"]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate(self, attrs):
        store = attrs.get("store") or getattr(self.instance, "store", None)
        product = attrs.get("product") or getattr(self.instance, "product", None)
        branch_id = self.context.get("branch_id")

        if store and product and store.branch_id != product.branch_id:
            raise serializers.ValidationError({"product": "Product must belong to the store branch."})
        if store and branch_id and store.branch_id != branch_id:
            raise serializers.ValidationError({"store": "Store must belong to your branch."})
        return attrs
