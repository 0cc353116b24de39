from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from core.models import AuditLog, Branch, SystemSetting

User = get_user_model()


class EmailOrUsernameTokenObtainPairSerializer(TokenObtainPairSerializer):
    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token["role"] = getattr(user, "role", None)
        token["branch_id"] = str(user.branch_id) if getattr(user, "branch_id", None) else None
        token["is_superuser"] = user.is_superuser
        return token

    def validate(self, attrs):
        username = attrs.get("username", "")
        if username and "@" in username:
            try:
                user = User.objects.get(email__iexact=username)
                attrs["username"] = user.get_username()
            except User.DoesNotExist:
                pass
        return super().validate(attrs)


class BranchSerializer(serializers.ModelSerializer):
    class Meta:
        model = Branch
        fields = ["id", "code", "name", "timezone", "is_active", "created_at", "updated_at"]
        read_only_fields = ["id", "created_at", "updated_at"]


class SystemSettingSerializer(serializers.ModelSerializer):
    class Meta:
        model = SystemSetting
        fields = ["id", "key", "value", "description", "updated_at"]
        read_only_fields = ["id", "updated_at"]

    def validate(self, attrs):
        key = attrs.get("key") or getattr(self.instance, "key", None)
        value = (attrs.get("value") or "").strip()
        if key == SystemSetting.DEFAULT_WAREHOUSE_ID and value:
            from inventory.models import Warehouse

            try:
                exists = Warehouse.objects.filter(id=value, is_active=True).exists()
            except (ValueError, DjangoValidationError):
                exists = False
            if not exists:
                raise serializers.ValidationError({"value": "Default warehouse must reference an active warehouse."})
            attrs["value"] = value
        return attrs


class AuditLogQuerySerializer(serializers.Serializer):
    start_date = serializers.DateTimeField(required=False)
    end_date = serializers.DateTimeField(required=False)
    action = serializers.CharField(required=False, allow_blank=True)
    entity = serializers.CharField(required=False, allow_blank=True)
    entity_id = serializers.UUIDField(required=False)


class AuditLogSerializer(serializers.ModelSerializer):
    actor_username = serializers.CharField(source="actor.username", read_only=True)
    branch_name = serializers.CharField(source="branch.name", read_only=True)

    class Meta:
        model = AuditLog
        fields = [
            "id",
            "actor",
            "actor_username",
            "branch",
            "branch_name",
            "action",
            "entity",
            "entity_id",
            "before_snapshot",
            "after_snapshot",
            "request_id",
            "created_at",
        ]
        read_only_fields = fields
