import hashlib
import secrets
import uuid

from django.db import models

from core.models import Branch
from inventory.models import Product

API_KEY_PREFIX_LENGTH = 8


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


class Store(models.Model):
    """An external sales channel that pushes stock updates with an API key."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name="stores")
    name = models.CharField(max_length=255)
    key_prefix = models.CharField(max_length=API_KEY_PREFIX_LENGTH, db_index=True)
    key_hash = models.CharField(max_length=64, unique=True)
    is_active = models.BooleanField(default=True)
    last_used_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("branch", "name")
        indexes = [models.Index(fields=["branch", "is_active"], name="store_branch_active_idx")]

    def __str__(self):
        return self.name

    def set_new_api_key(self) -> str:
        """Generate, store the hash of and return a fresh raw key. The raw key is never persisted."""
        raw_key = secrets.token_urlsafe(32)
        self.key_prefix = raw_key[:API_KEY_PREFIX_LENGTH]
        self.key_hash = hash_api_key(raw_key)
        return raw_key


class ProductStoreMapping(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    store = models.ForeignKey(Store, on_delete=models.CASCADE, related_name="product_mappings")
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="store_mappings")
    external_id = models.CharField(max_length=255)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["store", "external_id"], name="uniq_store_external_id"),
        ]
        indexes = [models.Index(fields=["product"], name="storemapping_product_idx")]
