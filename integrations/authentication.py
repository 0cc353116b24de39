from __future__ import annotations

import hmac
import logging

from django.utils import timezone
from rest_framework import exceptions
from rest_framework.authentication import BaseAuthentication

from integrations.models import API_KEY_PREFIX_LENGTH, Store, hash_api_key

logger = logging.getLogger("security.authentication")

STORE_KEY_HEADER = "X-Store-Key"


class StorePrincipal:
    """request.user stand-in for calls authenticated with a store API key."""

    is_authenticated = True
    is_anonymous = False
    is_store = True
    is_superuser = False
    is_staff = False

    def __init__(self, store: Store):
        self.store = store
        self.id = store.id
        self.pk = store.pk
        self.branch_id = store.branch_id
        self.username = f"store:{store.name}"

    def __str__(self):
        return self.username


class StoreApiKeyAuthentication(BaseAuthentication):
    """Authenticate integrations by the ``X-Store-Key`` header.

    Requests without the header fall through to the next authentication class.
    """

    def authenticate(self, request):
        raw_key = request.headers.get(STORE_KEY_HEADER)
        if not raw_key:
            return None

        store = self._resolve_store(raw_key.strip())
        if store is None:
            logger.warning("store_key_rejected path=%s", request.path)
            raise exceptions.AuthenticationFailed("Invalid or inactive store key.")

        Store.objects.filter(pk=store.pk).update(last_used_at=timezone.now())
        return StorePrincipal(store), store

    def authenticate_header(self, request):
        return STORE_KEY_HEADER

    def _resolve_store(self, raw_key: str) -> Store | None:
        # Narrow by the stored prefix, then compare the full hash in constant time.
        key_hash = hash_api_key(raw_key)
        candidates = Store.objects.select_related("branch").filter(
            key_prefix=raw_key[:API_KEY_PREFIX_LENGTH], is_active=True
        )
        for store in candidates:
            if hmac.compare_digest(store.key_hash, key_hash):
                return store
        return None
