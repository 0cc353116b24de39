from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timezone

REQUEST_FIELDS = ("request_id", "path", "method", "status_code", "duration_ms", "remote_addr", "user_id", "store_id")
STOCK_FIELDS = (
    "branch_id",
    "product_id",
    "warehouse_id",
    "direction",
    "quantity",
    "old_quantity",
    "new_quantity",
    "identifier",
    "error",
)


class JsonFormatter(logging.Formatter):
    """One JSON object per line; known ``extra`` fields are lifted to the top level."""

    fields = REQUEST_FIELDS + STOCK_FIELDS

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, getattr(record, key)) for key in self.fields if getattr(record, key, None) is not None
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        # Decimals and UUIDs from stock events serialize as strings.
        return json.dumps(payload, ensure_ascii=False, default=str)


class RequestLogMiddleware:
    """Assign or propagate ``X-Request-ID`` and log one line per request."""

    def __init__(self, get_response):
        self.get_response = get_response
        self.logger = logging.getLogger("api.request")

    def __call__(self, request):
        started_at = time.perf_counter()
        request.request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        response = self.get_response(request)

        extra = {
            "request_id": request.request_id,
            "method": request.method,
            "path": request.path,
            "status_code": response.status_code,
            "duration_ms": round((time.perf_counter() - started_at) * 1000, 2),
            "remote_addr": request.META.get("REMOTE_ADDR"),
            **_caller_fields(request),
        }
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        self.logger.log(level, "request_completed", extra=extra)

        response["X-Request-ID"] = request.request_id
        return response


def _caller_fields(request):
    # DRF copies the user it authenticated (JWT or store key) onto the Django request.
    user = getattr(request, "user", None)
    if user is None or not getattr(user, "is_authenticated", False):
        return {}
    if getattr(user, "is_store", False):
        return {"store_id": str(user.store.id)}
    return {"user_id": str(user.pk)}
