from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from rest_framework import status
from rest_framework.exceptions import (
    APIException,
    AuthenticationFailed,
    MethodNotAllowed,
    NotAuthenticated,
    NotFound,
    ParseError,
    PermissionDenied,
    Throttled,
    UnsupportedMediaType,
    ValidationError,
)
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from inventory.exceptions import InventoryError

logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR_MESSAGE = "An unexpected error occurred."

# Checked in order; the first matching class decides the envelope code.
DRF_ERROR_CODES: tuple[tuple[type[APIException], str], ...] = (
    (ValidationError, "validation_error"),
    (NotAuthenticated, "not_authenticated"),
    (AuthenticationFailed, "authentication_failed"),
    (PermissionDenied, "permission_denied"),
    (NotFound, "not_found"),
    (MethodNotAllowed, "method_not_allowed"),
    (UnsupportedMediaType, "unsupported_media_type"),
    (ParseError, "parse_error"),
    (Throttled, "throttled"),
)


def error_envelope(*, code: str, message: str, errors: Any = None, status_code: int) -> dict[str, Any]:
    return {"code": code, "message": message, "errors": errors, "status": status_code}


def custom_exception_handler(exc: Exception, context: dict[str, Any]) -> Response:
    """Render every API error as ``{code, message, errors, status}``.

    Inventory domain errors carry their own code and HTTP status. DRF errors
    keep the status DRF picked and get a stable code. Anything else is a 500
    that is logged with its traceback.
    """
    view_name = context["view"].__class__.__name__ if context.get("view") else "unknown"

    if isinstance(exc, InventoryError):
        if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error("inventory_error view=%s code=%s message=%s", view_name, exc.code, exc.message, exc_info=exc)
        payload = error_envelope(code=exc.code, message=exc.message, errors=exc.errors, status_code=exc.status_code)
        return Response(payload, status=exc.status_code)

    response = drf_exception_handler(exc, context)
    if response is None:
        logger.exception("Unhandled API exception in %s", view_name)
        payload = error_envelope(
            code="internal_server_error",
            message=GENERIC_SERVER_ERROR_MESSAGE,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
        return Response(payload, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    response.data = error_envelope(
        code=_code_for(exc),
        message=_message_for(exc, response.data),
        errors=_field_errors(response.data),
        status_code=response.status_code,
    )
    return response


def _code_for(exc: APIException) -> str:
    for exception_type, code in DRF_ERROR_CODES:
        if isinstance(exc, exception_type):
            return code
    return str(getattr(exc, "default_code", "api_error"))


def _message_for(exc: APIException, data: Any) -> str:
    if isinstance(exc, ValidationError):
        return "Validation failed."
    if isinstance(data, Mapping) and data.get("detail"):
        return str(data["detail"])
    return str(getattr(exc, "detail", "Request failed."))


def _field_errors(data: Any) -> Any:
    # A bare {"detail": ...} is already the message; only field level errors are kept.
    if isinstance(data, Mapping):
        return None if set(data.keys()) == {"detail"} else data
    if isinstance(data, Sequence) and not isinstance(data, str):
        return data
    return None
