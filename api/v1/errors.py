from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from bms.domain.errors import BmsError

LOGGER = logging.getLogger(__name__)


def _to_plain_errors(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): _to_plain_errors(item) for key, item in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_to_plain_errors(item) for item in value]
    return str(value)


def serializer_field_errors(serializer) -> dict[str, Any]:
    return _to_plain_errors(serializer.errors)


def api_error(
    *,
    message: str,
    code: str,
    http_status: int = status.HTTP_400_BAD_REQUEST,
    details: dict[str, Any] | None = None,
) -> Response:
    payload: dict[str, Any] = {
        "error": message,
        "code": code,
        "details": details or {},
    }
    return Response(payload, status=http_status)


def domain_error_response(exc: BmsError) -> Response:
    return api_error(
        message=exc.message,
        code=exc.code,
        http_status=exc.http_status,
        details=exc.details,
    )


def exception_handler(exc, context):
    view = context.get("view")
    view_name = type(view).__name__ if view is not None else "-"
    if isinstance(exc, BmsError):
        LOGGER.warning("%s rejected by %s: %s %s", exc.code, view_name, exc.message, exc.details)
        return domain_error_response(exc)

    response = drf_exception_handler(exc, context)
    if response is None:
        return None
    if isinstance(exc, exceptions.ValidationError):
        LOGGER.warning("validation_error rejected by %s", view_name)
        response.data = {
            "error": "Invalid input.",
            "code": "validation_error",
            "details": {"fields": _to_plain_errors(exc.detail)},
        }
        return response
    detail = response.data.get("detail", "") if isinstance(response.data, Mapping) else ""
    response.data = {
        "error": str(detail) or "Request failed.",
        "code": getattr(detail, "code", None) or "error",
        "details": {},
    }
    return response
