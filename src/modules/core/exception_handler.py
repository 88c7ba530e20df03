"""DRF exception handler producing one error body shape for every failure.

Shape::

    {
        "type": "validation_error" | "client_error" | "server_error",
        "errors": [{"code": ..., "detail": ..., "attr": ...}],
        "meta": {...}
    }

Domain errors map to their ``status_code``; DRF and Django errors go
through DRF's default handler first and are then reshaped.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from modules.core.exceptions import DomainError, ValidationError

logger = structlog.get_logger(__name__)


def api_exception_handler(exc: Exception, context: Dict[str, Any]) -> Response:
    view = context.get("view")
    log = logger.bind(
        view=type(view).__name__ if view is not None else None,
        error_type=type(exc).__name__,
    )

    if isinstance(exc, DomainError):
        body = _body(
            _error_type(exc.status_code, isinstance(exc, ValidationError)),
            [{"code": exc.code, "detail": exc.detail, "attr": None}],
            exc.meta,
        )
        _log(log, exc.status_code, exc.code, exc.detail)
        return Response(body, status=exc.status_code)

    if isinstance(exc, DjangoValidationError):
        exc = exceptions.ValidationError(
            exc.message_dict if hasattr(exc, "error_dict") else exc.messages
        )

    response = drf_exception_handler(exc, context)
    if response is None:
        log.exception("api.unhandled_exception")
        body = _body(
            "server_error",
            [{"code": "error", "detail": "A server error occurred.", "attr": None}],
        )
        return Response(body, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    if isinstance(exc, exceptions.APIException):
        errors = _flatten(exc.get_full_details())
    else:
        errors = [{"code": "error", "detail": str(exc), "attr": None}]

    body = _body(
        _error_type(
            response.status_code, isinstance(exc, exceptions.ValidationError)
        ),
        errors,
    )
    _log(log, response.status_code, errors[0]["code"] if errors else "error", "")
    response.data = body
    return response


def _body(
    error_type: str,
    errors: List[Dict[str, Any]],
    meta: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return {"type": error_type, "errors": errors, "meta": meta or {}}


def _error_type(status_code: int, is_validation: bool) -> str:
    if status_code >= 500:
        return "server_error"
    if is_validation:
        return "validation_error"
    return "client_error"


def _log(log: Any, status_code: int, code: str, detail: str) -> None:
    if status_code >= 500:
        log.error("api.server_error", status_code=status_code, code=code, detail=detail)
    else:
        log.warning("api.client_error", status_code=status_code, code=code, detail=detail)


def _flatten(details: Any, attr: Optional[str] = None) -> List[Dict[str, Any]]:
    """Turn DRF's nested ``get_full_details()`` output into a flat list."""
    if isinstance(details, dict) and set(details) == {"message", "code"}:
        return [{"code": details["code"], "detail": str(details["message"]), "attr": attr}]

    errors: List[Dict[str, Any]] = []
    if isinstance(details, dict):
        for key, value in details.items():
            if key in ("non_field_errors", "detail") and attr is None:
                child = None
            else:
                child = key if attr is None else f"{attr}.{key}"
            errors.extend(_flatten(value, child))
    elif isinstance(details, list):
        for index, value in enumerate(details):
            if isinstance(value, dict) and set(value) != {"message", "code"}:
                child = str(index) if attr is None else f"{attr}.{index}"
                errors.extend(_flatten(value, child))
            else:
                errors.extend(_flatten(value, attr))
    return errors
