from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import (
    APIException,
    AuthenticationFailed,
    MethodNotAllowed,
    NotAcceptable,
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

logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR_MESSAGE = "An unexpected error occurred."

EXCEPTION_CODE_MAP: dict[type[Exception], str] = {
    ValidationError: "VALIDATION_ERROR",
    NotAuthenticated: "UNAUTHORIZED",
    AuthenticationFailed: "UNAUTHORIZED",
    PermissionDenied: "FORBIDDEN",
    DjangoPermissionDenied: "FORBIDDEN",
    NotFound: "NOT_FOUND",
    Http404: "NOT_FOUND",
    MethodNotAllowed: "METHOD_NOT_ALLOWED",
    NotAcceptable: "NOT_ACCEPTABLE",
    UnsupportedMediaType: "UNSUPPORTED_MEDIA_TYPE",
    ParseError: "VALIDATION_ERROR",
    Throttled: "RATE_LIMIT_EXCEEDED",
}


class DomainError(APIException):
    """Business-rule failure with a stable machine-readable code.

    ``errors`` carries optional structured detail (for example the offending items).
    """

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "BAD_REQUEST"
    default_detail = "Request could not be processed."

    def __init__(self, detail=None, *, errors: Any = None):
        super().__init__(detail)
        self.errors = errors


class EntityNotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"
    default_detail = "Not found."


class ItemNotFound(EntityNotFound):
    default_code = "ITEM_NOT_FOUND"
    default_detail = "Item not found"


class SupplierNotFound(EntityNotFound):
    default_code = "SUPPLIER_NOT_FOUND"
    default_detail = "Supplier not found"


class PurchaseOrderNotFound(EntityNotFound):
    default_code = "PO_NOT_FOUND"
    default_detail = "Purchase order not found"


class GoodsReceiptNotFound(EntityNotFound):
    default_code = "RECEIPT_NOT_FOUND"
    default_detail = "Goods receipt not found"


class OrderNotFound(EntityNotFound):
    default_code = "ORDER_NOT_FOUND"
    default_detail = "Order not found"


class QRCodeNotFound(EntityNotFound):
    default_code = "QR_CODE_NOT_FOUND"
    default_detail = "QR code not found"


class RequestNotFound(EntityNotFound):
    default_code = "REQUEST_NOT_FOUND"
    default_detail = "Request not found"


class ItemsNotFound(DomainError):
    default_code = "ITEMS_NOT_FOUND"
    default_detail = "One or more items not found"


class InsufficientStock(DomainError):
    default_code = "INSUFFICIENT_STOCK"
    default_detail = "Insufficient stock"


class InvalidStatusTransition(DomainError):
    default_code = "INVALID_STATUS_TRANSITION"
    default_detail = "Invalid status transition"


class InvalidStatusUpdate(DomainError):
    default_code = "INVALID_STATUS_UPDATE"
    default_detail = "Cannot update status of completed or rejected receipts"


class InvalidOperation(DomainError):
    default_code = "INVALID_OPERATION"
    default_detail = "Operation not allowed"


class ValueOutOfRange(DomainError):
    default_code = "VALIDATION_ERROR"
    default_detail = "Value exceeds the allowed range"


class ItemInUse(DomainError):
    default_code = "ITEM_IN_USE"
    default_detail = "Item is referenced by orders or procurement records and cannot be deleted"


class EmailAlreadyExists(DomainError):
    default_code = "EMAIL_EXISTS"
    default_detail = "Email already in use"


def build_error_envelope(*, code: str, message: str, errors: Any = None) -> dict[str, Any]:
    envelope = {"error": message, "code": code}
    if errors is not None:
        envelope["errors"] = errors
    return envelope


def error_response(
    *,
    code: str,
    message: str,
    errors: Any = None,
    status_code: int = status.HTTP_400_BAD_REQUEST,
) -> Response:
    return Response(build_error_envelope(code=code, message=message, errors=errors), status=status_code)


def custom_exception_handler(exc: Exception, context: dict[str, Any]) -> Response:
    response = drf_exception_handler(exc, context)

    if response is None:
        view_name = context.get("view").__class__.__name__ if context.get("view") else "unknown"
        logger.exception("Unhandled API exception in %s", view_name)
        return error_response(
            code="INTERNAL_SERVER_ERROR",
            message=GENERIC_SERVER_ERROR_MESSAGE,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    view = context.get("view")
    response.data = build_error_envelope(
        code=_build_code(exc, view),
        message=_build_message(exc, response.data, view),
        errors=_normalize_errors(exc, response.data),
    )
    return response


def _is_not_found(exc: Exception) -> bool:
    return isinstance(exc, (NotFound, Http404)) and not isinstance(exc, DomainError)


def _build_code(exc: Exception, view: Any) -> str:
    if isinstance(exc, DomainError):
        return exc.default_code

    if _is_not_found(exc) and getattr(view, "not_found_code", None):
        return view.not_found_code

    for exception_type, stable_code in EXCEPTION_CODE_MAP.items():
        if isinstance(exc, exception_type):
            return stable_code

    if isinstance(exc, APIException):
        return str(getattr(exc, "default_code", "api_error")).upper()

    return "INTERNAL_SERVER_ERROR"


def _build_message(exc: Exception, data: Any, view: Any) -> str:
    if isinstance(exc, ValidationError):
        return _first_error_message(data) or "Validation failed."

    if isinstance(exc, Throttled):
        return "Too many requests, please try again later"

    if _is_not_found(exc) and getattr(view, "not_found_code", None):
        return getattr(view, "not_found_message", None) or "Not found."

    detail = None
    if isinstance(data, Mapping):
        detail = data.get("detail")
    elif isinstance(data, str):
        detail = data

    if detail:
        return str(detail)

    if isinstance(exc, APIException):
        return str(getattr(exc, "detail", "Request failed."))

    return GENERIC_SERVER_ERROR_MESSAGE


def _first_error_message(data: Any, prefix: str = "") -> str | None:
    if isinstance(data, Mapping):
        for key, value in data.items():
            label = key if key != "non_field_errors" else ""
            nested = f"{prefix}.{label}" if prefix and label else (label or prefix)
            message = _first_error_message(value, nested)
            if message:
                return message
        return None

    if isinstance(data, Sequence) and not isinstance(data, str):
        for value in data:
            message = _first_error_message(value, prefix)
            if message:
                return message
        return None

    if data:
        return f"{prefix}: {data}" if prefix else str(data)
    return None


def _normalize_errors(exc: Exception, data: Any) -> Any:
    if isinstance(exc, DomainError):
        return exc.errors

    if isinstance(data, Mapping):
        if set(data.keys()) == {"detail"}:
            return None
        return data

    if isinstance(data, Sequence) and not isinstance(data, str):
        return data

    return None
