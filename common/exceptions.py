"""API error envelope for the studio backend.

Every error leaves the API as::

    {"code": "<stable code>", "message": "<human text>", "errors": <field errors or null>, "status": <http status>}

Clients branch on ``code``; ``message`` is for display only.
"""

import logging
from collections.abc import Mapping, Sequence

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)

SERVER_ERROR_MESSAGE = "An unexpected error occurred."
VALIDATION_MESSAGE = "Validation failed."
DETAIL_ONLY_KEYS = {"detail", "code", "messages"}


class Conflict(exceptions.APIException):
    """409 for duplicate rows and for state changes the current status forbids."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "The request conflicts with the current state of the resource."
    default_code = "conflict"


# Checked in order; subclasses must come before their bases.
STABLE_CODES = (
    (exceptions.ValidationError, "validation_error"),
    (exceptions.NotAuthenticated, "not_authenticated"),
    (exceptions.AuthenticationFailed, "authentication_failed"),
    (exceptions.PermissionDenied, "permission_denied"),
    (DjangoPermissionDenied, "permission_denied"),
    (exceptions.NotFound, "not_found"),
    (Http404, "not_found"),
    (Conflict, "conflict"),
    (exceptions.MethodNotAllowed, "method_not_allowed"),
    (exceptions.NotAcceptable, "not_acceptable"),
    (exceptions.UnsupportedMediaType, "unsupported_media_type"),
    (exceptions.ParseError, "parse_error"),
    (exceptions.Throttled, "throttled"),
)


def build_error_envelope(*, code, message, errors, status_code):
    return {"code": code, "message": message, "errors": errors, "status": status_code}


def error_response(*, code, message, errors=None, status_code=status.HTTP_400_BAD_REQUEST):
    envelope = build_error_envelope(code=code, message=message, errors=errors, status_code=status_code)
    return Response(envelope, status=status_code)


def custom_exception_handler(exc, context):
    """DRF ``EXCEPTION_HANDLER``: wrap handled errors, turn anything else into a logged 500."""
    response = drf_exception_handler(exc, context)

    if response is None:
        view = context.get("view")
        logger.exception("Unhandled API exception in %s", type(view).__name__ if view else "unknown")
        return error_response(
            code="internal_server_error",
            message=SERVER_ERROR_MESSAGE,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    response.data = build_error_envelope(
        code=stable_code(exc),
        message=error_message(exc, response.data),
        errors=field_errors(response.data),
        status_code=response.status_code,
    )
    return response


def stable_code(exc):
    for exc_class, code in STABLE_CODES:
        if isinstance(exc, exc_class):
            return code
    if isinstance(exc, exceptions.APIException):
        return str(getattr(exc, "default_code", "api_error"))
    return "internal_server_error"


def error_message(exc, data):
    if isinstance(exc, exceptions.ValidationError):
        return VALIDATION_MESSAGE

    detail = data.get("detail") if isinstance(data, Mapping) else data if isinstance(data, str) else None
    if detail:
        return str(detail)
    if isinstance(exc, exceptions.Throttled):
        return "Request was throttled."
    if isinstance(exc, exceptions.APIException):
        return str(getattr(exc, "detail", "Request failed."))
    return SERVER_ERROR_MESSAGE


def field_errors(data):
    # A bare {"detail": ...} payload carries no per-field errors.
    if isinstance(data, Mapping):
        return None if set(data) <= DETAIL_ONLY_KEYS else data
    if isinstance(data, Sequence) and not isinstance(data, str):
        return data
    return None
