"""Custom exception handling to enforce the API error envelope."""

import logging
from typing import Any

from django.conf import settings
from django.db import DatabaseError
from rest_framework import status
from rest_framework.exceptions import AuthenticationFailed, NotAuthenticated
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from access_control.errors import (
    AccessControlError,
    ConfigurationError,
    ConstraintError,
    DuplicateError,
    NotFoundError,
)
from authentication.services import BlocklistUnavailable
from core.response import error_response

logger = logging.getLogger(__name__)

# Checked in order: subclasses before their bases.
ACCESS_CONTROL_STATUS = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (DuplicateError, status.HTTP_409_CONFLICT),
    (ConstraintError, status.HTTP_409_CONFLICT),
    (ConfigurationError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (AccessControlError, status.HTTP_400_BAD_REQUEST),
]


def _normalize_errors(payload: Any) -> list[Any]:
    """Convert DRF's response.data into a list for the envelope."""

    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and "detail" in payload:
        # Common DRF pattern: {"detail": "..."}
        return [payload["detail"]]
    return [payload]


def _access_control_status(exc: AccessControlError) -> int:
    for error_cls, code in ACCESS_CONTROL_STATUS:
        if isinstance(exc, error_cls):
            return code
    return status.HTTP_400_BAD_REQUEST


def custom_exception_handler(exc: Exception, context: dict[str, Any]) -> Response | None:
    """Wrap errors in `{ "data": null, "errors": [...] }` shape.

    - Rejected group/rule/grant operations become 400/404/409 with their
      human-readable messages.
    - Uses DRF's default handler to produce the base response otherwise.
    - Optionally exposes more detailed auth errors when DEBUG_AUTH_ERRORS is enabled.
    """

    if isinstance(exc, AccessControlError):
        code = _access_control_status(exc)
        if isinstance(exc, ConfigurationError):
            logger.warning("Request rejected by configuration problem: %s", exc)
        return error_response(exc.messages, status=code)

    # Blocklist connectivity errors are security-critical and must fail-closed with 503.
    if isinstance(exc, BlocklistUnavailable):
        return error_response(
            ["Authentication service unavailable (blocklist)."],
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    # Treat database errors as a temporary service outage and still respect the
    # global envelope format instead of returning Django's HTML 500 page.
    if isinstance(exc, DatabaseError):
        logger.exception("Database error while handling %s", context.get("view"))
        return error_response(
            ["Service temporarily unavailable."], status=status.HTTP_503_SERVICE_UNAVAILABLE
        )

    response = drf_exception_handler(exc, context)

    if response is None:
        return response

    # Auth failures are always 401, whatever DRF's default mapping says.
    if isinstance(exc, (AuthenticationFailed, NotAuthenticated)):
        response.status_code = status.HTTP_401_UNAUTHORIZED

    if response.status_code >= 400:
        base_errors = response.data

        if response.status_code == status.HTTP_401_UNAUTHORIZED:
            if getattr(settings, "DEBUG_AUTH_ERRORS", False):
                errors = _normalize_errors(base_errors)
            else:
                errors = [
                    "Authentication credentials were not provided or are invalid, "
                    "token revoked, or user is disabled."
                ]
        elif response.status_code == status.HTTP_403_FORBIDDEN:
            errors = [
                "You do not have permission to perform this action on this resource."
            ]
        else:
            errors = _normalize_errors(base_errors)

        response.data = {"data": None, "errors": errors}

    return response
