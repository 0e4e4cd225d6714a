"""Exception handlers for the API."""

import typing as t
from copy import deepcopy

import structlog
from django.conf import settings
from django.http import HttpRequest
from ninja.errors import ValidationError as NinjaValidationError
from ninja.responses import Response

from wallet.exceptions import (
    PassNotFoundError,
    PassServiceError,
    PassStorageError,
    PassUnauthorizedError,
    PassValidationError,
)

logger = structlog.get_logger(__name__)

# Fetching is the only read path; storage failures there surface as 403
READ_METHODS = frozenset({"GET", "HEAD"})


def handle_general_exception(request: HttpRequest, exc: Exception | t.Type[Exception]) -> Response:
    """Handle a general exception.

    Args:
        request: The incoming HTTP request.
        exc: The exception.

    Returns:
        The response.
    """
    logger.exception(
        "INTERNAL_SERVER_ERROR",
        method=request.method,
        path=request.path,
        headers=obfuscate(dict(request.headers)),
        query=obfuscate(request.GET.dict()),
    )
    data: dict[str, t.Any] = {"detail": "Internal Server Error."}
    if settings.DEBUG:  # pragma: no cover
        data["error"] = repr(exc)
    return Response(status=500, data=data)


def handle_request_validation_error(
    request: HttpRequest, exc: NinjaValidationError | t.Type[NinjaValidationError]
) -> Response:
    """Handle a malformed request (missing upload, bad JSON body, wrong types)."""
    errors = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', '')}"
        for error in getattr(exc, "errors", [])
    ]
    logger.info("request_validation_failed", path=request.path, errors=errors)
    return Response(status=400, data={"detail": "Invalid request.", "errors": errors})


def handle_bad_request(request: HttpRequest, exc: PassServiceError | t.Type[PassServiceError]) -> Response:
    """Handle template, credential and signing errors."""
    logger.warning("pass_request_failed", path=request.path, error_type=type(exc).__name__, error=str(exc))
    return Response(status=400, data={"detail": str(exc)})


def handle_pass_validation_error(
    request: HttpRequest, exc: PassValidationError | t.Type[PassValidationError]
) -> Response:
    """Handle a pass that violates the pass format."""
    errors = list(getattr(exc, "errors", []))
    logger.warning("pass_validation_failed", path=request.path, errors=errors)
    return Response(status=400, data={"detail": "The pass is invalid.", "errors": errors})


def handle_pass_not_found_error(request: HttpRequest, exc: PassNotFoundError | t.Type[PassNotFoundError]) -> Response:
    """Handle an update of a pass that was never issued."""
    return Response(status=404, data={"detail": str(exc)})


def handle_pass_unauthorized_error(
    request: HttpRequest, exc: PassUnauthorizedError | t.Type[PassUnauthorizedError]
) -> Response:
    """Handle an unknown pass or a wrong authentication token."""
    return Response(status=401, data={"detail": "Unauthorized."})


def handle_pass_storage_error(request: HttpRequest, exc: PassStorageError | t.Type[PassStorageError]) -> Response:
    """Handle a bundle that cannot be read or written."""
    logger.error("pass_storage_failed", method=request.method, path=request.path, error=str(exc))
    status = 403 if request.method in READ_METHODS else 400
    return Response(status=status, data={"detail": str(exc)})


SENSITIVE_KEYS = {"token", "authorization", "authentication", "authenticationtoken", "cookie"}


def obfuscate(data: dict[str, t.Any]) -> dict[str, t.Any]:
    """Obfuscate sensitive data in payloads and headers."""
    new_data = deepcopy(data)
    for key in data.keys():
        if key.lower() in SENSITIVE_KEYS:
            new_data[key] = "********"
    return new_data
