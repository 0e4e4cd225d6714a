"""Request logging middleware."""

import time
import typing as t
import uuid

import structlog
from django.conf import settings
from django.http import HttpRequest, HttpResponse

logger = structlog.get_logger(__name__)


class StructlogContextMiddleware:
    """Binds request metadata to structlog and logs every finished request.

    Wallet clients identify themselves through the User-Agent header
    (``PassKit/1.0`` and friends), so it is bound along with the request ID,
    method, path and client IP.
    """

    def __init__(self, get_response: t.Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        if not settings.ENABLE_OBSERVABILITY:
            return self.get_response(request)

        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.path,
            ip_address=self._get_client_ip(request),
            user_agent=request.headers.get("User-Agent", ""),
        )

        started = time.monotonic()
        try:
            response = self.get_response(request)
            logger.info(
                "request_finished",
                status_code=response.status_code,
                duration_ms=round((time.monotonic() - started) * 1000, 2),
            )
            response["X-Request-ID"] = request_id
            return response
        finally:
            structlog.contextvars.clear_contextvars()

    def _get_client_ip(self, request: HttpRequest) -> str:
        """Return the first X-Forwarded-For address, falling back to REMOTE_ADDR."""
        x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
        if x_forwarded_for:
            return str(x_forwarded_for.split(",")[0].strip())
        return str(request.META.get("REMOTE_ADDR", "unknown"))
