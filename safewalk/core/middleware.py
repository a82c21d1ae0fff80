"""
Request middleware — per-user request logging and correlation IDs.

Every request line names the acting user (``X-User-ID``) so a user's
trip can be followed through the log. SOS traffic is logged at WARNING
regardless of outcome; an emergency request should never be filtered
out by an INFO threshold.

Response headers:
    X-Request-ID     correlation ID (echoed or generated)
    X-Process-Time   handling time in milliseconds
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from safewalk.core.logging_config import set_log_context

logger = logging.getLogger(__name__)

_QUIET_PREFIXES = ("/docs", "/redoc", "/openapi", "/favicon", "/health")
_SOS_PREFIX = "/api/v1/sos"


def _level_for(path: str, status_code: int) -> int:
    if path.startswith(_SOS_PREFIX) or status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One log line per request, tagged with request id and user id."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        user_id = request.headers.get("X-User-ID") or "-"
        path = request.url.path

        set_log_context(request_id=request_id, user_id=user_id, endpoint=path)
        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            if not path.startswith(_QUIET_PREFIXES):
                logger.log(
                    _level_for(path, status_code),
                    "%s %s user=%s → %d (%.1fms)",
                    request.method, path, user_id, status_code, duration_ms,
                    extra={
                        "user_id": user_id,
                        "status_code": status_code,
                        "duration_ms": duration_ms,
                        "endpoint": path,
                    },
                )
            set_log_context()

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{duration_ms:.1f}ms"
        return response
