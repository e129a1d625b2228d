"""
Request middleware — logging, timing, request IDs.

Every request gets an X-Request-ID (taken from the caller when present)
and an X-Process-Time header. A send request blocks for up to the ack
timeout, so slow responses are logged with their duration.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from backend.app.core.config import settings
from backend.app.core.logging_config import set_request_context

logger = logging.getLogger(__name__)

_QUIET_PREFIXES = ("/docs", "/redoc", "/openapi", "/favicon", "/health")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and log its status and duration."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        client_ip = request.client.host if request.client else "unknown"
        path = request.url.path

        set_request_context(
            request_id=request_id,
            client_ip=client_ip,
            endpoint=path,
            method=request.method,
        )
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.error(
                "%s %s → 500 (%.1fms)", request.method, path, duration_ms,
                extra={"duration_ms": duration_ms, "status_code": 500, "endpoint": path},
            )
            set_request_context()
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{duration_ms:.1f}ms"

        if not path.startswith(_QUIET_PREFIXES):
            if response.status_code >= 400:
                level = logging.WARNING
            elif duration_ms > settings.SMS_ACK_TIMEOUT_SECONDS * 1000:
                level = logging.WARNING
            else:
                level = logging.INFO
            logger.log(
                level,
                "%s %s → %d (%.1fms) [%s]",
                request.method, path, response.status_code, duration_ms, client_ip,
                extra={
                    "duration_ms": duration_ms,
                    "status_code": response.status_code,
                    "endpoint": path,
                },
            )

        set_request_context()
        return response
