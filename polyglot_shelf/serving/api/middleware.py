"""
API Middleware

- Request logging with a request id bound for every log line of the request
- Security headers
"""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
import structlog

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Probes are polled constantly; only failures are worth a line
QUIET_PATHS = frozenset({"/api/v1/health/live", "/api/v1/health/ready"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with its status and duration"""

    def __init__(self, app, slow_request_ms: float = 2000.0):
        super().__init__(app)
        self.slow_request_ms = slow_request_ms

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        path = request.url.path
        started = time.perf_counter()

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            try:
                response = await call_next(request)
            except Exception as e:
                logger.error(
                    "Unhandled error",
                    method=request.method,
                    path=path,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            if path not in QUIET_PATHS or response.status_code >= 400:
                log = logger.warning if duration_ms > self.slow_request_ms else logger.info
                log(
                    "Request completed",
                    method=request.method,
                    path=path,
                    status_code=response.status_code,
                    duration_ms=duration_ms,
                    client=request.client.host if request.client else None,
                )

        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses"""

    HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for name, value in self.HEADERS.items():
            response.headers.setdefault(name, value)
        return response
