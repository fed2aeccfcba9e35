# flatpay/middleware/structured_logging.py
from __future__ import annotations

import logging
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..config import settings

log = logging.getLogger("flatpay.request")


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    One log record per request: method, path, status_code, latency_ms and the
    caller's profile header. The JSON formatter adds request_id on its own.

    Handlers that resolve a society stash it on request.state.society_id so
    the access line can be filtered per tenant.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        t0 = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            latency_ms = int((time.perf_counter() - t0) * 1000)
            level = logging.WARNING if status_code >= 500 else logging.INFO
            log.log(
                level,
                "%s %s -> %s (%sms)",
                request.method,
                request.url.path,
                status_code,
                latency_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": status_code,
                    "latency_ms": latency_ms,
                    "society_id": getattr(request.state, "society_id", None),
                    "profile_id": request.headers.get(settings.dev_header_user_id),
                },
            )
