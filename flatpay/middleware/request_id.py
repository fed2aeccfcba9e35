# flatpay/middleware/request_id.py
from __future__ import annotations

import uuid
from contextvars import ContextVar
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

request_id_ctx: ContextVar[str | None] = ContextVar("flatpay_request_id", default=None)


def get_request_id() -> str | None:
    return request_id_ctx.get()


def _incoming_request_id(request: Request) -> str | None:
    rid = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    # refuse absurd ids from clients; they end up in every log line
    if rid and len(rid) <= 128:
        return rid
    return None


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an id.

    The id is taken from X-Request-ID when the caller supplies one, otherwise
    a UUID4 is generated. It is exposed three ways: the ContextVar read by the
    JSON log formatter, request.state.request_id for handlers, and the
    X-Request-ID response header.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = _incoming_request_id(request) or uuid.uuid4().hex
        request.state.request_id = rid

        token = request_id_ctx.set(rid)
        try:
            resp = await call_next(request)
            resp.headers[REQUEST_ID_HEADER] = rid
            return resp
        finally:
            request_id_ctx.reset(token)
