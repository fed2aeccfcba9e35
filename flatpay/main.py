# flatpay/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .errors import FlatPayError
from .logging_config import configure_logging
from .middleware.request_id import RequestIdMiddleware, get_request_id
from .middleware.structured_logging import StructuredLoggingMiddleware

from .routers.health import router as health_router
from .routers.society import router as society_router
from .routers.units import router as units_router
from .routers.residents import router as residents_router
from .routers.charges import router as charges_router
from .routers.expenses import router as expenses_router
from .routers.billing import router as billing_router
from .routers.invoices import router as invoices_router
from .routers.reports import router as reports_router
from .routers.storage import router as storage_router

API_PREFIX = "/api"

log = logging.getLogger("flatpay.api")


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


async def flatpay_error_handler(request: Request, exc: FlatPayError) -> JSONResponse:
    level = logging.WARNING if exc.status_code >= 500 else logging.INFO
    log.log(
        level,
        "request_failed",
        extra={
            "request_id": get_request_id(),
            "society_id": getattr(request.state, "society_id", None),
            "code": exc.code,
            "status_code": exc.status_code,
        },
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(title="FlatPay", version=settings.app_version)

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(FlatPayError, flatpay_error_handler)

    # Core
    app.include_router(health_router, prefix=API_PREFIX)
    app.include_router(storage_router, prefix=API_PREFIX)

    # Directory
    app.include_router(society_router, prefix=API_PREFIX)
    app.include_router(units_router, prefix=API_PREFIX)
    app.include_router(residents_router, prefix=API_PREFIX)
    app.include_router(charges_router, prefix=API_PREFIX)
    app.include_router(expenses_router, prefix=API_PREFIX)

    # Billing + payments
    app.include_router(billing_router, prefix=API_PREFIX)
    app.include_router(invoices_router, prefix=API_PREFIX)
    app.include_router(reports_router, prefix=API_PREFIX)

    return app


app = create_app()
