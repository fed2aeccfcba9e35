# flatpay/logging_config.py
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Optional

from .middleware.request_id import get_request_id

# billing identifiers copied from `extra=` into the JSON line
_EXTRA_KEYS = frozenset(
    {
        "society_id",
        "profile_id",
        "batch_id",
        "invoice_id",
        "invoice_number",
        "resident_id",
        "invoice_count",
        "skipped",
        "triggered",
        "rendered",
        "failed",
        "count",
        "status",
        "code",
        "status_code",
        "path",
        "bytes",
        "backend",
        "method",
        "latency_ms",
        "deleted",
        "invoices",
        "entity_id",
    }
)

# third-party loggers that are too chatty at INFO
_QUIET = {
    "sqlalchemy.engine": "SQL_LOG_LEVEL",
    "httpx": "HTTPX_LOG_LEVEL",
    "httpcore": "HTTPX_LOG_LEVEL",
    "reportlab": "PDF_LOG_LEVEL",
}


class JsonFormatter(logging.Formatter):
    """One JSON object per record: time, level, logger, message, request id, billing ids."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        rid = getattr(record, "request_id", None) or get_request_id()
        if rid:
            payload["request_id"] = rid

        for k in _EXTRA_KEYS.intersection(record.__dict__):
            payload[k] = record.__dict__[k]

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str, sort_keys=True)


def configure_logging(level: Optional[str] = None) -> None:
    """Route everything through one stdout JSON handler; safe to call again on reload."""
    lvl = (level or os.getenv("LOG_LEVEL") or "INFO").upper()

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
    root.setLevel(lvl)

    logging.getLogger("uvicorn.access").setLevel(lvl)
    for name, env_key in _QUIET.items():
        logging.getLogger(name).setLevel((os.getenv(env_key) or "WARNING").upper())
