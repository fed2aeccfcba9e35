# flatpay/domain/audit.py
from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.inspection import inspect as sa_inspect
from sqlalchemy.orm import Session

from ..models import AuditEvent


def _dumps(v: Optional[dict[str, Any]]) -> Optional[str]:
    if v is None:
        return None
    return json.dumps(v, sort_keys=True, default=str)


def row_snapshot(row: Any) -> dict[str, Any]:
    """Column values of an ORM row, JSON-friendly (dates as ISO, money as str)."""
    out: dict[str, Any] = {}
    for attr in sa_inspect(row).mapper.column_attrs:
        v = getattr(row, attr.key)
        if isinstance(v, (date, datetime)):
            v = v.isoformat()
        elif isinstance(v, Decimal):
            v = str(v)
        out[attr.key] = v
    return out


def audit_write(
    db: Session,
    *,
    society_id: int,
    actor_profile_id: Optional[str],
    action: str,
    entity_type: str,
    entity_id: Any,
    before: Optional[dict[str, Any]] = None,
    after: Optional[dict[str, Any]] = None,
) -> AuditEvent:
    """
    Adds an audit row to the caller's transaction.

    Never commits: the audit row lands (or rolls back) together with the
    change it describes.
    """
    row = AuditEvent(
        society_id=society_id,
        actor_profile_id=actor_profile_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        before_json=_dumps(before),
        after_json=_dumps(after),
        created_at=datetime.utcnow(),
    )
    db.add(row)
    return row
