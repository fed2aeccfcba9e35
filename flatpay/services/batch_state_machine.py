# flatpay/services/batch_state_machine.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import desc

from ..domain.audit import audit_write
from ..errors import InvalidStateError
from ..models import (
    BATCH_CANCELLED,
    BATCH_DRAFT,
    BATCH_PENDING,
    BATCH_SENT,
    INVOICE_DRAFT,
    INVOICE_PENDING,
    Invoice,
    InvoiceBatch,
)
from .invoice_generator import delete_batch_invoices, release_expenses
from .tenancy import SocietyScope

log = logging.getLogger("flatpay.billing")

# -----------------------------------------------------------------------------
# Batch lifecycle
#
#   Draft --finalize--> Pending --send--> Sent
#     |
#     +----cancel----> Cancelled (row deleted in the same transaction)
#
# Every edge is one UPDATE ... WHERE status = <expected>. Two requests racing
# on the same batch both issue it; exactly one sees a row change.
# -----------------------------------------------------------------------------

TRANSITIONS: dict[str, tuple[str, ...]] = {
    BATCH_DRAFT: (BATCH_PENDING, BATCH_CANCELLED),
    BATCH_PENDING: (BATCH_SENT,),
    BATCH_SENT: (),
    BATCH_CANCELLED: (),
}


def _utcnow() -> datetime:
    return datetime.utcnow()


def transition(scope: SocietyScope, batch_id: int, *, expected: str, target: str, **values: Any) -> None:
    """
    Guarded status change; does not commit.

    Zero affected rows is explained by re-reading the batch: NotFoundError,
    ForbiddenError, or InvalidStateError naming both statuses.
    """
    if target not in TRANSITIONS.get(expected, ()):
        raise ValueError(f"no transition {expected} -> {target}")

    n = scope.execute(
        scope.update(InvoiceBatch, InvoiceBatch.id == batch_id, InvoiceBatch.status == expected).values(
            status=target, **values
        )
    )
    if n == 1:
        return

    batch = scope.must_get(InvoiceBatch, batch_id, label="invoice batch")
    raise InvalidStateError(
        f"batch is {batch.status}, expected {expected}",
        details={"batch_id": batch_id, "current_status": batch.status, "expected_status": expected},
    )


def finalize_batch(scope: SocietyScope, batch_id: int) -> dict[str, Any]:
    """Draft -> Pending; member invoices draft -> pending."""
    db = scope.db
    try:
        transition(scope, batch_id, expected=BATCH_DRAFT, target=BATCH_PENDING, finalized_at=_utcnow())
        updated = scope.execute(
            scope.update(Invoice, Invoice.invoice_batch_id == batch_id, Invoice.status == INVOICE_DRAFT).values(
                status=INVOICE_PENDING
            )
        )
        audit_write(
            db,
            society_id=scope.society_id,
            actor_profile_id=scope.profile_id,
            action="batch.finalize",
            entity_type="InvoiceBatch",
            entity_id=batch_id,
            before={"status": BATCH_DRAFT},
            after={"status": BATCH_PENDING, "updated_invoices": updated},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    log.info("batch_finalized", extra={"society_id": scope.society_id, "batch_id": batch_id, "invoices": updated})
    return {"batch_id": batch_id, "status": BATCH_PENDING, "updated_invoices": updated}


def cancel_batch(scope: SocietyScope, batch_id: int) -> dict[str, Any]:
    """
    Draft -> Cancelled, then remove the batch entirely.

    Member invoices and their items are deleted and allocated expenses become
    available to the next batch. Fetching the batch afterwards is NotFound.
    """
    db = scope.db
    try:
        transition(scope, batch_id, expected=BATCH_DRAFT, target=BATCH_CANCELLED)
        released = release_expenses(scope, batch_id)
        deleted = delete_batch_invoices(scope, batch_id)
        scope.execute(scope.delete(InvoiceBatch, InvoiceBatch.id == batch_id))
        audit_write(
            db,
            society_id=scope.society_id,
            actor_profile_id=scope.profile_id,
            action="batch.cancel",
            entity_type="InvoiceBatch",
            entity_id=batch_id,
            before={"status": BATCH_DRAFT},
            after={"deleted_invoices": deleted, "released_expenses": released},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    log.info("batch_cancelled", extra={"society_id": scope.society_id, "batch_id": batch_id, "deleted": deleted})
    return {"batch_id": batch_id, "deleted_invoices": deleted}


def mark_sent(scope: SocietyScope, batch_id: int) -> None:
    """Pending -> Sent inside the caller's transaction."""
    transition(scope, batch_id, expected=BATCH_PENDING, target=BATCH_SENT, sent_at=_utcnow())


def list_batches(scope: SocietyScope, *, limit: int = 100) -> list[InvoiceBatch]:
    q = scope.select(InvoiceBatch).order_by(desc(InvoiceBatch.generated_at), desc(InvoiceBatch.id)).limit(limit)
    return list(scope.db.scalars(q).all())


def get_batch(scope: SocietyScope, batch_id: int) -> InvoiceBatch:
    return scope.must_get(InvoiceBatch, batch_id, label="invoice batch")
