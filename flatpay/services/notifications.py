# flatpay/services/notifications.py
from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..clients.messaging import InvoiceMessage, MessagingClient, normalize_phone
from ..config import settings
from ..domain.audit import audit_write
from ..domain.fanout import Settled, settle_all
from ..errors import ConflictError, ExternalServiceError, InvalidStateError, ValidationError
from ..models import BATCH_PENDING, BATCH_SENT, INVOICE_PENDING, INVOICE_SENDING, INVOICE_SENT, Invoice, InvoiceBatch
from .batch_state_machine import mark_sent
from .tenancy import SocietyScope

log = logging.getLogger("flatpay.notifications")


def _message_for(inv: Invoice) -> tuple[InvoiceMessage | None, str | None]:
    resident = inv.resident
    phone = normalize_phone(resident.phone_number if resident else None)
    if not phone:
        return None, "resident has no phone number"
    if not inv.invoice_pdf_url:
        return None, "invoice has no PDF URL"
    return (
        InvoiceMessage(
            phone_number=phone,
            name=resident.name,
            invoice_number=inv.invoice_number,
            amount=float(inv.total_amount),
            due_date=inv.due_date.strftime("%d/%m/%Y"),
            invoice_url=inv.invoice_pdf_url,
        ),
        None,
    )


async def _deliver(client: MessagingClient, messages: dict[int, InvoiceMessage]) -> list[Settled]:
    async with client.async_client() as http:
        jobs = {invoice_id: (lambda m=m: client.send(http, m)) for invoice_id, m in messages.items()}
        return await settle_all(jobs, max_concurrency=settings.webhook_max_concurrency)


def _claim(scope: SocietyScope, invoice_ids: list[int]) -> list[int]:
    """Move pending invoices to sending one guarded row at a time; returns the ids this call won."""
    won = []
    for invoice_id in invoice_ids:
        n = scope.execute(
            scope.update(Invoice, Invoice.id == invoice_id, Invoice.status == INVOICE_PENDING).values(
                status=INVOICE_SENDING
            )
        )
        if n == 1:
            won.append(invoice_id)
    return won


def _settle_claims(scope: SocietyScope, *, delivered: list[int], returned: list[int]) -> None:
    if delivered:
        scope.execute(
            scope.update(Invoice, Invoice.id.in_(delivered), Invoice.status == INVOICE_SENDING).values(
                status=INVOICE_SENT
            )
        )
    if returned:
        scope.execute(
            scope.update(Invoice, Invoice.id.in_(returned), Invoice.status == INVOICE_SENDING).values(
                status=INVOICE_PENDING
            )
        )


def send_batch(scope: SocietyScope, batch_id: int, *, client: MessagingClient) -> dict[str, Any]:
    """
    Trigger one messaging webhook per pending invoice of a Pending batch.

    Invoices are claimed (pending -> sending) and committed before any call
    goes out, so overlapping sends never message the same resident twice.
    Calls run concurrently and every outcome is kept. Delivered invoices move
    to sent and the rest go back to pending; the batch moves to Sent when at
    least one delivery worked and otherwise stays Pending for a retry.
    """
    batch = scope.must_get(InvoiceBatch, batch_id, label="invoice batch")
    if batch.status != BATCH_PENDING:
        raise InvalidStateError(
            f"batch is {batch.status}, expected {BATCH_PENDING}",
            details={"batch_id": batch_id, "current_status": batch.status, "expected_status": BATCH_PENDING},
        )
    if not client.enabled():
        raise ExternalServiceError("messaging webhook is not configured")

    invoices = scope.all(
        Invoice, Invoice.invoice_batch_id == batch_id, Invoice.status == INVOICE_PENDING, order_by=Invoice.id
    )
    if not invoices:
        if scope.first(Invoice, Invoice.invoice_batch_id == batch_id, Invoice.status == INVOICE_SENDING) is not None:
            raise ConflictError("another send is already delivering this batch", details={"batch_id": batch_id})
        raise ValidationError("no pending invoices found in this batch", details={"batch_id": batch_id})

    failures: list[dict[str, Any]] = []
    messages: dict[int, InvoiceMessage] = {}
    for inv in invoices:
        msg, reason = _message_for(inv)
        if msg is None:
            failures.append({"invoice_id": inv.id, "reason": reason})
        else:
            messages[inv.id] = msg

    db = scope.db
    try:
        claimed = _claim(scope, list(messages))
        db.commit()
    except Exception:
        db.rollback()
        raise
    if messages and not claimed:
        raise ConflictError(
            "another send is already delivering this batch",
            details={"batch_id": batch_id},
        )
    messages = {invoice_id: messages[invoice_id] for invoice_id in claimed}

    try:
        outcomes = asyncio.run(_deliver(client, messages)) if messages else []
    except Exception:
        _settle_claims(scope, delivered=[], returned=claimed)
        db.commit()
        raise

    delivered: list[int] = []
    for o in outcomes:
        if o.ok:
            delivered.append(int(o.key))
        else:
            failures.append({"invoice_id": int(o.key), "reason": o.error})

    try:
        _settle_claims(scope, delivered=delivered, returned=[i for i in claimed if i not in delivered])
        if delivered:
            try:
                mark_sent(scope, batch_id)
            except InvalidStateError as e:
                # an overlapping send delivered the rest and already closed the batch
                if e.details.get("current_status") != BATCH_SENT:
                    raise
        audit_write(
            db,
            society_id=scope.society_id,
            actor_profile_id=scope.profile_id,
            action="batch.send",
            entity_type="InvoiceBatch",
            entity_id=batch_id,
            after={"delivered": delivered, "failures": failures},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    failures.sort(key=lambda f: f["invoice_id"])
    log.info(
        "batch_sent",
        extra={
            "society_id": scope.society_id,
            "batch_id": batch_id,
            "triggered": len(delivered),
            "failed": len(failures),
        },
    )
    return {
        "batch_id": batch_id,
        "messages_triggered": len(delivered),
        "trigger_failures": len(failures),
        "total_invoices": len(invoices),
        "failures": failures,
    }
