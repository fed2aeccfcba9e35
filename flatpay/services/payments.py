# flatpay/services/payments.py
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Optional

from sqlalchemy import desc

from ..domain.audit import audit_write, row_snapshot
from ..domain.money import ZERO, to_money
from ..errors import ConflictError, InvalidStateError, ValidationError
from ..models import (
    INVOICE_OVERDUE,
    INVOICE_PAID,
    INVOICE_PARTIALLY_PAID,
    INVOICE_PENDING,
    INVOICE_SENT,
    PAYABLE_INVOICE_STATUSES,
    PAYMENT_METHODS,
    Invoice,
    Payment,
)
from .tenancy import SocietyScope

log = logging.getLogger("flatpay.payments")

OVERDUE_CANDIDATES = (INVOICE_PENDING, INVOICE_SENT, INVOICE_PARTIALLY_PAID)


def record_payment(
    scope: SocietyScope,
    invoice_id: int,
    *,
    amount: Any,
    payment_date: date,
    payment_method: str,
    reference_number: Optional[str] = None,
    notes: Optional[str] = None,
) -> dict[str, Any]:
    """
    Record a payment and apply it to the invoice balance.

    The balance update is guarded on balance_due >= amount, so two payments
    racing on one invoice can never take it below zero; the loser gets a
    ConflictError and nothing is written.
    """
    try:
        amt = to_money(amount)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    if amt <= ZERO:
        raise ValidationError("payment amount must be greater than zero")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"unsupported payment method: {payment_method}",
            details={"allowed_methods": list(PAYMENT_METHODS)},
        )

    inv = scope.must_get(Invoice, invoice_id, label="invoice")
    if inv.status not in PAYABLE_INVOICE_STATUSES:
        raise InvalidStateError(
            f"cannot record a payment on a {inv.status} invoice",
            details={"invoice_id": inv.id, "current_status": inv.status},
        )
    if amt > to_money(inv.balance_due):
        raise ValidationError(
            "payment amount exceeds the balance due",
            details={"invoice_id": inv.id, "balance_due": float(to_money(inv.balance_due))},
        )

    db = scope.db
    try:
        n = scope.execute(
            scope.update(
                Invoice,
                Invoice.id == inv.id,
                Invoice.status.in_(PAYABLE_INVOICE_STATUSES),
                Invoice.balance_due >= amt,
            ).values(
                amount_paid=Invoice.amount_paid + amt,
                balance_due=Invoice.balance_due - amt,
            )
        )
        if n != 1:
            raise ConflictError(
                "invoice changed while recording the payment; the amount now exceeds the balance due",
                details={"invoice_id": inv.id},
            )

        # re-read under the write lock and settle rounding + status
        inv = scope.must_get(Invoice, invoice_id, label="invoice")
        inv.amount_paid = to_money(inv.amount_paid)
        inv.balance_due = to_money(inv.balance_due)
        inv.status = INVOICE_PAID if inv.balance_due <= ZERO else INVOICE_PARTIALLY_PAID

        payment = scope.add(
            Payment(
                invoice_id=inv.id,
                payment_date=payment_date,
                amount=amt,
                payment_method=payment_method,
                reference_number=reference_number,
                notes=notes,
                recorded_by_profile_id=scope.profile_id,
                created_at=datetime.utcnow(),
            )
        )
        db.flush()
        audit_write(
            db,
            society_id=scope.society_id,
            actor_profile_id=scope.profile_id,
            action="payment.record",
            entity_type="Payment",
            entity_id=payment.id,
            after=row_snapshot(payment),
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    log.info(
        "payment_recorded",
        extra={"society_id": scope.society_id, "invoice_id": inv.id, "status": inv.status},
    )
    return {
        "payment_id": payment.id,
        "invoice_id": inv.id,
        "new_balance_due": inv.balance_due,
        "status": inv.status,
    }


def list_payments(scope: SocietyScope, *, invoice_id: Optional[int] = None, limit: int = 500) -> list[Payment]:
    criteria = []
    if invoice_id is not None:
        scope.must_get(Invoice, invoice_id, label="invoice")
        criteria.append(Payment.invoice_id == invoice_id)
    q = scope.select(Payment, *criteria).order_by(desc(Payment.payment_date), desc(Payment.id)).limit(limit)
    return list(scope.db.scalars(q).all())


def mark_overdue(scope: SocietyScope, *, as_of: date) -> int:
    """Unpaid invoices whose due date plus the society's grace days is before as_of become overdue."""
    society = scope.society()
    grace = int(society.late_fee_grace_period_days or 0)
    cutoff = as_of - timedelta(days=grace)

    db = scope.db
    try:
        n = scope.execute(
            scope.update(
                Invoice,
                Invoice.status.in_(OVERDUE_CANDIDATES),
                Invoice.balance_due > 0,
                Invoice.due_date < cutoff,
            ).values(status=INVOICE_OVERDUE)
        )
        if n:
            audit_write(
                db,
                society_id=scope.society_id,
                actor_profile_id=scope.profile_id,
                action="invoice.mark_overdue",
                entity_type="Invoice",
                entity_id="*",
                after={"as_of": as_of.isoformat(), "count": n},
            )
        db.commit()
    except Exception:
        db.rollback()
        raise

    log.info("invoices_marked_overdue", extra={"society_id": scope.society_id, "count": n})
    return n
