# flatpay/services/reports.py
from __future__ import annotations

from datetime import date
from typing import Any

from sqlalchemy import func, select

from ..domain.ledger import Ledger, build_ledger
from ..domain.money import money_sum, to_money
from ..errors import ValidationError
from ..models import (
    BILLED_INVOICE_STATUSES,
    INVOICE_PAID,
    PAYABLE_INVOICE_STATUSES,
    Expense,
    Invoice,
    Payment,
    Resident,
    Unit,
)
from .tenancy import SocietyScope


def member_ledger(scope: SocietyScope, resident_id: int, *, start: date, end: date) -> tuple[Resident, Ledger]:
    if start > end:
        raise ValidationError("start date must not be after end date")

    resident = scope.must_get(Resident, resident_id, label="resident")
    invoices = scope.all(
        Invoice,
        Invoice.resident_id == resident.id,
        Invoice.status.in_(BILLED_INVOICE_STATUSES),
        Invoice.generation_date <= end,
        order_by=Invoice.id,
    )
    invoice_ids = [i.id for i in invoices]
    payments = (
        scope.all(Payment, Payment.invoice_id.in_(invoice_ids), Payment.payment_date <= end, order_by=Payment.id)
        if invoice_ids
        else []
    )
    return resident, build_ledger(invoices=invoices, payments=payments, start=start, end=end)


def receipts_and_payments(scope: SocietyScope, *, start: date, end: date) -> dict[str, Any]:
    """Money received from residents vs expenses incurred in [start, end]."""
    if start > end:
        raise ValidationError("start date must not be after end date")

    payments = scope.all(Payment, Payment.payment_date >= start, Payment.payment_date <= end)
    expenses = scope.all(Expense, Expense.expense_date >= start, Expense.expense_date <= end)

    receipts = money_sum(p.amount for p in payments)
    spent = money_sum(e.amount for e in expenses)

    by_method: dict[str, Any] = {}
    for p in payments:
        by_method[p.payment_method] = to_money(by_method.get(p.payment_method)) + to_money(p.amount)
    by_category: dict[str, Any] = {}
    for e in expenses:
        by_category[e.category] = to_money(by_category.get(e.category)) + to_money(e.amount)

    return {
        "start": start,
        "end": end,
        "total_receipts": receipts,
        "total_payments": spent,
        "net": receipts - spent,
        "receipts_by_method": by_method,
        "payments_by_category": by_category,
    }


def dashboard(scope: SocietyScope) -> dict[str, Any]:
    db = scope.db
    sid = scope.society_id

    def _count(model, *criteria) -> int:
        return int(db.scalar(select(func.count()).select_from(model).where(model.society_id == sid, *criteria)) or 0)

    outstanding = db.scalar(
        select(func.coalesce(func.sum(Invoice.balance_due), 0)).where(
            Invoice.society_id == sid, Invoice.status.in_(PAYABLE_INVOICE_STATUSES)
        )
    )

    return {
        "active_residents": _count(Resident, Resident.is_active.is_(True)),
        "total_units": _count(Unit),
        "occupied_units": _count(Unit, Unit.occupancy_status == "occupied"),
        "pending_invoices": _count(Invoice, Invoice.status.in_(PAYABLE_INVOICE_STATUSES)),
        "paid_invoices": _count(Invoice, Invoice.status == INVOICE_PAID),
        "outstanding_balance": to_money(outstanding),
    }
