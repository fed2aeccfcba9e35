# tests/test_payments.py
from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from flatpay.errors import ForbiddenError, InvalidStateError, ValidationError
from flatpay.models import Invoice, Payment
from flatpay.services.batch_state_machine import finalize_batch
from flatpay.services.invoice_generator import generate_invoices
from flatpay.services.payments import list_payments, mark_overdue, record_payment
from flatpay.services.reports import dashboard, member_ledger, receipts_and_payments

from conftest import JAN_END, JAN_START


def _billed(w, finalize=True):
    out = generate_invoices(w.scope, society_id=w.society.id, billing_period_start=JAN_START, billing_period_end=JAN_END)
    if finalize:
        finalize_batch(w.scope, out.batch_id)
    return w.scope.db.scalars(
        select(Invoice).where(Invoice.invoice_batch_id == out.batch_id).order_by(Invoice.id)
    ).all()


def _pay(w, invoice_id, amount, method="UPI", **kw):
    return record_payment(
        w.scope,
        invoice_id,
        amount=amount,
        payment_date=kw.pop("payment_date", date(2025, 1, 20)),
        payment_method=method,
        **kw,
    )


def test_partial_then_full_payment(db, world):
    inv = _billed(world)[0]
    assert inv.total_amount == Decimal("500.00")

    first = _pay(world, inv.id, Decimal("300"))
    assert first["new_balance_due"] == Decimal("200.00")
    assert first["status"] == "partially_paid"
    db.refresh(inv)
    assert inv.amount_paid == Decimal("300.00")
    assert inv.balance_due == Decimal("200.00")

    second = _pay(world, inv.id, "200.00", method="Cash")
    assert second["new_balance_due"] == Decimal("0.00")
    assert second["status"] == "paid"
    db.refresh(inv)
    assert inv.amount_paid + inv.balance_due == inv.total_amount

    rows = list_payments(world.scope, invoice_id=inv.id)
    assert sorted(p.amount for p in rows) == [Decimal("200.00"), Decimal("300.00")]


def test_overpayment_is_rejected(db, world):
    inv = _billed(world)[0]
    with pytest.raises(ValidationError):
        _pay(world, inv.id, "500.01")
    db.refresh(inv)
    assert inv.balance_due == Decimal("500.00")
    assert db.scalars(select(Payment)).all() == []


@pytest.mark.parametrize("amount", ["0", "-10", "abc"])
def test_non_positive_or_bad_amount_is_rejected(db, world, amount):
    inv = _billed(world)[0]
    with pytest.raises(ValidationError):
        _pay(world, inv.id, amount)


def test_unknown_method_is_rejected(db, world):
    inv = _billed(world)[0]
    with pytest.raises(ValidationError) as ei:
        _pay(world, inv.id, "10", method="Bitcoin")
    assert "UPI" in ei.value.details["allowed_methods"]


def test_draft_invoice_is_not_payable(db, world):
    inv = _billed(world, finalize=False)[0]
    with pytest.raises(InvalidStateError):
        _pay(world, inv.id, "100")


def test_paid_invoice_is_not_payable(db, world):
    inv = _billed(world)[0]
    _pay(world, inv.id, "500")
    with pytest.raises(InvalidStateError):
        _pay(world, inv.id, "1")


def test_payment_on_foreign_invoice_is_forbidden(db, world, other_world):
    theirs = generate_invoices(
        other_world.scope,
        society_id=other_world.society.id,
        billing_period_start=JAN_START,
        billing_period_end=JAN_END,
    )
    finalize_batch(other_world.scope, theirs.batch_id)
    inv = db.scalars(select(Invoice).where(Invoice.invoice_batch_id == theirs.batch_id)).first()

    with pytest.raises(ForbiddenError):
        _pay(world, inv.id, "100")


def test_mark_overdue_honours_grace_period(db, world):
    world.society.late_fee_grace_period_days = 5
    db.commit()
    invs = _billed(world)
    due = invs[0].due_date
    _pay(world, invs[1].id, "600")

    assert mark_overdue(world.scope, as_of=due + timedelta(days=5)) == 0
    assert mark_overdue(world.scope, as_of=due + timedelta(days=6)) == 1

    db.refresh(invs[0])
    db.refresh(invs[1])
    assert invs[0].status == "overdue"
    assert invs[1].status == "paid"

    # overdue invoices still accept payments
    out = _pay(world, invs[0].id, "500")
    assert out["status"] == "paid"


def test_member_ledger_reflects_payments(db, world):
    inv = _billed(world)[0]
    _pay(world, inv.id, "300", reference_number="UTR1", payment_date=inv.generation_date)

    resident, ledger = member_ledger(world.scope, inv.resident_id, start=date(2025, 1, 1), end=date(2099, 12, 31))

    assert resident.id == inv.resident_id
    assert ledger.total_charges == Decimal("500.00")
    assert ledger.total_payments == Decimal("300.00")
    assert ledger.closing_balance == Decimal("200.00")
    assert ledger.entries[-1].description == "Payment - UPI (UTR1)"


def test_member_ledger_rejects_inverted_range(db, world):
    with pytest.raises(ValidationError):
        member_ledger(world.scope, world.residents[0].id, start=date(2025, 2, 1), end=date(2025, 1, 1))


def test_draft_invoices_stay_off_the_ledger(db, world):
    _billed(world, finalize=False)
    _, ledger = member_ledger(world.scope, world.residents[0].id, start=date(2025, 1, 1), end=date(2099, 12, 31))
    assert ledger.entries == []


def test_receipts_and_payments_report(db, world):
    invs = _billed(world)
    _pay(world, invs[0].id, "500", method="UPI")
    _pay(world, invs[1].id, "100", method="Cash")

    out = receipts_and_payments(world.scope, start=date(2025, 1, 1), end=date(2025, 1, 31))

    assert out["total_receipts"] == Decimal("600.00")
    assert out["receipts_by_method"] == {"UPI": Decimal("500.00"), "Cash": Decimal("100.00")}
    assert out["net"] == Decimal("600.00")


def test_dashboard_counts(db, world):
    invs = _billed(world)
    _pay(world, invs[0].id, "500")

    out = dashboard(world.scope)

    assert out["active_residents"] == 2
    assert out["total_units"] == 2
    assert out["paid_invoices"] == 1
    assert out["pending_invoices"] == 1
    assert out["outstanding_balance"] == Decimal("600.00")
