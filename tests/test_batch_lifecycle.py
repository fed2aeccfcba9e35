# tests/test_batch_lifecycle.py
from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from flatpay.db import SessionLocal
from flatpay.errors import ForbiddenError, InvalidStateError, NotFoundError
from flatpay.models import ALLOCATE_EQUAL_ALL, AuditEvent, Expense, Invoice, InvoiceBatch, InvoiceItem
from flatpay.services.batch_state_machine import (
    TRANSITIONS,
    cancel_batch,
    finalize_batch,
    get_batch,
    list_batches,
    mark_sent,
    transition,
)
from flatpay.services.invoice_generator import generate_invoices
from flatpay.services.tenancy import SocietyScope

from conftest import JAN_END, JAN_START


def _generate(w, start=JAN_START, end=JAN_END):
    return generate_invoices(w.scope, society_id=w.society.id, billing_period_start=start, billing_period_end=end)


def _count(db, model, *criteria):
    return db.scalar(select(func.count()).select_from(model).where(*criteria))


def test_finalize_moves_batch_and_invoices_to_pending(db, world):
    out = _generate(world)

    res = finalize_batch(world.scope, out.batch_id)

    assert res == {"batch_id": out.batch_id, "status": "Pending", "updated_invoices": 2}
    batch = get_batch(world.scope, out.batch_id)
    assert batch.status == "Pending"
    assert batch.finalized_at is not None
    assert {i.status for i in batch.invoices} == {"pending"}


def test_finalize_twice_is_invalid_state(db, world):
    out = _generate(world)
    finalize_batch(world.scope, out.batch_id)

    with pytest.raises(InvalidStateError) as ei:
        finalize_batch(world.scope, out.batch_id)
    assert ei.value.details["current_status"] == "Pending"
    assert ei.value.details["expected_status"] == "Draft"


def test_finalize_from_a_stale_session_is_rejected_by_the_guard(db, world):
    out = _generate(world)
    other = SessionLocal()
    try:
        late = SocietyScope(db=other, society_id=world.society.id, profile_id="admin-1")
        stale = get_batch(late, out.batch_id)
        assert stale.status == "Draft"

        finalize_batch(world.scope, out.batch_id)

        # the late session still holds the Draft row in its identity map
        assert stale.status == "Draft"
        with pytest.raises(InvalidStateError) as ei:
            finalize_batch(late, out.batch_id)
        assert ei.value.details["current_status"] == "Pending"
    finally:
        other.close()

    finalized = _count(db, AuditEvent, AuditEvent.action == "batch.finalize", AuditEvent.entity_id == str(out.batch_id))
    assert finalized == 1


def test_finalize_unknown_batch_is_not_found(db, world):
    with pytest.raises(NotFoundError):
        finalize_batch(world.scope, 9999)


def test_cancel_draft_removes_batch_and_invoices(db, world):
    out = _generate(world)
    invoice_ids = [i.id for i in get_batch(world.scope, out.batch_id).invoices]

    res = cancel_batch(world.scope, out.batch_id)

    assert res == {"batch_id": out.batch_id, "deleted_invoices": 2}
    with pytest.raises(NotFoundError):
        get_batch(world.scope, out.batch_id)
    assert _count(db, Invoice, Invoice.id.in_(invoice_ids)) == 0
    assert _count(db, InvoiceItem, InvoiceItem.invoice_id.in_(invoice_ids)) == 0
    assert _count(db, AuditEvent, AuditEvent.action == "batch.cancel") == 1


def test_cancel_releases_allocated_expenses(db, world):
    exp = Expense(
        society_id=world.society.id,
        expense_date=date(2025, 1, 10),
        category="repairs",
        amount=Decimal("90.00"),
        allocation_rule=ALLOCATE_EQUAL_ALL,
    )
    db.add(exp)
    db.commit()

    out = _generate(world)
    db.refresh(exp)
    assert exp.allocated_batch_id == out.batch_id

    cancel_batch(world.scope, out.batch_id)
    db.refresh(exp)
    assert exp.is_allocated_to_bill is False
    assert exp.allocated_batch_id is None

    # the period is free again and the expense is billed once more
    again = _generate(world)
    assert again.total_amount == Decimal("1190.00")


def test_cancel_pending_batch_is_rejected_and_deletes_nothing(db, world):
    out = _generate(world)
    finalize_batch(world.scope, out.batch_id)

    with pytest.raises(InvalidStateError):
        cancel_batch(world.scope, out.batch_id)
    assert _count(db, Invoice, Invoice.invoice_batch_id == out.batch_id) == 2
    assert get_batch(world.scope, out.batch_id).status == "Pending"


def test_cancel_does_not_touch_other_society(db, world, other_world):
    mine = _generate(world)
    theirs = generate_invoices(
        other_world.scope,
        society_id=other_world.society.id,
        billing_period_start=JAN_START,
        billing_period_end=JAN_END,
    )

    cancel_batch(world.scope, mine.batch_id)

    batch = get_batch(other_world.scope, theirs.batch_id)
    assert batch.status == "Draft"
    assert _count(db, Invoice, Invoice.society_id == other_world.society.id) == 1


def test_foreign_batch_is_forbidden(db, world, other_world):
    theirs = generate_invoices(
        other_world.scope,
        society_id=other_world.society.id,
        billing_period_start=JAN_START,
        billing_period_end=JAN_END,
    )

    with pytest.raises(ForbiddenError):
        get_batch(world.scope, theirs.batch_id)
    with pytest.raises(ForbiddenError):
        finalize_batch(world.scope, theirs.batch_id)
    with pytest.raises(ForbiddenError):
        cancel_batch(world.scope, theirs.batch_id)
    assert db.get(InvoiceBatch, theirs.batch_id).status == "Draft"


def test_mark_sent_requires_pending(db, world):
    out = _generate(world)
    with pytest.raises(InvalidStateError):
        mark_sent(world.scope, out.batch_id)
    db.rollback()

    finalize_batch(world.scope, out.batch_id)
    mark_sent(world.scope, out.batch_id)
    db.commit()
    batch = get_batch(world.scope, out.batch_id)
    assert batch.status == "Sent"
    assert batch.sent_at is not None


def test_transition_table_has_no_way_back():
    assert TRANSITIONS["Sent"] == ()
    assert TRANSITIONS["Cancelled"] == ()
    assert "Draft" not in TRANSITIONS["Pending"]


def test_transition_rejects_undeclared_edge(db, world):
    out = _generate(world)
    with pytest.raises(ValueError):
        transition(world.scope, out.batch_id, expected="Draft", target="Sent")


def test_list_batches_is_society_scoped(db, world, other_world):
    _generate(world)
    _generate(world, start=date(2025, 2, 1), end=date(2025, 2, 28))
    generate_invoices(
        other_world.scope,
        society_id=other_world.society.id,
        billing_period_start=JAN_START,
        billing_period_end=JAN_END,
    )

    rows = list_batches(world.scope)
    assert len(rows) == 2
    assert {r.society_id for r in rows} == {world.society.id}
