# tests/test_cli.py
from __future__ import annotations

import sys
from datetime import date
from decimal import Decimal

from flatpay.cli.__main__ import main
from flatpay.cli.seed_demo import seed_demo
from flatpay.db import SessionLocal
from flatpay.models import Invoice
from flatpay.services.batch_state_machine import finalize_batch
from flatpay.services.invoice_generator import generate_invoices
from flatpay.services.tenancy import SocietyScope


def test_seed_demo_is_idempotent_and_billable():
    first = seed_demo()
    again = seed_demo()

    assert first == again
    assert first.units == 8
    assert first.residents == 8

    db = SessionLocal()
    try:
        scope = SocietyScope(db=db, society_id=first.society_id, profile_id=first.profile_id)
        out = generate_invoices(
            scope,
            society_id=first.society_id,
            billing_period_start=date(2025, 1, 1),
            billing_period_end=date(2025, 1, 31),
        )
        assert out.invoice_count == 8
        # sizes 900..1200 sqft in each block at 2.00/sqft, plus 500 sinking fund per unit
        assert out.total_amount == Decimal("2") * 2 * (900 + 1000 + 1100 + 1200) + 8 * Decimal("500")
    finally:
        db.close()


def test_mark_overdue_command(monkeypatch, capsys):
    seeded = seed_demo()
    db = SessionLocal()
    try:
        scope = SocietyScope(db=db, society_id=seeded.society_id)
        out = generate_invoices(
            scope,
            society_id=seeded.society_id,
            billing_period_start=date(2025, 1, 1),
            billing_period_end=date(2025, 1, 31),
        )
        finalize_batch(scope, out.batch_id)
    finally:
        db.close()

    monkeypatch.setattr(sys, "argv", ["flatpay", "mark-overdue", "--as-of", "2099-01-01"])
    main()

    printed = capsys.readouterr().out
    assert f"{seeded.society_id}: 8" in printed

    db = SessionLocal()
    try:
        statuses = {i.status for i in db.query(Invoice).all()}
    finally:
        db.close()
    assert statuses == {"overdue"}
