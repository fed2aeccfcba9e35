# tests/test_invoice_pdf.py
from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from flatpay.clients.storage import LocalObjectStorage, StorageError
from flatpay.domain.invoice_render import InvoiceDocument, render_invoice_pdf
from flatpay.errors import InvalidStateError, PartialFailure, RenderError
from flatpay.models import Invoice
from flatpay.services.batch_state_machine import finalize_batch
from flatpay.services.invoice_generator import generate_invoices
from flatpay.services.invoice_pdf import (
    generate_invoice_pdf,
    raise_for_render_outcome,
    render_batch_pdfs,
    storage_path,
)

from conftest import JAN_END, JAN_START


class BrokenStorage:
    bucket = "invoices"

    def upload(self, path, data, *, content_type="application/pdf"):
        raise StorageError("bucket unavailable")

    def signed_url(self, path, *, ttl_seconds):
        raise AssertionError("not reached")


def _pending(w):
    out = generate_invoices(w.scope, society_id=w.society.id, billing_period_start=JAN_START, billing_period_end=JAN_END)
    finalize_batch(w.scope, out.batch_id)
    invs = w.scope.db.scalars(
        select(Invoice).where(Invoice.invoice_batch_id == out.batch_id).order_by(Invoice.id)
    ).all()
    return out.batch_id, invs


def test_render_produces_pdf_bytes():
    doc = InvoiceDocument(
        society_name="Green Acres <CHS>",
        invoice_number="INV-1-202501-0001",
        generation_date=date(2025, 1, 1),
        due_date=date(2025, 1, 16),
        period_start=JAN_START,
        period_end=JAN_END,
        resident_name="Asha & Co",
        unit_label="Unit A-101, Block A",
        total_amount=Decimal("500.00"),
        amount_paid=Decimal("0.00"),
        balance_due=Decimal("500.00"),
        items=[("Maintenance - Jan 2025", Decimal("500.00"))],
        bank_account_number="1234567890",
    )
    data = render_invoice_pdf(doc)
    assert data[:5] == b"%PDF-"
    assert len(data) > 1000


def test_generate_pdf_uploads_and_stores_signed_url(db, world, storage):
    _, invs = _pending(world)
    inv = invs[0]

    out = generate_invoice_pdf(world.scope, inv.id, storage=storage)

    path = storage_path(inv)
    assert out["path"] == path == f"{world.society.id}/{inv.id}-{inv.invoice_number}.pdf"
    assert storage.file_path(path).read_bytes()[:5] == b"%PDF-"
    assert "signature=" in out["pdf_url"]

    db.refresh(inv)
    assert inv.invoice_pdf_url == out["pdf_url"]
    assert inv.invoice_pdf_path == path


def test_regenerating_pdf_overwrites_same_object(db, world, storage):
    _, invs = _pending(world)
    first = generate_invoice_pdf(world.scope, invs[0].id, storage=storage)
    second = generate_invoice_pdf(world.scope, invs[0].id, storage=storage)

    assert first["path"] == second["path"]
    files = [p for p in storage.root.rglob("*.pdf")]
    assert len(files) == 1


def test_draft_invoice_cannot_be_rendered(db, world, storage):
    generate_invoices(world.scope, society_id=world.society.id, billing_period_start=JAN_START, billing_period_end=JAN_END)
    inv = db.scalars(select(Invoice).order_by(Invoice.id)).first()

    with pytest.raises(InvalidStateError):
        generate_invoice_pdf(world.scope, inv.id, storage=storage)


def test_storage_failure_leaves_url_unset(db, world):
    _, invs = _pending(world)

    with pytest.raises(RenderError):
        generate_invoice_pdf(world.scope, invs[0].id, storage=BrokenStorage())

    db.refresh(invs[0])
    assert invs[0].invoice_pdf_url is None


def test_batch_render_collects_every_outcome(db, world, storage):
    batch_id, invs = _pending(world)

    ok = render_batch_pdfs(world.scope, batch_id, storage=storage)
    assert [r["invoice_id"] for r in ok["rendered"]] == [i.id for i in invs]
    assert ok["failures"] == []
    assert raise_for_render_outcome(ok) is ok

    bad = render_batch_pdfs(world.scope, batch_id, storage=BrokenStorage())
    assert bad["rendered"] == []
    assert [f["invoice_id"] for f in bad["failures"]] == [i.id for i in invs]
    with pytest.raises(RenderError):
        raise_for_render_outcome(bad)


def test_partial_render_outcome_is_207():
    result = {
        "batch_id": 1,
        "rendered": [{"invoice_id": 1, "pdf_url": "http://x/1.pdf"}],
        "failures": [{"invoice_id": 2, "reason": "PDF storage failed"}],
    }
    with pytest.raises(PartialFailure) as ei:
        raise_for_render_outcome(result)
    assert ei.value.status_code == 207
    assert ei.value.details["failures"][0]["invoice_id"] == 2


def test_signed_url_verification(tmp_path):
    s = LocalObjectStorage(root=str(tmp_path), bucket="invoices", public_base_url="http://h/api/storage", secret="k")
    sig = s.sign("invoices", "1/a.pdf", 2_000_000_000)

    assert s.verify("invoices", "1/a.pdf", expires=2_000_000_000, signature=sig, now=1_900_000_000)
    assert not s.verify("invoices", "1/b.pdf", expires=2_000_000_000, signature=sig, now=1_900_000_000)
    assert not s.verify("invoices", "1/a.pdf", expires=2_000_000_000, signature=sig, now=2_000_000_001)
    assert not s.verify("invoices", "../etc/passwd", expires=2_000_000_000, signature=sig, now=1_900_000_000)


def test_upload_rejects_path_traversal(tmp_path):
    s = LocalObjectStorage(root=str(tmp_path), bucket="invoices", secret="k")
    with pytest.raises(StorageError):
        s.upload("../outside.pdf", b"%PDF-")
