# flatpay/services/invoice_pdf.py
from __future__ import annotations

import logging
from typing import Any

from ..clients.storage import ObjectStorage, StorageError
from ..config import settings
from ..domain.invoice_render import InvoiceDocument, render_invoice_pdf
from ..domain.money import to_money
from ..errors import FlatPayError, InvalidStateError, NotFoundError, PartialFailure, RenderError
from ..models import INVOICE_CANCELLED, INVOICE_DRAFT, Invoice, InvoiceBatch
from .tenancy import SocietyScope

log = logging.getLogger("flatpay.pdf")

_UNRENDERABLE = (INVOICE_DRAFT, INVOICE_CANCELLED)


def storage_path(invoice: Invoice) -> str:
    return f"{invoice.society_id}/{invoice.id}-{invoice.invoice_number}.pdf"


def _document(scope: SocietyScope, inv: Invoice) -> InvoiceDocument:
    if not inv.items:
        raise NotFoundError("invoice has no line items", details={"invoice_id": inv.id})
    resident = inv.resident
    if resident is None:
        raise NotFoundError("resident for invoice not found", details={"invoice_id": inv.id})
    unit = inv.unit
    if unit is None:
        raise NotFoundError("unit for invoice not found", details={"invoice_id": inv.id})
    society = scope.society()

    unit_label = f"Unit {unit.unit_number}"
    if unit.block is not None:
        unit_label = f"{unit_label}, Block {unit.block.block_name}"

    return InvoiceDocument(
        society_name=society.name,
        society_address=society.address,
        invoice_number=inv.invoice_number,
        generation_date=inv.generation_date,
        due_date=inv.due_date,
        period_start=inv.billing_period_start,
        period_end=inv.billing_period_end,
        resident_name=resident.name,
        unit_label=unit_label,
        phone_number=resident.phone_number,
        email=resident.email,
        items=[(i.description, to_money(i.amount)) for i in inv.items],
        total_amount=to_money(inv.total_amount),
        amount_paid=to_money(inv.amount_paid),
        balance_due=to_money(inv.balance_due),
        bank_account_name=society.bank_account_name,
        bank_account_number=society.bank_account_number,
        bank_ifsc_code=society.bank_ifsc_code,
        currency_label=settings.currency_label,
    )


def generate_invoice_pdf(scope: SocietyScope, invoice_id: int, *, storage: ObjectStorage) -> dict[str, Any]:
    """
    Render, upload (overwriting) and sign one invoice PDF, then store the URL.

    Nothing is written to the invoice unless rendering and upload both worked.
    """
    inv = scope.must_get(Invoice, invoice_id, label="invoice")
    if inv.status in _UNRENDERABLE:
        raise InvalidStateError(
            f"cannot render a PDF for a {inv.status} invoice",
            details={"invoice_id": inv.id, "current_status": inv.status},
        )

    doc = _document(scope, inv)
    path = storage_path(inv)

    try:
        pdf_bytes = render_invoice_pdf(doc)
    except Exception as e:
        log.exception("pdf_render_failed", extra={"society_id": scope.society_id, "invoice_id": inv.id})
        raise RenderError(f"PDF rendering failed: {e}", details={"invoice_id": inv.id}) from e

    try:
        storage.upload(path, pdf_bytes, content_type="application/pdf")
        url = storage.signed_url(path, ttl_seconds=settings.pdf_url_ttl_seconds)
    except StorageError as e:
        log.warning("pdf_store_failed", extra={"society_id": scope.society_id, "invoice_id": inv.id})
        raise RenderError(f"PDF storage failed: {e}", details={"invoice_id": inv.id}) from e

    scope.execute(
        scope.update(Invoice, Invoice.id == inv.id).values(invoice_pdf_url=url, invoice_pdf_path=path)
    )
    scope.db.commit()

    log.info("pdf_generated", extra={"society_id": scope.society_id, "invoice_id": inv.id, "bytes": len(pdf_bytes)})
    return {"invoice_id": inv.id, "pdf_url": url, "path": path}


def render_batch_pdfs(scope: SocietyScope, batch_id: int, *, storage: ObjectStorage) -> dict[str, Any]:
    """Render every billed invoice of a batch; one failure never stops the rest."""
    batch = scope.must_get(InvoiceBatch, batch_id, label="invoice batch")
    invoice_ids = [
        i.id
        for i in scope.all(
            Invoice,
            Invoice.invoice_batch_id == batch.id,
            Invoice.status.not_in(_UNRENDERABLE),
            order_by=Invoice.id,
        )
    ]

    rendered: list[dict[str, Any]] = []
    failures: list[dict[str, Any]] = []
    for invoice_id in invoice_ids:
        try:
            out = generate_invoice_pdf(scope, invoice_id, storage=storage)
            rendered.append({"invoice_id": invoice_id, "pdf_url": out["pdf_url"]})
        except FlatPayError as e:
            scope.db.rollback()
            failures.append({"invoice_id": invoice_id, "reason": e.message})

    log.info(
        "batch_pdfs_rendered",
        extra={"society_id": scope.society_id, "batch_id": batch_id, "rendered": len(rendered), "failed": len(failures)},
    )
    return {"batch_id": batch_id, "rendered": rendered, "failures": failures}


def raise_for_render_outcome(result: dict[str, Any]) -> dict[str, Any]:
    """All ok -> result; some failed -> PartialFailure (207); all failed -> RenderError (502)."""
    failures = result.get("failures") or []
    if not failures:
        return result
    if result.get("rendered"):
        raise PartialFailure(
            f"{len(failures)} invoice PDF(s) failed to render",
            details={"rendered": result["rendered"], "failures": failures},
        )
    raise RenderError("every invoice PDF in the batch failed to render", details={"failures": failures})
