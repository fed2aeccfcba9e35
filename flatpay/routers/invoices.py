# flatpay/routers/invoices.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth import get_scope, require_manager
from ..clients.storage import ObjectStorage, get_storage
from ..models import Invoice
from ..schemas import (
    InvoiceDetailOut,
    InvoiceOut,
    InvoicePdfOut,
    MarkOverdueIn,
    MarkOverdueOut,
    PaymentIn,
    PaymentOut,
    PaymentResultOut,
)
from ..services.invoice_generator import society_today
from ..services.invoice_pdf import generate_invoice_pdf
from ..services.payments import list_payments, mark_overdue, record_payment
from ..services.tenancy import SocietyScope

router = APIRouter(tags=["invoices"])


@router.get("/invoices", response_model=list[InvoiceOut])
def list_invoices(
    batch_id: Optional[int] = Query(default=None),
    resident_id: Optional[int] = Query(default=None),
    status: Optional[str] = Query(default=None),
    limit: int = Query(default=500, ge=1, le=5000),
    scope: SocietyScope = Depends(get_scope),
):
    criteria = []
    if batch_id is not None:
        criteria.append(Invoice.invoice_batch_id == batch_id)
    if resident_id is not None:
        criteria.append(Invoice.resident_id == resident_id)
    if status:
        criteria.append(Invoice.status == status)
    q = scope.select(Invoice, *criteria).order_by(Invoice.id.desc()).limit(limit)
    return list(scope.db.scalars(q).all())


@router.post("/invoices/mark-overdue", response_model=MarkOverdueOut, dependencies=[Depends(require_manager)])
def mark_overdue_invoices(payload: Optional[MarkOverdueIn] = None, scope: SocietyScope = Depends(get_scope)):
    as_of: date = (payload.as_of if payload else None) or society_today(scope.society())
    return {"as_of": as_of, "marked_overdue": mark_overdue(scope, as_of=as_of)}


@router.get("/invoices/{invoice_id}", response_model=InvoiceDetailOut)
def get_invoice(invoice_id: int, scope: SocietyScope = Depends(get_scope)):
    return scope.must_get(Invoice, invoice_id, label="invoice")


@router.post("/invoices/{invoice_id}/pdf", response_model=InvoicePdfOut, dependencies=[Depends(require_manager)])
def invoice_pdf(
    invoice_id: int,
    scope: SocietyScope = Depends(get_scope),
    storage: ObjectStorage = Depends(get_storage),
):
    return generate_invoice_pdf(scope, invoice_id, storage=storage)


@router.post(
    "/invoices/{invoice_id}/payments",
    response_model=PaymentResultOut,
    status_code=201,
    dependencies=[Depends(require_manager)],
)
def create_payment(invoice_id: int, payload: PaymentIn, scope: SocietyScope = Depends(get_scope)):
    return record_payment(
        scope,
        invoice_id,
        amount=payload.amount,
        payment_date=payload.payment_date,
        payment_method=payload.payment_method,
        reference_number=payload.reference_number,
        notes=payload.notes,
    )


@router.get("/payments", response_model=list[PaymentOut])
def get_payments(
    invoice_id: Optional[int] = Query(default=None),
    limit: int = Query(default=500, ge=1, le=5000),
    scope: SocietyScope = Depends(get_scope),
):
    return list_payments(scope, invoice_id=invoice_id, limit=limit)
