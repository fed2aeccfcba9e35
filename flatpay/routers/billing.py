# flatpay/routers/billing.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ..auth import get_scope, require_manager
from ..clients.messaging import MessagingClient, get_messaging_client
from ..clients.storage import ObjectStorage, get_storage
from ..schemas import (
    BatchDetailOut,
    BatchOut,
    CancelOut,
    FinalizeOut,
    GenerateInvoicesIn,
    GenerationOut,
    PdfResults,
    SendBatchOut,
)
from ..services import batch_state_machine as batches
from ..services.invoice_generator import generate_invoices, regenerate_batch
from ..services.invoice_pdf import raise_for_render_outcome, render_batch_pdfs
from ..services.notifications import send_batch
from ..services.tenancy import SocietyScope

router = APIRouter(prefix="/billing/batches", tags=["billing"])


@router.post("", response_model=GenerationOut, status_code=201, dependencies=[Depends(require_manager)])
def create_batch(payload: GenerateInvoicesIn, scope: SocietyScope = Depends(get_scope)):
    result = generate_invoices(
        scope,
        society_id=payload.society_id,
        billing_period_start=payload.billing_period_start,
        billing_period_end=payload.billing_period_end,
    )
    return result.as_dict()


@router.get("", response_model=list[BatchOut])
def list_batches(limit: int = Query(default=100, ge=1, le=1000), scope: SocietyScope = Depends(get_scope)):
    return batches.list_batches(scope, limit=limit)


@router.get("/{batch_id}", response_model=BatchDetailOut)
def get_batch(batch_id: int, scope: SocietyScope = Depends(get_scope)):
    return batches.get_batch(scope, batch_id)


@router.post("/{batch_id}/regenerate", response_model=GenerationOut, dependencies=[Depends(require_manager)])
def regenerate(batch_id: int, scope: SocietyScope = Depends(get_scope)):
    return regenerate_batch(scope, batch_id).as_dict()


@router.post("/{batch_id}/finalize", response_model=FinalizeOut, dependencies=[Depends(require_manager)])
def finalize(
    batch_id: int,
    render_pdfs: bool = Query(default=True),
    scope: SocietyScope = Depends(get_scope),
    storage: ObjectStorage = Depends(get_storage),
):
    out = batches.finalize_batch(scope, batch_id)
    if render_pdfs:
        # finalize is already committed; render failures are only reported
        out["pdf_results"] = render_batch_pdfs(scope, batch_id, storage=storage)
    return out


@router.post("/{batch_id}/cancel", response_model=CancelOut, dependencies=[Depends(require_manager)])
def cancel(batch_id: int, scope: SocietyScope = Depends(get_scope)):
    return batches.cancel_batch(scope, batch_id)


@router.post("/{batch_id}/pdfs", response_model=PdfResults, dependencies=[Depends(require_manager)])
def render_pdfs(
    batch_id: int,
    scope: SocietyScope = Depends(get_scope),
    storage: ObjectStorage = Depends(get_storage),
):
    return raise_for_render_outcome(render_batch_pdfs(scope, batch_id, storage=storage))


@router.post("/{batch_id}/send", response_model=SendBatchOut, dependencies=[Depends(require_manager)])
def send(
    batch_id: int,
    scope: SocietyScope = Depends(get_scope),
    client: MessagingClient = Depends(get_messaging_client),
):
    return send_batch(scope, batch_id, client=client)
