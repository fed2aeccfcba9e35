# flatpay/routers/reports.py
from __future__ import annotations

from dataclasses import asdict
from datetime import date

from fastapi import APIRouter, Depends, Query

from ..auth import get_scope
from ..schemas import DashboardOut, LedgerOut, ReceiptsPaymentsOut
from ..services import reports
from ..services.tenancy import SocietyScope

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/ledger/{resident_id}", response_model=LedgerOut)
def member_ledger(
    resident_id: int,
    start: date = Query(...),
    end: date = Query(...),
    scope: SocietyScope = Depends(get_scope),
):
    resident, ledger = reports.member_ledger(scope, resident_id, start=start, end=end)
    return {
        "resident_id": resident.id,
        "resident_name": resident.name,
        "start": ledger.start,
        "end": ledger.end,
        "opening_balance": ledger.opening_balance,
        "closing_balance": ledger.closing_balance,
        "total_charges": ledger.total_charges,
        "total_payments": ledger.total_payments,
        "entries": [asdict(e) for e in ledger.entries],
    }


@router.get("/receipts-payments", response_model=ReceiptsPaymentsOut)
def receipts_payments(start: date = Query(...), end: date = Query(...), scope: SocietyScope = Depends(get_scope)):
    return reports.receipts_and_payments(scope, start=start, end=end)


@router.get("/dashboard", response_model=DashboardOut)
def dashboard(scope: SocietyScope = Depends(get_scope)):
    return reports.dashboard(scope)
