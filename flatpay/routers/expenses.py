# flatpay/routers/expenses.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ..auth import get_scope, require_manager
from ..schemas import ExpenseCreate, ExpenseOut, ExpenseUpdate
from ..services import directory
from ..services.tenancy import SocietyScope

router = APIRouter(prefix="/expenses", tags=["expenses"])


@router.get("", response_model=list[ExpenseOut])
def list_expenses(limit: int = Query(default=500, ge=1, le=5000), scope: SocietyScope = Depends(get_scope)):
    return directory.list_expenses(scope, limit=limit)


@router.post("", response_model=ExpenseOut, status_code=201, dependencies=[Depends(require_manager)])
def create_expense(payload: ExpenseCreate, scope: SocietyScope = Depends(get_scope)):
    return directory.create_expense(scope, payload.model_dump())


@router.patch("/{expense_id}", response_model=ExpenseOut, dependencies=[Depends(require_manager)])
def update_expense(expense_id: int, payload: ExpenseUpdate, scope: SocietyScope = Depends(get_scope)):
    return directory.update_expense(scope, expense_id, payload.model_dump(exclude_unset=True))


@router.delete("/{expense_id}", status_code=204, dependencies=[Depends(require_manager)])
def delete_expense(expense_id: int, scope: SocietyScope = Depends(get_scope)):
    directory.delete_expense(scope, expense_id)
