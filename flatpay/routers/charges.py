# flatpay/routers/charges.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth import get_scope, require_manager
from ..schemas import ChargeCreate, ChargeOut, ChargeUpdate
from ..services import directory
from ..services.tenancy import SocietyScope

router = APIRouter(prefix="/charges", tags=["charges"])


@router.get("", response_model=list[ChargeOut])
def list_charges(active: Optional[bool] = Query(default=None), scope: SocietyScope = Depends(get_scope)):
    return directory.list_charges(scope, active=active)


@router.post("", response_model=ChargeOut, status_code=201, dependencies=[Depends(require_manager)])
def create_charge(payload: ChargeCreate, scope: SocietyScope = Depends(get_scope)):
    return directory.create_charge(scope, payload.model_dump())


@router.patch("/{charge_id}", response_model=ChargeOut, dependencies=[Depends(require_manager)])
def update_charge(charge_id: int, payload: ChargeUpdate, scope: SocietyScope = Depends(get_scope)):
    return directory.update_charge(scope, charge_id, payload.model_dump(exclude_unset=True))


@router.delete("/{charge_id}", status_code=204, dependencies=[Depends(require_manager)])
def delete_charge(charge_id: int, scope: SocietyScope = Depends(get_scope)):
    directory.delete_charge(scope, charge_id)
