# flatpay/routers/residents.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth import get_scope, require_manager
from ..models import Resident
from ..schemas import ResidentCreate, ResidentOut, ResidentUpdate
from ..services import directory
from ..services.tenancy import SocietyScope

router = APIRouter(prefix="/residents", tags=["residents"])


@router.get("", response_model=list[ResidentOut])
def list_residents(
    active: Optional[bool] = Query(default=None),
    q: Optional[str] = Query(default=None, max_length=100),
    scope: SocietyScope = Depends(get_scope),
):
    return directory.list_residents(scope, active=active, q=q)


@router.post("", response_model=ResidentOut, status_code=201, dependencies=[Depends(require_manager)])
def create_resident(payload: ResidentCreate, scope: SocietyScope = Depends(get_scope)):
    return directory.create_resident(scope, payload.model_dump())


@router.get("/{resident_id}", response_model=ResidentOut)
def get_resident(resident_id: int, scope: SocietyScope = Depends(get_scope)):
    return scope.must_get(Resident, resident_id, label="resident")


@router.patch("/{resident_id}", response_model=ResidentOut, dependencies=[Depends(require_manager)])
def update_resident(resident_id: int, payload: ResidentUpdate, scope: SocietyScope = Depends(get_scope)):
    return directory.update_resident(scope, resident_id, payload.model_dump(exclude_unset=True))


@router.delete("/{resident_id}", status_code=204, dependencies=[Depends(require_manager)])
def delete_resident(resident_id: int, scope: SocietyScope = Depends(get_scope)):
    directory.delete_resident(scope, resident_id)
