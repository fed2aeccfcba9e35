# flatpay/routers/units.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..auth import get_scope, require_manager
from ..models import Unit
from ..schemas import UnitCreate, UnitOut, UnitUpdate
from ..services import directory
from ..services.tenancy import SocietyScope

router = APIRouter(prefix="/units", tags=["units"])


@router.get("", response_model=list[UnitOut])
def list_units(scope: SocietyScope = Depends(get_scope)):
    return directory.list_units(scope)


@router.post("", response_model=UnitOut, status_code=201, dependencies=[Depends(require_manager)])
def create_unit(payload: UnitCreate, scope: SocietyScope = Depends(get_scope)):
    return directory.create_unit(scope, payload.model_dump())


@router.get("/{unit_id}", response_model=UnitOut)
def get_unit(unit_id: int, scope: SocietyScope = Depends(get_scope)):
    return scope.must_get(Unit, unit_id, label="unit")


@router.patch("/{unit_id}", response_model=UnitOut, dependencies=[Depends(require_manager)])
def update_unit(unit_id: int, payload: UnitUpdate, scope: SocietyScope = Depends(get_scope)):
    return directory.update_unit(scope, unit_id, payload.model_dump(exclude_unset=True))


@router.delete("/{unit_id}", status_code=204, dependencies=[Depends(require_manager)])
def delete_unit(unit_id: int, scope: SocietyScope = Depends(get_scope)):
    directory.delete_unit(scope, unit_id)
