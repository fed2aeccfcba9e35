# flatpay/routers/society.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..auth import get_scope, require_admin, require_manager
from ..schemas import BlockIn, BlockOut, SocietyOut, SocietyUpdate
from ..services import directory
from ..services.tenancy import SocietyScope

router = APIRouter(tags=["society"])


@router.get("/society", response_model=SocietyOut)
def get_society(scope: SocietyScope = Depends(get_scope)):
    return scope.society()


@router.patch("/society", response_model=SocietyOut, dependencies=[Depends(require_admin)])
def update_society(payload: SocietyUpdate, scope: SocietyScope = Depends(get_scope)):
    return directory.update_society(scope, payload.model_dump(exclude_unset=True))


@router.get("/blocks", response_model=list[BlockOut])
def list_blocks(scope: SocietyScope = Depends(get_scope)):
    return directory.list_blocks(scope)


@router.post("/blocks", response_model=BlockOut, status_code=201, dependencies=[Depends(require_manager)])
def create_block(payload: BlockIn, scope: SocietyScope = Depends(get_scope)):
    return directory.create_block(scope, block_name=payload.block_name)


@router.patch("/blocks/{block_id}", response_model=BlockOut, dependencies=[Depends(require_manager)])
def update_block(block_id: int, payload: BlockIn, scope: SocietyScope = Depends(get_scope)):
    return directory.update_block(scope, block_id, block_name=payload.block_name)


@router.delete("/blocks/{block_id}", status_code=204, dependencies=[Depends(require_manager)])
def delete_block(block_id: int, scope: SocietyScope = Depends(get_scope)):
    directory.delete_block(scope, block_id)
