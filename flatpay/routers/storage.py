# flatpay/routers/storage.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse

from ..clients.storage import LocalObjectStorage, ObjectStorage, StorageError, get_storage

router = APIRouter(prefix="/storage", tags=["storage"])


@router.get("/{bucket}/{path:path}")
def download(
    bucket: str,
    path: str,
    expires: int = Query(...),
    signature: str = Query(..., min_length=16),
    storage: ObjectStorage = Depends(get_storage),
):
    """Serves signed URLs of the local backend. The signature is the only credential."""
    if not isinstance(storage, LocalObjectStorage):
        raise HTTPException(status_code=404, detail="Not found")
    if not storage.verify(bucket, path, expires=expires, signature=signature):
        raise HTTPException(status_code=403, detail="Invalid or expired signature")
    try:
        target = storage.file_path(path, bucket=bucket)
    except StorageError:
        raise HTTPException(status_code=404, detail="Not found")
    if not target.is_file():
        raise HTTPException(status_code=404, detail="Not found")
    return FileResponse(target, media_type="application/pdf", filename=target.name)
