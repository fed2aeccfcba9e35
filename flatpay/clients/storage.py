# flatpay/clients/storage.py
from __future__ import annotations

import hashlib
import hmac
import logging
import time
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import quote, urlencode

import httpx

from ..config import settings

log = logging.getLogger("flatpay.storage")


class StorageError(RuntimeError):
    pass


class ObjectStorage(Protocol):
    bucket: str

    def upload(self, path: str, data: bytes, *, content_type: str = "application/pdf") -> None: ...

    def signed_url(self, path: str, *, ttl_seconds: int) -> str: ...


def _clean_path(path: str) -> str:
    p = (path or "").strip().lstrip("/")
    if not p or ".." in p.split("/"):
        raise StorageError(f"invalid object path: {path!r}")
    return p


# -------------------------
# Local filesystem backend
# -------------------------
class LocalObjectStorage:
    """
    Files under {root}/{bucket}/{path}.

    Signed URLs point at the /api/storage route and carry an expiry timestamp
    plus an HMAC-SHA256 over "{bucket}/{path}:{expires}".
    """

    def __init__(
        self,
        *,
        root: Optional[str] = None,
        bucket: Optional[str] = None,
        public_base_url: Optional[str] = None,
        secret: Optional[str] = None,
    ) -> None:
        self.root = Path(root or settings.storage_dir)
        self.bucket = bucket or settings.storage_bucket
        self.public_base_url = (public_base_url or settings.storage_public_base_url).rstrip("/")
        self.secret = (secret or settings.storage_signing_secret).encode("utf-8")

    def file_path(self, path: str, *, bucket: Optional[str] = None) -> Path:
        return self.root / (bucket or self.bucket) / _clean_path(path)

    def upload(self, path: str, data: bytes, *, content_type: str = "application/pdf") -> None:
        target = self.file_path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageError(f"local upload failed for {path}: {e}") from e
        log.info("storage_upload", extra={"backend": "local", "path": path, "bytes": len(data)})

    def sign(self, bucket: str, path: str, expires: int) -> str:
        msg = f"{bucket}/{_clean_path(path)}:{int(expires)}".encode("utf-8")
        return hmac.new(self.secret, msg, hashlib.sha256).hexdigest()

    def signed_url(self, path: str, *, ttl_seconds: int) -> str:
        p = _clean_path(path)
        expires = int(time.time()) + int(ttl_seconds)
        qs = urlencode({"expires": expires, "signature": self.sign(self.bucket, p, expires)})
        return f"{self.public_base_url}/{quote(self.bucket)}/{quote(p)}?{qs}"

    def verify(self, bucket: str, path: str, *, expires: int, signature: str, now: Optional[int] = None) -> bool:
        if int(expires) < int(now if now is not None else time.time()):
            return False
        try:
            expected = self.sign(bucket, path, expires)
        except StorageError:
            return False
        return hmac.compare_digest(expected, signature or "")


# -------------------------
# Supabase storage REST backend
# -------------------------
class SupabaseObjectStorage:
    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        bucket: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base = (base_url or settings.supabase_url or "").rstrip("/")
        self.service_key = service_key or settings.supabase_service_role_key
        self.bucket = bucket or settings.storage_bucket
        self.transport = transport

    def enabled(self) -> bool:
        return bool(self.base and self.service_key)

    def _client(self) -> httpx.Client:
        return httpx.Client(
            timeout=settings.storage_timeout_seconds,
            transport=self.transport,
            headers={"Authorization": f"Bearer {self.service_key}", "apikey": str(self.service_key)},
        )

    def upload(self, path: str, data: bytes, *, content_type: str = "application/pdf") -> None:
        if not self.enabled():
            raise StorageError("supabase storage is not configured")
        url = f"{self.base}/storage/v1/object/{self.bucket}/{_clean_path(path)}"
        try:
            with self._client() as client:
                r = client.post(url, content=data, headers={"Content-Type": content_type, "x-upsert": "true"})
                r.raise_for_status()
        except httpx.HTTPError as e:
            raise StorageError(f"upload failed for {path}: {e}") from e
        log.info("storage_upload", extra={"backend": "supabase", "path": path, "bytes": len(data)})

    def signed_url(self, path: str, *, ttl_seconds: int) -> str:
        if not self.enabled():
            raise StorageError("supabase storage is not configured")
        url = f"{self.base}/storage/v1/object/sign/{self.bucket}/{_clean_path(path)}"
        try:
            with self._client() as client:
                r = client.post(url, json={"expiresIn": int(ttl_seconds)})
                r.raise_for_status()
                data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise StorageError(f"signing failed for {path}: {e}") from e

        signed = data.get("signedURL") or data.get("signedUrl")
        if not signed:
            raise StorageError(f"signing response for {path} had no signedURL")
        if signed.startswith("http"):
            return signed
        return f"{self.base}/storage/v1{signed if signed.startswith('/') else '/' + signed}"


def build_storage() -> ObjectStorage:
    backend = (settings.storage_backend or "local").strip().lower()
    if backend == "supabase":
        return SupabaseObjectStorage()
    if backend == "local":
        return LocalObjectStorage()
    raise StorageError(f"unknown storage_backend: {settings.storage_backend}")


def get_storage() -> ObjectStorage:
    """FastAPI dependency; tests override it with a LocalObjectStorage on tmp_path."""
    return build_storage()
