# flatpay/auth.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import jwt  # PyJWT
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from .config import settings
from .db import get_db
from .models import Profile
from .services.tenancy import SocietyScope


@dataclass(frozen=True)
class Principal:
    profile_id: str
    society_id: int
    role: str  # admin | manager | viewer
    name: str = ""


ROLE_ORDER = {"viewer": 1, "manager": 2, "admin": 3}


def _require_role(principal: Principal, min_role: str) -> None:
    if ROLE_ORDER.get(principal.role, 0) < ROLE_ORDER.get(min_role, 999):
        raise HTTPException(status_code=403, detail=f"Requires role >= {min_role}")


# -------------------------
# JWT
# -------------------------
def decode_token(token: str) -> dict[str, Any]:
    """HS256 bearer token issued by the auth provider; sub is the profile id."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=list(settings.jwt_algorithms),
            audience=settings.jwt_audience,
            options={"require": ["sub", "exp"], "verify_aud": bool(settings.jwt_audience)},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def _bearer(authorization: Optional[str]) -> Optional[str]:
    if authorization and str(authorization).lower().startswith("bearer "):
        return str(authorization).split(" ", 1)[1].strip() or None
    return None


def _principal_for_profile(db: Session, profile_id: str) -> Principal:
    profile = db.get(Profile, profile_id)
    if profile is None:
        raise HTTPException(status_code=401, detail="Unknown profile")
    if profile.society_id is None:
        raise HTTPException(status_code=403, detail="User not associated with any society")
    return Principal(
        profile_id=str(profile.id),
        society_id=int(profile.society_id),
        role=str(profile.role or "viewer"),
        name=str(profile.name or ""),
    )


# -------------------------
# Dependencies
# -------------------------
def get_principal(
    request: Request,
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> Principal:
    """
    Auth modes (settings.auth_mode):
      jwt: Authorization: Bearer <token>
      dev: the X-User-Id header names the profile (refused in prod by config)
    A bearer token is honoured in either mode.
    """
    token = _bearer(authorization)
    if token:
        claims = decode_token(token)
        return _principal_for_profile(db, str(claims["sub"]))

    if (settings.auth_mode or "").strip().lower() == "dev":
        profile_id = (request.headers.get(settings.dev_header_user_id) or "").strip()
        if not profile_id:
            raise HTTPException(status_code=401, detail=f"Missing {settings.dev_header_user_id} for dev auth")
        return _principal_for_profile(db, profile_id)

    raise HTTPException(status_code=401, detail="Not authenticated")


def get_scope(request: Request, db: Session = Depends(get_db), p: Principal = Depends(get_principal)) -> SocietyScope:
    request.state.society_id = p.society_id
    return SocietyScope(db=db, society_id=p.society_id, profile_id=p.profile_id)


def require_manager(p: Principal = Depends(get_principal)) -> Principal:
    _require_role(p, "manager")
    return p


def require_admin(p: Principal = Depends(get_principal)) -> Principal:
    _require_role(p, "admin")
    return p
