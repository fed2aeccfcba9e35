# tests/conftest.py
from __future__ import annotations

import os
import tempfile
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

_TMP = tempfile.mkdtemp(prefix="flatpay-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP}/flatpay_test.db"
os.environ["APP_ENV"] = "test"
os.environ["AUTH_MODE"] = "dev"
os.environ["STORAGE_DIR"] = os.path.join(_TMP, "storage")
os.environ["LOG_LEVEL"] = "WARNING"

import jwt  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from flatpay.clients.storage import LocalObjectStorage, get_storage  # noqa: E402
from flatpay.config import settings  # noqa: E402
from flatpay.db import Base, SessionLocal, engine  # noqa: E402
from flatpay.models import (  # noqa: E402
    CALC_FIXED_PER_UNIT,
    CALC_PER_SQFT,
    Block,
    Profile,
    RecurringCharge,
    Resident,
    Society,
    Unit,
)
from flatpay.services.tenancy import SocietyScope  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.rollback()
        s.close()


@pytest.fixture
def storage(tmp_path) -> LocalObjectStorage:
    return LocalObjectStorage(
        root=str(tmp_path / "objects"),
        bucket="invoices",
        public_base_url="http://testserver/api/storage",
        secret="test-signing-secret",
    )


def make_society(db, name: str = "Green Acres", **kw) -> Society:
    row = Society(
        name=name,
        address="12 Park Street",
        bank_account_name=name,
        bank_account_number="1234567890",
        bank_ifsc_code="TEST0001234",
        due_date_days=kw.pop("due_date_days", 15),
        timezone=kw.pop("timezone", "Asia/Kolkata"),
        **kw,
    )
    db.add(row)
    db.commit()
    return row


def make_profile(db, society: Society, profile_id: str = "admin-1", role: str = "admin") -> Profile:
    row = Profile(id=profile_id, society_id=society.id, name=profile_id, role=role)
    db.add(row)
    db.commit()
    return row


def make_unit(db, society: Society, number: str, size=None, block: Block | None = None) -> Unit:
    row = Unit(
        society_id=society.id,
        unit_number=number,
        size_sqft=Decimal(str(size)) if size is not None else None,
        block_id=block.id if block else None,
    )
    db.add(row)
    db.commit()
    return row


def make_resident(db, society: Society, unit: Unit | None, name: str, phone: str | None = "9876543210", **kw) -> Resident:
    row = Resident(
        society_id=society.id,
        primary_unit_id=unit.id if unit else None,
        name=name,
        phone_number=phone,
        **kw,
    )
    db.add(row)
    db.commit()
    return row


def make_charge(db, society: Society, name: str, calc: str, amount, active: bool = True) -> RecurringCharge:
    row = RecurringCharge(
        society_id=society.id,
        charge_name=name,
        calculation_type=calc,
        amount_or_rate=Decimal(str(amount)),
        is_active=active,
    )
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def world(db):
    """
    One society with two occupied units of 250 and 300 sqft, one resident
    each, and a single per_sqft charge of 2.00: bills come to 500 and 600.
    """
    society = make_society(db)
    profile = make_profile(db, society)
    block = Block(society_id=society.id, block_name="A")
    db.add(block)
    db.commit()
    u1 = make_unit(db, society, "A-101", 250, block)
    u2 = make_unit(db, society, "A-102", 300, block)
    r1 = make_resident(db, society, u1, "Asha Rao", phone="98765 43210")
    r2 = make_resident(db, society, u2, "Vikram Shah", phone="+91 91234 56789")
    charge = make_charge(db, society, "Maintenance", CALC_PER_SQFT, "2.00")
    scope = SocietyScope(db=db, society_id=society.id, profile_id=profile.id)
    return SimpleNamespace(
        society=society,
        profile=profile,
        block=block,
        units=[u1, u2],
        residents=[r1, r2],
        charge=charge,
        scope=scope,
    )


@pytest.fixture
def other_world(db):
    society = make_society(db, name="Blue Ridge")
    profile = make_profile(db, society, profile_id="admin-2")
    unit = make_unit(db, society, "B-1", 1000)
    resident = make_resident(db, society, unit, "Meera Iyer")
    make_charge(db, society, "Maintenance", CALC_FIXED_PER_UNIT, "750.00")
    scope = SocietyScope(db=db, society_id=society.id, profile_id=profile.id)
    return SimpleNamespace(society=society, profile=profile, unit=unit, resident=resident, scope=scope)


JAN_START = date(2025, 1, 1)
JAN_END = date(2025, 1, 31)


@pytest.fixture
def client(storage):
    from flatpay.main import create_app

    app = create_app()
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as c:
        yield c


def auth_headers(profile_id: str) -> dict[str, str]:
    return {settings.dev_header_user_id: profile_id}


def bearer_token(profile_id: str, *, secret: str | None = None, expires_in: int = 3600, audience="authenticated") -> str:
    now = datetime.now(timezone.utc)
    claims = {"sub": profile_id, "iat": now, "exp": now + timedelta(seconds=expires_in)}
    if audience:
        claims["aud"] = audience
    return jwt.encode(claims, secret or settings.jwt_secret, algorithm="HS256")
