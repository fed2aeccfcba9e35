# flatpay/cli/seed_demo.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from ..db import init_db, session_scope
from ..models import (
    CALC_FIXED_PER_UNIT,
    CALC_PER_SQFT,
    Block,
    Profile,
    RecurringCharge,
    Resident,
    Society,
    Unit,
)


@dataclass(frozen=True)
class SeedResult:
    society_id: int
    profile_id: str
    units: int
    residents: int


def _get_or_create_society(db: Session, name: str) -> Society:
    row = db.query(Society).filter(Society.name == name).one_or_none()
    if row:
        return row
    row = Society(
        name=name,
        address="1 Demo Road, Pune",
        bank_account_name=name,
        bank_account_number="000111222333",
        bank_ifsc_code="DEMO0000001",
        due_date_days=15,
        late_fee_grace_period_days=5,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _ensure_profile(db: Session, profile_id: str, society_id: int, name: str) -> Profile:
    row = db.get(Profile, profile_id)
    if row:
        row.society_id = society_id
        db.commit()
        return row
    row = Profile(id=profile_id, society_id=society_id, name=name, role="admin")
    db.add(row)
    db.commit()
    return row


def seed_demo(
    *,
    society_name: str = "Demo Heights",
    profile_id: str = "demo-admin",
    profile_name: str = "Demo Admin",
    units_per_block: int = 4,
) -> SeedResult:
    init_db()
    with session_scope() as db:
        society = _get_or_create_society(db, society_name)
        _ensure_profile(db, profile_id, int(society.id), profile_name)

        existing = db.query(Unit).filter(Unit.society_id == society.id).count()
        if existing == 0:
            for block_name in ("A", "B"):
                block = Block(society_id=society.id, block_name=block_name)
                db.add(block)
                db.flush()
                for n in range(1, units_per_block + 1):
                    unit = Unit(
                        society_id=society.id,
                        block_id=block.id,
                        unit_number=f"{block_name}-{100 + n}",
                        size_sqft=Decimal(800 + 100 * n),
                        occupancy_status="occupied",
                    )
                    db.add(unit)
                    db.flush()
                    db.add(
                        Resident(
                            society_id=society.id,
                            primary_unit_id=unit.id,
                            name=f"Resident {unit.unit_number}",
                            phone_number=f"98765{n:05d}",
                            move_in_date=date(2024, 1, 1),
                        )
                    )
            db.add_all(
                [
                    RecurringCharge(
                        society_id=society.id,
                        charge_name="Maintenance",
                        calculation_type=CALC_PER_SQFT,
                        amount_or_rate=Decimal("2.00"),
                    ),
                    RecurringCharge(
                        society_id=society.id,
                        charge_name="Sinking Fund",
                        calculation_type=CALC_FIXED_PER_UNIT,
                        amount_or_rate=Decimal("500.00"),
                    ),
                ]
            )
            db.commit()

        return SeedResult(
            society_id=int(society.id),
            profile_id=profile_id,
            units=db.query(Unit).filter(Unit.society_id == society.id).count(),
            residents=db.query(Resident).filter(Resident.society_id == society.id).count(),
        )
