# flatpay/services/directory.py
from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import desc, or_
from sqlalchemy.exc import IntegrityError

from ..domain.audit import audit_write, row_snapshot
from ..errors import ConflictError, ValidationError
from ..models import (
    ALLOCATION_RULES,
    CALCULATION_TYPES,
    CHARGE_FREQUENCIES,
    OCCUPANCY_STATUSES,
    Block,
    Expense,
    Invoice,
    RecurringCharge,
    Resident,
    Society,
    Unit,
)
from .tenancy import SocietyScope

log = logging.getLogger("flatpay.directory")

SOCIETY_FIELDS = (
    "name",
    "address",
    "bank_account_name",
    "bank_account_number",
    "bank_ifsc_code",
    "due_date_days",
    "late_fee_amount",
    "late_fee_grace_period_days",
    "timezone",
    "logo_url",
)


def _apply(row: Any, fields: dict[str, Any]) -> None:
    for k, v in fields.items():
        if k in ("id", "society_id"):
            continue
        setattr(row, k, v)


def _commit(scope: SocietyScope, conflict_message: str) -> None:
    try:
        scope.db.commit()
    except IntegrityError as e:
        scope.db.rollback()
        raise ConflictError(conflict_message) from e


def _audit(scope: SocietyScope, action: str, row: Any, *, before: Optional[dict] = None, after: Optional[dict] = None):
    audit_write(
        scope.db,
        society_id=scope.society_id,
        actor_profile_id=scope.profile_id,
        action=action,
        entity_type=type(row).__name__,
        entity_id=row.id,
        before=before,
        after=after,
    )


def _delete(scope: SocietyScope, row: Any, action: str) -> None:
    before = row_snapshot(row)
    _audit(scope, action, row, before=before)
    scope.db.delete(row)
    _commit(scope, f"{type(row).__name__.lower()} is still referenced")
    log.info(action, extra={"society_id": scope.society_id, "entity_id": before["id"]})


# -------------------------
# Society profile
# -------------------------
def update_society(scope: SocietyScope, fields: dict[str, Any]) -> Society:
    society = scope.society()
    unknown = set(fields) - set(SOCIETY_FIELDS)
    if unknown:
        raise ValidationError(f"unknown society fields: {', '.join(sorted(unknown))}")
    if "due_date_days" in fields and (fields["due_date_days"] is None or int(fields["due_date_days"]) < 0):
        raise ValidationError("due_date_days must be zero or positive")

    before = row_snapshot(society)
    _apply(society, fields)
    _audit(scope, "society.update", society, before=before, after=row_snapshot(society))
    scope.db.commit()
    return society


# -------------------------
# Blocks
# -------------------------
def create_block(scope: SocietyScope, *, block_name: str) -> Block:
    name = (block_name or "").strip()
    if not name:
        raise ValidationError("block_name is required")
    if scope.first(Block, Block.block_name == name) is not None:
        raise ConflictError(f"block {name} already exists")
    row = scope.add(Block(block_name=name))
    _commit(scope, f"block {name} already exists")
    return row


def list_blocks(scope: SocietyScope) -> list[Block]:
    return scope.all(Block, order_by=Block.block_name)


def update_block(scope: SocietyScope, block_id: int, *, block_name: str) -> Block:
    row = scope.must_get(Block, block_id, label="block")
    name = (block_name or "").strip()
    if not name:
        raise ValidationError("block_name is required")
    row.block_name = name
    _commit(scope, f"block {name} already exists")
    return row


def delete_block(scope: SocietyScope, block_id: int) -> None:
    row = scope.must_get(Block, block_id, label="block")
    if scope.first(Unit, Unit.block_id == row.id) is not None:
        raise ConflictError("block still has units; move or delete them first")
    _delete(scope, row, "block.delete")


# -------------------------
# Units
# -------------------------
def _check_unit_fields(scope: SocietyScope, fields: dict[str, Any], *, unit_id: Optional[int] = None) -> None:
    if "unit_number" in fields:
        number = (fields["unit_number"] or "").strip()
        if not number:
            raise ValidationError("unit_number is required")
        fields["unit_number"] = number
        dup = scope.first(Unit, Unit.unit_number == number, *([Unit.id != unit_id] if unit_id else []))
        if dup is not None:
            raise ConflictError(f"unit {number} already exists")
    if fields.get("block_id") is not None:
        scope.must_get(Block, fields["block_id"], label="block")
    if fields.get("size_sqft") is not None and fields["size_sqft"] <= 0:
        raise ValidationError("size_sqft must be positive")
    if "occupancy_status" in fields and fields["occupancy_status"] not in OCCUPANCY_STATUSES:
        raise ValidationError(f"occupancy_status must be one of {', '.join(OCCUPANCY_STATUSES)}")


def create_unit(scope: SocietyScope, fields: dict[str, Any]) -> Unit:
    fields = dict(fields)
    fields.setdefault("unit_number", None)
    _check_unit_fields(scope, fields)
    row = scope.add(Unit(**{k: v for k, v in fields.items() if k != "society_id"}))
    _commit(scope, f"unit {fields['unit_number']} already exists")
    return row


def list_units(scope: SocietyScope) -> list[Unit]:
    return scope.all(Unit, order_by=Unit.unit_number)


def update_unit(scope: SocietyScope, unit_id: int, fields: dict[str, Any]) -> Unit:
    row = scope.must_get(Unit, unit_id, label="unit")
    fields = dict(fields)
    _check_unit_fields(scope, fields, unit_id=row.id)
    _apply(row, fields)
    _commit(scope, f"unit {row.unit_number} already exists")
    return row


def delete_unit(scope: SocietyScope, unit_id: int) -> None:
    row = scope.must_get(Unit, unit_id, label="unit")
    if scope.first(Invoice, Invoice.unit_id == row.id) is not None:
        raise ConflictError("unit has invoices and cannot be deleted")
    if scope.first(Resident, Resident.primary_unit_id == row.id) is not None:
        raise ConflictError("unit is assigned to a resident and cannot be deleted")
    _delete(scope, row, "unit.delete")


# -------------------------
# Residents
# -------------------------
def _check_resident_fields(scope: SocietyScope, fields: dict[str, Any]) -> None:
    if "name" in fields and not (fields["name"] or "").strip():
        raise ValidationError("resident name is required")
    if fields.get("primary_unit_id") is not None:
        scope.must_get(Unit, fields["primary_unit_id"], label="unit")
    start, end = fields.get("move_in_date"), fields.get("move_out_date")
    if start and end and end < start:
        raise ValidationError("move_out_date cannot be before move_in_date")


def create_resident(scope: SocietyScope, fields: dict[str, Any]) -> Resident:
    fields = dict(fields)
    fields.setdefault("name", None)
    _check_resident_fields(scope, fields)
    row = scope.add(Resident(**{k: v for k, v in fields.items() if k != "society_id"}))
    scope.db.commit()
    return row


def list_residents(scope: SocietyScope, *, active: Optional[bool] = None, q: Optional[str] = None) -> list[Resident]:
    criteria = []
    if active is not None:
        criteria.append(Resident.is_active.is_(active))
    if q:
        like = f"%{q.strip()}%"
        criteria.append(or_(Resident.name.ilike(like), Resident.phone_number.ilike(like)))
    return scope.all(Resident, *criteria, order_by=Resident.name)


def update_resident(scope: SocietyScope, resident_id: int, fields: dict[str, Any]) -> Resident:
    row = scope.must_get(Resident, resident_id, label="resident")
    merged = {"move_in_date": row.move_in_date, "move_out_date": row.move_out_date, **fields}
    _check_resident_fields(scope, merged)
    before = row_snapshot(row)
    _apply(row, fields)
    _audit(scope, "resident.update", row, before=before, after=row_snapshot(row))
    scope.db.commit()
    return row


def delete_resident(scope: SocietyScope, resident_id: int) -> None:
    row = scope.must_get(Resident, resident_id, label="resident")
    if scope.first(Invoice, Invoice.resident_id == row.id) is not None:
        raise ConflictError(
            "resident has invoices and cannot be deleted; deactivate instead",
            details={"resident_id": row.id},
        )
    _delete(scope, row, "resident.delete")


# -------------------------
# Recurring charges
# -------------------------
def _check_charge_fields(fields: dict[str, Any]) -> None:
    if "charge_name" in fields and not (fields["charge_name"] or "").strip():
        raise ValidationError("charge_name is required")
    if "calculation_type" in fields and fields["calculation_type"] not in CALCULATION_TYPES:
        raise ValidationError(f"calculation_type must be one of {', '.join(CALCULATION_TYPES)}")
    if "frequency" in fields and fields["frequency"] not in CHARGE_FREQUENCIES:
        raise ValidationError(f"frequency must be one of {', '.join(CHARGE_FREQUENCIES)}")
    if "amount_or_rate" in fields and (fields["amount_or_rate"] is None or fields["amount_or_rate"] < 0):
        raise ValidationError("amount_or_rate must be zero or positive")


def create_charge(scope: SocietyScope, fields: dict[str, Any]) -> RecurringCharge:
    fields = dict(fields)
    for k in ("charge_name", "calculation_type", "amount_or_rate"):
        fields.setdefault(k, None)
    _check_charge_fields(fields)
    row = scope.add(RecurringCharge(**{k: v for k, v in fields.items() if k != "society_id"}))
    scope.db.commit()
    return row


def list_charges(scope: SocietyScope, *, active: Optional[bool] = None) -> list[RecurringCharge]:
    criteria = [RecurringCharge.is_active.is_(active)] if active is not None else []
    return scope.all(RecurringCharge, *criteria, order_by=RecurringCharge.charge_name)


def update_charge(scope: SocietyScope, charge_id: int, fields: dict[str, Any]) -> RecurringCharge:
    row = scope.must_get(RecurringCharge, charge_id, label="charge")
    _check_charge_fields(fields)
    _apply(row, fields)
    scope.db.commit()
    return row


def delete_charge(scope: SocietyScope, charge_id: int) -> None:
    row = scope.must_get(RecurringCharge, charge_id, label="charge")
    _delete(scope, row, "charge.delete")


# -------------------------
# Expenses
# -------------------------
def _check_expense_fields(fields: dict[str, Any]) -> None:
    if "amount" in fields and (fields["amount"] is None or fields["amount"] <= 0):
        raise ValidationError("expense amount must be greater than zero")
    if "allocation_rule" in fields and fields["allocation_rule"] not in ALLOCATION_RULES:
        raise ValidationError(f"allocation_rule must be one of {', '.join(ALLOCATION_RULES)}")
    if "expense_date" in fields and fields["expense_date"] is None:
        raise ValidationError("expense_date is required")


def _ensure_unallocated(row: Expense) -> None:
    if row.is_allocated_to_bill or row.allocated_batch_id is not None:
        raise ConflictError(
            "expense is already allocated to an invoice batch",
            details={"expense_id": row.id, "batch_id": row.allocated_batch_id},
        )


def create_expense(scope: SocietyScope, fields: dict[str, Any]) -> Expense:
    fields = dict(fields)
    for k in ("expense_date", "amount"):
        fields.setdefault(k, None)
    _check_expense_fields(fields)
    fields.pop("is_allocated_to_bill", None)
    fields.pop("allocated_batch_id", None)
    row = scope.add(Expense(entered_by_profile_id=scope.profile_id, **{k: v for k, v in fields.items() if k != "society_id"}))
    scope.db.commit()
    return row


def list_expenses(scope: SocietyScope, *, limit: int = 500) -> list[Expense]:
    q = scope.select(Expense).order_by(desc(Expense.expense_date), desc(Expense.id)).limit(limit)
    return list(scope.db.scalars(q).all())


def update_expense(scope: SocietyScope, expense_id: int, fields: dict[str, Any]) -> Expense:
    row = scope.must_get(Expense, expense_id, label="expense")
    _ensure_unallocated(row)
    _check_expense_fields(fields)
    fields = {k: v for k, v in fields.items() if k not in ("is_allocated_to_bill", "allocated_batch_id")}
    _apply(row, fields)
    scope.db.commit()
    return row


def delete_expense(scope: SocietyScope, expense_id: int) -> None:
    row = scope.must_get(Expense, expense_id, label="expense")
    _ensure_unallocated(row)
    _delete(scope, row, "expense.delete")
