# flatpay/services/invoice_generator.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import and_, delete, func, select
from sqlalchemy.exc import IntegrityError

from ..config import settings
from ..domain.audit import audit_write
from ..domain.money import ZERO, money_sum, split_evenly, to_money
from ..errors import ConflictError, ForbiddenError, InvalidStateError, ValidationError
from ..models import (
    ALLOCATE_EQUAL_ALL,
    BATCH_DRAFT,
    CALC_FIXED_PER_UNIT,
    CALC_PER_SQFT,
    INVOICE_DRAFT,
    Expense,
    Invoice,
    InvoiceBatch,
    InvoiceItem,
    RecurringCharge,
    Resident,
    Society,
)
from .tenancy import SocietyScope

log = logging.getLogger("flatpay.billing")


@dataclass(frozen=True)
class GenerationResult:
    batch_id: int
    invoice_count: int
    total_amount: Decimal
    due_date: Optional[date]
    skipped: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "invoice_count": self.invoice_count,
            "total_amount": self.total_amount,
            "due_date": self.due_date,
            "skipped": list(self.skipped),
            "warnings": list(self.warnings),
        }


@dataclass
class _Draft:
    resident: Resident
    items: list[InvoiceItem] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return money_sum(i.amount for i in self.items)


def society_today(society: Society, *, now: Optional[datetime] = None) -> date:
    """Today's date on the society's wall clock (UTC if the zone is unknown)."""
    try:
        tz = ZoneInfo(society.timezone or settings.default_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        tz = ZoneInfo("UTC")
    base = now or datetime.now(tz=ZoneInfo("UTC"))
    return base.astimezone(tz).date()


def period_label(start: date) -> str:
    return start.strftime("%b %Y")


def _invoice_prefix(society_id: int, start: date) -> str:
    return f"INV-{society_id}-{start:%Y%m}-"


def _next_invoice_seq(scope: SocietyScope, prefix: str) -> int:
    numbers = scope.db.scalars(
        select(Invoice.invoice_number).where(
            Invoice.society_id == scope.society_id,
            Invoice.invoice_number.like(f"{prefix}%"),
        )
    ).all()
    seqs = [int(n[len(prefix):]) for n in numbers if n[len(prefix):].isdigit()]
    return (max(seqs) if seqs else 0) + 1


def _billable_residents(scope: SocietyScope) -> list[Resident]:
    rows = scope.all(
        Resident,
        Resident.is_active.is_(True),
        Resident.primary_unit_id.is_not(None),
        order_by=Resident.id,
    )
    return [r for r in rows if r.unit is not None and int(r.unit.society_id) == int(scope.society_id)]


def _active_charges(scope: SocietyScope) -> list[RecurringCharge]:
    return scope.all(RecurringCharge, RecurringCharge.is_active.is_(True), order_by=RecurringCharge.id)


def _allocatable_expenses(scope: SocietyScope, start: date, end: date) -> list[Expense]:
    return scope.all(
        Expense,
        Expense.allocation_rule == ALLOCATE_EQUAL_ALL,
        Expense.is_allocated_to_bill.is_(False),
        Expense.allocated_batch_id.is_(None),
        Expense.expense_date >= start,
        Expense.expense_date <= end,
        order_by=Expense.id,
    )


def _check_unit_sizes(residents: list[Resident], charges: list[RecurringCharge]) -> None:
    if not settings.strict_unit_sizes:
        return
    if not any(c.calculation_type == CALC_PER_SQFT for c in charges):
        return
    missing = sorted({r.unit.unit_number for r in residents if r.unit.size_sqft is None})
    if missing:
        raise ValidationError(
            "units are missing size_sqft for per_sqft charges: " + ", ".join(missing),
            details={"unit_numbers": missing},
        )


def _charge_amount(charge: RecurringCharge, resident: Resident) -> Optional[Decimal]:
    """Line amount, or None when the charge does not apply to this unit."""
    rate = Decimal(str(charge.amount_or_rate))
    if charge.calculation_type == CALC_FIXED_PER_UNIT:
        return to_money(rate)
    if charge.calculation_type == CALC_PER_SQFT:
        size = resident.unit.size_sqft
        if size is None:
            return None
        return to_money(rate * Decimal(str(size)))
    return None


def _fill_batch(
    scope: SocietyScope,
    batch: InvoiceBatch,
    *,
    society: Society,
    residents: list[Resident],
    charges: list[RecurringCharge],
) -> GenerationResult:
    start, end = batch.billing_period_start, batch.billing_period_end
    label = period_label(start)
    warnings: list[str] = []
    skipped: list[dict[str, Any]] = []

    drafts = [_Draft(resident=r) for r in residents]
    for d in drafts:
        for charge in charges:
            amount = _charge_amount(charge, d.resident)
            if amount is None:
                if charge.calculation_type == CALC_PER_SQFT:
                    warnings.append(
                        f"unit {d.resident.unit.unit_number} has no size_sqft; skipped {charge.charge_name}"
                    )
                else:
                    warnings.append(f"unsupported calculation_type {charge.calculation_type!r} on {charge.charge_name}")
                continue
            d.items.append(
                InvoiceItem(
                    description=f"{charge.charge_name} - {label}",
                    amount=amount,
                    related_charge_id=charge.id,
                )
            )

    # one share per unit; co-occupants of a unit divide that unit's share
    by_unit: dict[int, list[_Draft]] = {}
    for d in drafts:
        by_unit.setdefault(int(d.resident.unit.id), []).append(d)

    expenses = _allocatable_expenses(scope, start, end)
    if by_unit:
        for exp in expenses:
            what = exp.description or exp.category
            for members, unit_share in zip(by_unit.values(), split_evenly(exp.amount, len(by_unit))):
                for d, share in zip(members, split_evenly(unit_share, len(members))):
                    d.items.append(
                        InvoiceItem(
                            description=f"Shared expense: {what} - {label}",
                            amount=share,
                            related_expense_id=exp.id,
                        )
                    )
            exp.is_allocated_to_bill = True
            exp.allocated_batch_id = batch.id

    billed = []
    for d in drafts:
        if d.items:
            billed.append(d)
        else:
            skipped.append({"resident_id": d.resident.id, "reason": "no applicable charges"})

    if not billed:
        raise ValidationError(
            "no invoices were generated for this billing period",
            details={"skipped": skipped, "warnings": warnings},
        )

    generation_date = society_today(society)
    due_days = society.due_date_days if society.due_date_days is not None else settings.default_due_date_days
    due_date = generation_date + timedelta(days=int(due_days))

    prefix = _invoice_prefix(scope.society_id, start)
    seq = _next_invoice_seq(scope, prefix)

    for offset, d in enumerate(billed):
        total = d.total
        inv = scope.add(
            Invoice(
                invoice_batch_id=batch.id,
                resident_id=d.resident.id,
                unit_id=d.resident.unit.id,
                invoice_number=f"{prefix}{seq + offset:04d}",
                billing_period_start=start,
                billing_period_end=end,
                generation_date=generation_date,
                due_date=due_date,
                total_amount=total,
                amount_paid=ZERO,
                balance_due=total,
                status=INVOICE_DRAFT,
                generated_by_profile_id=scope.profile_id,
            )
        )
        inv.items = d.items

    batch_total = money_sum(d.total for d in billed)
    batch.total_invoice_count = len(billed)
    batch.total_amount = batch_total
    scope.db.flush()

    return GenerationResult(
        batch_id=batch.id,
        invoice_count=len(billed),
        total_amount=batch_total,
        due_date=due_date,
        skipped=skipped,
        warnings=warnings,
    )


def _prepare(scope: SocietyScope) -> tuple[list[Resident], list[RecurringCharge]]:
    residents = _billable_residents(scope)
    if not residents:
        raise ValidationError("society has no active units to bill")
    charges = _active_charges(scope)
    _check_unit_sizes(residents, charges)
    return residents, charges


def generate_invoices(
    scope: SocietyScope,
    *,
    society_id: int,
    billing_period_start: date,
    billing_period_end: date,
) -> GenerationResult:
    """
    Create a Draft batch with one invoice per active resident/unit.

    Validation happens before any row is written; the batch, its invoices,
    items and expense allocations commit together or not at all.
    """
    if int(society_id) != int(scope.society_id):
        raise ForbiddenError("cannot generate invoices for another society")
    if billing_period_end <= billing_period_start:
        raise ValidationError("billing_period_end must be after billing_period_start")

    society = scope.society()
    existing = scope.first(
        InvoiceBatch,
        and_(
            InvoiceBatch.billing_period_start == billing_period_start,
            InvoiceBatch.billing_period_end == billing_period_end,
        ),
    )
    if existing is not None:
        raise ConflictError(
            "an invoice batch already exists for this billing period",
            details={"batch_id": existing.id},
        )

    residents, charges = _prepare(scope)

    db = scope.db
    try:
        batch = scope.add(
            InvoiceBatch(
                billing_period_start=billing_period_start,
                billing_period_end=billing_period_end,
                status=BATCH_DRAFT,
                total_invoice_count=0,
                total_amount=ZERO,
                generated_by_profile_id=scope.profile_id,
                generated_at=datetime.utcnow(),
            )
        )
        db.flush()

        result = _fill_batch(scope, batch, society=society, residents=residents, charges=charges)
        audit_write(
            db,
            society_id=scope.society_id,
            actor_profile_id=scope.profile_id,
            action="batch.generate",
            entity_type="InvoiceBatch",
            entity_id=batch.id,
            after={"invoice_count": result.invoice_count, "total_amount": str(result.total_amount)},
        )
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError("an invoice batch already exists for this billing period") from e
    except Exception:
        db.rollback()
        raise

    log.info(
        "batch_generated",
        extra={
            "society_id": scope.society_id,
            "batch_id": result.batch_id,
            "invoice_count": result.invoice_count,
            "skipped": len(result.skipped),
        },
    )
    return result


def regenerate_batch(scope: SocietyScope, batch_id: int) -> GenerationResult:
    """
    Rebuild a Draft batch in place from the current directory and charges.

    The batch is claimed with a guarded update before anything is deleted, so
    a finalize that lands first turns this into InvalidStateError.
    """
    society = scope.society()
    db = scope.db
    try:
        claimed = scope.execute(
            scope.update(InvoiceBatch, InvoiceBatch.id == batch_id, InvoiceBatch.status == BATCH_DRAFT).values(
                generated_at=datetime.utcnow(), generated_by_profile_id=scope.profile_id
            )
        )
        batch = scope.must_get(InvoiceBatch, batch_id, label="invoice batch")
        if claimed != 1:
            raise InvalidStateError(
                f"batch is {batch.status}, expected {BATCH_DRAFT}",
                details={"batch_id": batch_id, "current_status": batch.status, "expected_status": BATCH_DRAFT},
            )

        residents, charges = _prepare(scope)
        release_expenses(scope, batch.id)
        delete_batch_invoices(scope, batch.id)

        result = _fill_batch(scope, batch, society=society, residents=residents, charges=charges)
        audit_write(
            db,
            society_id=scope.society_id,
            actor_profile_id=scope.profile_id,
            action="batch.regenerate",
            entity_type="InvoiceBatch",
            entity_id=batch.id,
            after={"invoice_count": result.invoice_count, "total_amount": str(result.total_amount)},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    log.info("batch_regenerated", extra={"society_id": scope.society_id, "batch_id": batch.id})
    return result


# -------------------------
# Shared with the state machine
# -------------------------
def release_expenses(scope: SocietyScope, batch_id: int) -> int:
    return scope.execute(
        scope.update(Expense, Expense.allocated_batch_id == batch_id).values(
            is_allocated_to_bill=False, allocated_batch_id=None
        )
    )


def delete_batch_invoices(scope: SocietyScope, batch_id: int) -> int:
    """Remove the batch's draft invoices and their items; billed invoices are never touched."""
    criteria = (
        Invoice.society_id == scope.society_id,
        Invoice.invoice_batch_id == batch_id,
        Invoice.status == INVOICE_DRAFT,
    )
    invoice_ids = select(Invoice.id).where(*criteria)
    count = int(scope.db.scalar(select(func.count(Invoice.id)).where(*criteria)) or 0)
    scope.execute(delete(InvoiceItem).where(InvoiceItem.invoice_id.in_(invoice_ids)))
    scope.execute(scope.delete(Invoice, *criteria[1:]))
    return count
