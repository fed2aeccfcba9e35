# flatpay/domain/ledger.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from .money import ZERO, money_sum, to_money


@dataclass(frozen=True)
class LedgerEntry:
    date: date
    description: str
    charge: Optional[Decimal]
    payment: Optional[Decimal]
    running_balance: Decimal
    kind: str  # invoice|payment
    ref_id: int


@dataclass(frozen=True)
class Ledger:
    start: date
    end: date
    opening_balance: Decimal
    entries: list[LedgerEntry] = field(default_factory=list)

    @property
    def total_charges(self) -> Decimal:
        return money_sum(e.charge for e in self.entries if e.charge is not None)

    @property
    def total_payments(self) -> Decimal:
        return money_sum(e.payment for e in self.entries if e.payment is not None)

    @property
    def closing_balance(self) -> Decimal:
        if self.entries:
            return self.entries[-1].running_balance
        return self.opening_balance


def _as_date(v: Any) -> date:
    if isinstance(v, datetime):
        return v.date()
    return v


def _created(row: Any) -> datetime:
    return getattr(row, "created_at", None) or datetime.min


def opening_balance(*, invoices: list[Any], payments: list[Any], start: date) -> Decimal:
    """
    Billed before `start` minus paid before `start` against those same invoices.

    invoices: rows with id, generation_date, total_amount
    payments: rows with invoice_id, payment_date, amount
    """
    prior_ids = set()
    billed = ZERO
    for inv in invoices:
        if _as_date(inv.generation_date) < start:
            prior_ids.add(inv.id)
            billed += to_money(inv.total_amount)

    paid = money_sum(
        p.amount for p in payments if p.invoice_id in prior_ids and _as_date(p.payment_date) < start
    )
    return to_money(billed - paid)


def build_ledger(
    *,
    invoices: list[Any],
    payments: list[Any],
    start: date,
    end: date,
) -> Ledger:
    """
    Chronological charge/payment history with a running balance.

    Charges are invoices generated inside [start, end]; payments are those
    dated inside [start, end]. Same-day rows keep creation order (created_at,
    then invoices before payments, then id).
    """
    if start > end:
        raise ValueError("ledger start date must not be after end date")

    opening = opening_balance(invoices=invoices, payments=payments, start=start)

    rows: list[tuple[tuple, str, Any]] = []
    for inv in invoices:
        d = _as_date(inv.generation_date)
        if start <= d <= end:
            rows.append(((d, _created(inv), 0, inv.id), "invoice", inv))
    for p in payments:
        d = _as_date(p.payment_date)
        if start <= d <= end:
            rows.append(((d, _created(p), 1, p.id), "payment", p))

    rows.sort(key=lambda r: r[0])

    balance = opening
    entries: list[LedgerEntry] = []
    for key, kind, row in rows:
        if kind == "invoice":
            amt = to_money(row.total_amount)
            balance += amt
            entries.append(
                LedgerEntry(
                    date=key[0],
                    description=f"Invoice {row.invoice_number}",
                    charge=amt,
                    payment=None,
                    running_balance=balance,
                    kind=kind,
                    ref_id=int(row.id),
                )
            )
        else:
            amt = to_money(row.amount)
            balance -= amt
            desc = f"Payment - {row.payment_method}"
            ref = getattr(row, "reference_number", None)
            if ref:
                desc = f"{desc} ({ref})"
            entries.append(
                LedgerEntry(
                    date=key[0],
                    description=desc,
                    charge=None,
                    payment=amt,
                    running_balance=balance,
                    kind=kind,
                    ref_id=int(row.id),
                )
            )

    return Ledger(start=start, end=end, opening_balance=opening, entries=entries)
