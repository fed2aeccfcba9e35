# flatpay/domain/money.py
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Iterable

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(v: Any) -> Decimal:
    """Two-decimal currency value, half-up. None counts as zero."""
    if v is None:
        return ZERO
    if isinstance(v, float):
        # go through str so 0.1 stays 0.1 instead of its binary expansion
        v = repr(v)
    try:
        return Decimal(v).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValueError(f"not a money amount: {v!r}") from e


def money_sum(values: Iterable[Any]) -> Decimal:
    total = ZERO
    for v in values:
        total += to_money(v)
    return total


def split_evenly(total: Any, parts: int) -> list[Decimal]:
    """
    Split total into `parts` shares that add up to exactly total.

    Every share is floor(total / parts) to the cent; the leftover cents go one
    each to the first shares. split_evenly(100, 3) -> [33.34, 33.33, 33.33].
    """
    if parts <= 0:
        raise ValueError("parts must be positive")

    cents = int((to_money(total) / CENT).to_integral_value())
    sign = -1 if cents < 0 else 1
    base, extra = divmod(abs(cents), parts)

    shares: list[Decimal] = []
    for i in range(parts):
        c = base + (1 if i < extra else 0)
        shares.append((Decimal(sign * c) * CENT).quantize(CENT))
    return shares
