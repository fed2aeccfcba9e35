# flatpay/domain/fanout.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Hashable, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Settled(Generic[T]):
    key: Hashable
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None


async def settle_all(
    jobs: dict[Hashable, Callable[[], Awaitable[T]]],
    *,
    max_concurrency: int = 10,
) -> list[Settled[T]]:
    """
    Run every job concurrently and collect every outcome.

    Never fail-fast: an exception in one job becomes that job's Settled(ok=False)
    and the others keep running. Results come back in the order of `jobs`.
    """
    sem = asyncio.Semaphore(max(1, int(max_concurrency)))

    async def _one(key: Hashable, fn: Callable[[], Awaitable[T]]) -> Settled[T]:
        async with sem:
            try:
                return Settled(key=key, ok=True, value=await fn())
            except Exception as e:  # per-job isolation
                return Settled(key=key, ok=False, error=f"{type(e).__name__}: {e}")

    if not jobs:
        return []
    return list(await asyncio.gather(*(_one(k, fn) for k, fn in jobs.items())))
