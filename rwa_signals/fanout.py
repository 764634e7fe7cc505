"""Partial-failure fan-out — run many coroutines, keep every outcome.

``gather_settled`` is the single place where batch operations (polling
the whole universe, portfolio analysis, multi-timeframe RSI) run work
concurrently.  Each task gets its own deadline and its own failure
domain: a task that raises, times out or is cancelled is recorded as a
failed ``Outcome`` and never cancels its siblings.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, Sequence, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result-or-error for one task of a fan-out."""

    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def gather_settled(
    factories: Sequence[Callable[[], Awaitable[T]]],
    limit: int = 8,
    timeout: Optional[float] = None,
) -> list[Outcome[T]]:
    """Run every coroutine factory and return outcomes in input order.

    Args:
        factories: Zero-argument callables returning awaitables.  Factories
                   are invoked lazily so at most *limit* run at once.
        limit: Maximum number of tasks in flight.
        timeout: Per-task deadline in seconds (``None`` = no deadline).
                 A task past its deadline is cancelled and reported as
                 ``TimeoutError``.
    """
    if limit < 1:
        raise ValueError(f"limit must be positive, got {limit}")
    semaphore = asyncio.Semaphore(limit)

    async def _run(factory: Callable[[], Awaitable[T]]) -> T:
        async with semaphore:
            if timeout is None:
                return await factory()
            try:
                return await asyncio.wait_for(factory(), timeout)
            except asyncio.TimeoutError:
                raise TimeoutError(f"task exceeded {timeout:.1f}s deadline") from None

    results = await asyncio.gather(
        *(_run(f) for f in factories),
        return_exceptions=True,
    )

    outcomes: list[Outcome[T]] = []
    for res in results:
        if isinstance(res, BaseException):
            outcomes.append(Outcome(error=res))
        else:
            outcomes.append(Outcome(value=res))
    return outcomes
