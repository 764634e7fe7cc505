"""Time-boxed memoization for upstream price calls.

Shields the rate-limited price feed from identical requests issued within
a short window. Entries expire after ``ttl_seconds``; when the cache grows
past ``max_entries`` the oldest entry is evicted. Failed calls are never
cached. Concurrent misses for the same key share one upstream fetch.
"""

import asyncio
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Hashable, Optional, TypeVar

T = TypeVar("T")


class QuoteCache:
    """Bounded TTL cache keyed by ``(operation, instrument_id)``.

    Args:
        ttl_seconds: Lifetime of an entry (default 5 s).
        max_entries: Capacity before oldest-entry eviction (default 100).
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = 5.0,
        max_entries: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must be >= 0, got {ttl_seconds}")
        if max_entries < 1:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[Hashable, tuple[float, Any]]" = OrderedDict()
        self._in_flight: dict[Hashable, "asyncio.Task[Any]"] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def key(operation: str, instrument_id: str) -> tuple[str, str]:
        return (operation, instrument_id)

    def get(self, key: Hashable) -> Optional[Any]:
        """Return the live value for *key*, or ``None`` if absent/expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self._ttl:
            del self._entries[key]
            return None
        return value

    def put(self, key: Hashable, value: Any) -> None:
        # Re-inserting moves the key to the newest position
        self._entries.pop(key, None)
        self._entries[key] = (self._clock(), value)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    async def get_or_fetch(
        self,
        operation: str,
        instrument_id: str,
        fetcher: Callable[[], Awaitable[T]],
    ) -> T:
        """Return the cached value or await *fetcher* and cache its result.

        Callers that miss while a fetch for the same key is running await
        that fetch instead of starting another. A failure propagates to every
        waiter and leaves nothing cached.
        """
        key = self.key(operation, instrument_id)
        cached = self.get(key)
        if cached is not None:
            return cached

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_store(key, fetcher))
            self._in_flight[key] = task
            task.add_done_callback(lambda _t: self._in_flight.pop(key, None))
        # One waiter giving up must not cancel the fetch for the others
        return await asyncio.shield(task)

    async def _fetch_and_store(
        self, key: Hashable, fetcher: Callable[[], Awaitable[T]],
    ) -> T:
        value = await fetcher()
        self.put(key, value)
        return value
