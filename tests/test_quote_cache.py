"""Tests for rwa_signals.feed.quote_cache — TTL memoization."""

import asyncio

import pytest

from rwa_signals.feed.quote_cache import QuoteCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class TestQuoteCache:
    def test_hit_within_ttl(self, clock):
        cache = QuoteCache(ttl_seconds=5, clock=clock)
        key = cache.key("price", "mint")
        cache.put(key, 101.5)
        clock.now = 4.9
        assert cache.get(key) == 101.5

    def test_expires_at_ttl(self, clock):
        cache = QuoteCache(ttl_seconds=5, clock=clock)
        key = cache.key("price", "mint")
        cache.put(key, 101.5)
        clock.now = 5.0
        assert cache.get(key) is None
        assert len(cache) == 0

    def test_oldest_evicted(self, clock):
        cache = QuoteCache(ttl_seconds=60, max_entries=2, clock=clock)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.put("c", 3)
        assert len(cache) == 2
        assert cache.get("a") is None
        assert cache.get("c") == 3

    def test_invalid_settings(self):
        with pytest.raises(ValueError):
            QuoteCache(ttl_seconds=-1)
        with pytest.raises(ValueError):
            QuoteCache(max_entries=0)

    @pytest.mark.asyncio
    async def test_get_or_fetch_memoizes(self, clock):
        cache = QuoteCache(ttl_seconds=5, clock=clock)
        calls = []

        async def fetcher():
            calls.append(1)
            return 42.0

        assert await cache.get_or_fetch("price", "mint", fetcher) == 42.0
        assert await cache.get_or_fetch("price", "mint", fetcher) == 42.0
        assert len(calls) == 1

        clock.now = 10
        await cache.get_or_fetch("price", "mint", fetcher)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_failures_not_cached(self, clock):
        cache = QuoteCache(ttl_seconds=5, clock=clock)
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("feed down")
            return 7.0

        with pytest.raises(RuntimeError):
            await cache.get_or_fetch("price", "mint", flaky)
        assert await cache.get_or_fetch("price", "mint", flaky) == 7.0
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_keys_include_operation(self, clock):
        cache = QuoteCache(clock=clock)

        async def one():
            return 1

        async def two():
            return 2

        assert await cache.get_or_fetch("price", "mint", one) == 1
        assert await cache.get_or_fetch("ohlc", "mint", two) == 2

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_fetch(self, clock):
        cache = QuoteCache(ttl_seconds=5, clock=clock)
        release = asyncio.Event()
        calls = []

        async def slow():
            calls.append(1)
            await release.wait()
            return 9.5

        waiters = [
            asyncio.ensure_future(cache.get_or_fetch("price", "mint", slow)) for _ in range(5)
        ]
        await asyncio.sleep(0)
        release.set()

        assert await asyncio.gather(*waiters) == [9.5] * 5
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_shared_failure_reaches_every_waiter(self, clock):
        cache = QuoteCache(ttl_seconds=5, clock=clock)
        release = asyncio.Event()
        calls = []

        async def broken():
            calls.append(1)
            await release.wait()
            raise RuntimeError("feed down")

        waiters = [
            asyncio.ensure_future(cache.get_or_fetch("price", "mint", broken)) for _ in range(3)
        ]
        await asyncio.sleep(0)
        release.set()

        results = await asyncio.gather(*waiters, return_exceptions=True)
        assert all(isinstance(r, RuntimeError) for r in results)
        assert len(calls) == 1
        assert len(cache) == 0
