"""Quote service — cached, deadline-bounded access to the price feed."""

import asyncio
import logging
from typing import Optional, Protocol

from rwa_signals.errors import UpstreamFetchError
from rwa_signals.fanout import gather_settled
from rwa_signals.feed.models import PriceQuote
from rwa_signals.feed.quote_cache import QuoteCache
from rwa_signals.instruments import Category, Instrument, InstrumentRegistry

logger = logging.getLogger("rwa_signals.quotes")

_PRICE_OPERATION = "price"


class PriceFeed(Protocol):
    """Anything that can price one instrument (the Jupiter client, a mock)."""

    async def get_price(self, instrument_id: str) -> PriceQuote:
        ...


class QuoteService:
    """Wraps a ``PriceFeed`` with memoization and a per-call deadline.

    Args:
        feed: Upstream price feed.
        registry: Instrument catalog.
        cache: Memoization window for identical calls.
        fetch_timeout: Seconds before an in-flight fetch is abandoned.
        max_concurrency: Fetches in flight during batch calls.
    """

    def __init__(
        self,
        feed: PriceFeed,
        registry: InstrumentRegistry,
        cache: Optional[QuoteCache] = None,
        fetch_timeout: float = 10.0,
        max_concurrency: int = 8,
    ) -> None:
        self._feed = feed
        self._registry = registry
        self._cache = cache or QuoteCache()
        self._fetch_timeout = fetch_timeout
        self._max_concurrency = max_concurrency

    @property
    def registry(self) -> InstrumentRegistry:
        return self._registry

    async def _fetch(self, instrument_id: str) -> PriceQuote:
        try:
            return await asyncio.wait_for(
                self._feed.get_price(instrument_id), self._fetch_timeout,
            )
        except asyncio.TimeoutError:
            raise UpstreamFetchError(
                f"Price fetch for {instrument_id} timed out after "
                f"{self._fetch_timeout:.1f}s",
                instrument_id=instrument_id,
            ) from None

    async def get_price(self, instrument_id: str) -> PriceQuote:
        """Current price for one instrument, served from cache when fresh.

        Raises ``InstrumentNotFoundError`` for an unknown id and
        ``UpstreamFetchError`` when the feed fails.
        """
        self._registry.get(instrument_id)
        return await self._cache.get_or_fetch(
            _PRICE_OPERATION, instrument_id, lambda: self._fetch(instrument_id),
        )

    async def get_prices(
        self, instruments: list[Instrument],
    ) -> list[tuple[Instrument, PriceQuote]]:
        """Price every instrument concurrently, skipping failures."""
        outcomes = await gather_settled(
            [lambda i=inst: self.get_price(i.id) for inst in instruments],
            limit=self._max_concurrency,
        )
        priced: list[tuple[Instrument, PriceQuote]] = []
        for inst, outcome in zip(instruments, outcomes):
            if outcome.ok:
                priced.append((inst, outcome.value))
            else:
                logger.error("Failed to fetch price for %s: %s", inst.symbol, outcome.error)
        return priced

    async def get_current_prices(
        self, category: Optional[Category] = None,
    ) -> list[tuple[Instrument, PriceQuote]]:
        """Prices for the whole universe (or one category).

        Raises ``UpstreamFetchError`` only when no instrument could be
        priced at all.
        """
        instruments = self._registry.by_category(category)
        priced = await self.get_prices(instruments)
        if instruments and not priced:
            raise UpstreamFetchError("No real-time price data available from the price feed")
        return priced
