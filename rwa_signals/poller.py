"""Background price poller — the only writer of candle state.

Every cycle prices each instrument in the registry straight from the feed
(no memoization, so each cycle observes a fresh quote) and folds the quotes
into the candle aggregator.
"""

import asyncio
import logging
from typing import Optional

from rwa_signals.fanout import gather_settled
from rwa_signals.feed.quote_service import PriceFeed
from rwa_signals.instruments import InstrumentRegistry
from rwa_signals.market.candles import CandleAggregator

logger = logging.getLogger("rwa_signals.poller")


class PricePoller:
    """Periodically pulls prices and feeds the candle aggregator.

    Args:
        feed: Upstream price feed.
        registry: Instruments to poll.
        aggregator: Candle state to write into.
        poll_interval: Seconds between cycles.
        fetch_timeout: Per-instrument deadline within a cycle.
        max_concurrency: Fetches in flight within a cycle.
    """

    def __init__(
        self,
        feed: PriceFeed,
        registry: InstrumentRegistry,
        aggregator: CandleAggregator,
        poll_interval: float = 5.0,
        fetch_timeout: Optional[float] = 10.0,
        max_concurrency: int = 8,
    ) -> None:
        self._feed = feed
        self._registry = registry
        self._aggregator = aggregator
        self._poll_interval = poll_interval
        self._fetch_timeout = fetch_timeout
        self._max_concurrency = max_concurrency
        self._running: bool = False
        self._cycle_count: int = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    # ── Single cycle ─────────────────────────────────────────────────────

    async def run_once(self) -> dict:
        """Poll every instrument once.

        Returns:
            ``{"updated": [...symbols], "failed": {symbol: error}}``.
        """
        instruments = self._registry.all()
        outcomes = await gather_settled(
            [lambda i=inst: self._feed.get_price(i.id) for inst in instruments],
            limit=self._max_concurrency,
            timeout=self._fetch_timeout,
        )

        updated: list[str] = []
        failed: dict[str, str] = {}
        for inst, outcome in zip(instruments, outcomes):
            if not outcome.ok:
                logger.warning("Failed to update price for %s: %s", inst.symbol, outcome.error)
                failed[inst.symbol] = str(outcome.error)
                continue
            try:
                self._aggregator.ingest_quote(outcome.value)
            except ValueError as exc:
                logger.warning("Rejected quote for %s: %s", inst.symbol, exc)
                failed[inst.symbol] = str(exc)
                continue
            updated.append(inst.symbol)

        self._cycle_count += 1
        return {"updated": updated, "failed": failed}

    # ── Polling loop ─────────────────────────────────────────────────────

    async def run(self, max_cycles: int = 0) -> list[dict]:
        """Poll until stopped.

        Args:
            max_cycles: Stop after this many cycles (0 = unlimited).

        Returns:
            List of per-cycle result dicts.
        """
        self._running = True
        results: list[dict] = []
        cycle = 0

        while self._running:
            cycle += 1
            try:
                result = await self.run_once()
                results.append(result)
                logger.debug(
                    "Cycle %d: %d updated, %d failed",
                    cycle, len(result["updated"]), len(result["failed"]),
                )
            except Exception as exc:
                logger.error("Cycle %d error: %s", cycle, exc)
                results.append({"updated": [], "failed": {}, "error": str(exc)})

            if max_cycles > 0 and cycle >= max_cycles:
                break
            await asyncio.sleep(self._poll_interval)

        self._running = False
        return results

    def start(self) -> asyncio.Task:
        """Launch the loop as a background task on the running event loop."""
        if self._task is not None and not self._task.done():
            return self._task
        logger.info(
            "Starting price poller for %d instruments every %.1fs",
            len(self._registry), self._poll_interval,
        )
        self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        """Stop the loop and wait for the background task to finish."""
        self._running = False
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Price poller stopped after %d cycles", self._cycle_count)
