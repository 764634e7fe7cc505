"""Candle aggregator — builds OHLC candles from raw price observations.

Every observation is folded into one candle per supported interval.
Each (instrument, interval) series is a bounded deque guarded by its own
lock; readers get a list snapshot of frozen candles, so a reader never
observes a half-applied update.

Aggregation rules:
- bucket_start = floor(timestamp / duration) * duration
- First observation in a bucket opens a candle (open=high=low=close).
- Later observations in the same bucket raise high / lower low / set close.
- Observations older than the newest bucket are dropped for that interval.
"""

import logging
import math
import threading
from collections import deque
from typing import Iterable, Optional

from rwa_signals.errors import InsufficientDataError
from rwa_signals.feed.models import PriceQuote
from rwa_signals.market.intervals import Interval
from rwa_signals.market.models import OHLCCandle

logger = logging.getLogger("rwa_signals.candles")

DEFAULT_MAX_CANDLES = 1000


class CandleSeries:
    """Bounded, ordered candle buffer for one (instrument, interval)."""

    def __init__(self, interval: Interval, max_candles: int = DEFAULT_MAX_CANDLES) -> None:
        self.interval = interval
        self._candles: deque[OHLCCandle] = deque(maxlen=max_candles)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._candles)

    def apply(self, price: float, timestamp_ms: int) -> Optional[OHLCCandle]:
        """Fold one observation into the series.

        Returns the resulting candle, or ``None`` when the observation
        belongs to a bucket older than the newest candle.
        """
        bucket = self.interval.bucket_start(timestamp_ms)
        with self._lock:
            if self._candles:
                last = self._candles[-1]
                if bucket == last.bucket_start_ms:
                    updated = last.with_price(price)
                    self._candles[-1] = updated
                    return updated
                if bucket < last.bucket_start_ms:
                    return None
            candle = OHLCCandle(
                bucket_start_ms=bucket,
                open=price,
                high=price,
                low=price,
                close=price,
            )
            # deque(maxlen) drops the oldest candle on overflow
            self._candles.append(candle)
            return candle

    def snapshot(self, count: Optional[int] = None) -> list[OHLCCandle]:
        """Return the most recent *count* candles (all when ``None``)."""
        with self._lock:
            if count is None or count >= len(self._candles):
                return list(self._candles)
            if count <= 0:
                return []
            return list(self._candles)[-count:]


class CandleAggregator:
    """Owns every candle series for every instrument.

    The price poller is the only writer; analysis requests only read.

    Args:
        intervals: Intervals to build. Defaults to every ``Interval``.
        max_candles: Per-series length cap (oldest evicted first).
    """

    def __init__(
        self,
        intervals: Optional[Iterable[Interval]] = None,
        max_candles: int = DEFAULT_MAX_CANDLES,
    ) -> None:
        if max_candles < 1:
            raise ValueError(f"max_candles must be positive, got {max_candles}")
        self._intervals: tuple[Interval, ...] = tuple(intervals or Interval)
        self._max_candles = max_candles
        self._series: dict[tuple[str, Interval], CandleSeries] = {}
        self._registry_lock = threading.Lock()

    @property
    def intervals(self) -> tuple[Interval, ...]:
        return self._intervals

    @property
    def max_candles(self) -> int:
        return self._max_candles

    def _series_for(self, instrument_id: str, interval: Interval) -> CandleSeries:
        key = (instrument_id, interval)
        series = self._series.get(key)
        if series is None:
            with self._registry_lock:
                series = self._series.get(key)
                if series is None:
                    series = CandleSeries(interval, self._max_candles)
                    self._series[key] = series
        return series

    # ── Writes ───────────────────────────────────────────────────────────

    def ingest(self, instrument_id: str, price: float, timestamp_ms: int) -> None:
        """Fold one price observation into every supported interval.

        Raises ``ValueError`` for a non-positive or non-finite price.
        """
        if not math.isfinite(price) or price <= 0:
            raise ValueError(f"price must be positive and finite, got {price}")

        for interval in self._intervals:
            result = self._series_for(instrument_id, interval).apply(price, timestamp_ms)
            if result is None:
                logger.debug(
                    "Dropped stale observation for %s %s at %d",
                    instrument_id, interval.value, timestamp_ms,
                )

    def ingest_quote(self, quote: PriceQuote) -> None:
        self.ingest(quote.instrument_id, quote.price, quote.timestamp_ms)

    # ── Reads ────────────────────────────────────────────────────────────

    def get_candles(
        self,
        instrument_id: str,
        interval: Interval,
        count: int = 100,
    ) -> list[OHLCCandle]:
        """Return up to *count* most recent candles, oldest first.

        Partial history is returned as-is. Raises ``InsufficientDataError``
        only when nothing has been collected for the series yet.
        """
        series = self._series.get((instrument_id, interval))
        candles = series.snapshot(count) if series is not None else []
        if not candles:
            raise InsufficientDataError(
                f"No OHLC data collected yet for {instrument_id} at "
                f"{interval.value} interval. Wait for more polling cycles."
            )
        return candles

    def candle_count(self, instrument_id: str, interval: Interval) -> int:
        series = self._series.get((instrument_id, interval))
        return len(series) if series is not None else 0

    def stats(self) -> dict[str, dict[str, int]]:
        """Candle counts per instrument id and interval (populated series only)."""
        with self._registry_lock:
            keys = list(self._series.items())
        out: dict[str, dict[str, int]] = {}
        for (instrument_id, interval), series in keys:
            n = len(series)
            if n:
                out.setdefault(instrument_id, {})[interval.value] = n
        return out
