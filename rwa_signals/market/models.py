"""Market data models — typed representations of aggregated candles."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class OHLCCandle:
    """A single candlestick bucket.

    ``bucket_start_ms`` is an exact multiple of the interval duration.
    Updates within a bucket produce a new instance; candles are never
    mutated in place.
    """

    bucket_start_ms: int
    open: float
    high: float
    low: float
    close: float
    volume: Optional[float] = None

    def with_price(self, price: float) -> "OHLCCandle":
        """Return this candle updated with a later observation."""
        return OHLCCandle(
            bucket_start_ms=self.bucket_start_ms,
            open=self.open,
            high=max(self.high, price),
            low=min(self.low, price),
            close=price,
            volume=self.volume,
        )

    def to_dict(self) -> dict:
        return {
            "timestamp": self.bucket_start_ms,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }
