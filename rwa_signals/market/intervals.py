"""Candle intervals — closed set of bucket widths with explicit durations."""

from enum import Enum


class Interval(str, Enum):
    """Supported candle intervals."""

    S1 = "1s"
    M1 = "1m"
    M5 = "5m"
    H1 = "1h"
    W1 = "1w"
    MO1 = "1M"  # fixed 30-day month

    @property
    def duration_ms(self) -> int:
        return _DURATIONS_MS[self]

    @property
    def label(self) -> str:
        return _LABELS[self]

    def bucket_start(self, timestamp_ms: int) -> int:
        """Floor *timestamp_ms* to the start of its bucket."""
        d = self.duration_ms
        return (int(timestamp_ms) // d) * d


_DURATIONS_MS: dict[Interval, int] = {
    Interval.S1: 1_000,
    Interval.M1: 60 * 1_000,
    Interval.M5: 5 * 60 * 1_000,
    Interval.H1: 60 * 60 * 1_000,
    Interval.W1: 7 * 24 * 60 * 60 * 1_000,
    Interval.MO1: 30 * 24 * 60 * 60 * 1_000,
}

_LABELS: dict[Interval, str] = {
    Interval.S1: "1 Second",
    Interval.M1: "1 Minute",
    Interval.M5: "5 Minutes",
    Interval.H1: "1 Hour",
    Interval.W1: "1 Week",
    Interval.MO1: "1 Month",
}


def parse_interval(value: str) -> Interval:
    """Return the ``Interval`` for *value* (e.g. ``"5m"``).

    Raises ``ValueError`` naming the accepted values when unknown.
    """
    try:
        return Interval(value)
    except ValueError:
        accepted = ", ".join(i.value for i in Interval)
        raise ValueError(f"Unknown interval '{value}'. Expected one of: {accepted}") from None
