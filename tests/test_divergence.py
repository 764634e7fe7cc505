"""Tests for rwa_signals.strategy.divergence."""

import pytest

from rwa_signals.market.models import OHLCCandle
from rwa_signals.strategy.divergence import detect_divergence

HOUR = 3_600_000


def _candles_from_lows(lows: list[float]) -> list[OHLCCandle]:
    return [
        OHLCCandle(bucket_start_ms=i * HOUR, open=lo + 0.5, high=lo + 1, low=lo, close=lo + 0.5)
        for i, lo in enumerate(lows)
    ]


def _candles_from_highs(highs: list[float]) -> list[OHLCCandle]:
    return [
        OHLCCandle(bucket_start_ms=i * HOUR, open=hi - 0.5, high=hi, low=hi - 1, close=hi - 0.5)
        for i, hi in enumerate(highs)
    ]


class TestDivergence:
    def test_monotonic_data_has_no_divergence(self):
        candles = _candles_from_lows([100.0 + i for i in range(20)])
        rsi = [40.0 + i for i in range(20)]
        result = detect_divergence(rsi, candles, 10)
        assert result.bullish is False
        assert result.bearish is False
        assert result.strength is None
        assert result.detected is False

    def test_bullish(self):
        """Price lower low at index 4, RSI higher low."""
        lows = [10, 8, 10, 9, 7, 9, 10, 11, 12, 13]
        rsi = [40, 20, 40, 35, 30, 35, 40, 45, 50, 55]
        result = detect_divergence(rsi, _candles_from_lows(lows), 10)
        assert result.bullish is True
        assert result.bearish is False
        assert result.strength == pytest.approx(0.7)
        assert result.divergence_points == (1, 4)

    def test_lower_low_with_lower_rsi_is_not_divergence(self):
        lows = [10, 8, 10, 9, 7, 9, 10, 11, 12, 13]
        rsi = [40, 30, 40, 35, 20, 35, 40, 45, 50, 55]
        assert detect_divergence(rsi, _candles_from_lows(lows), 10).bullish is False

    def test_bearish(self):
        """Price higher high at index 4, RSI lower high."""
        highs = [10, 12, 10, 11, 13, 11, 10, 9, 8, 7]
        rsi = [60, 80, 60, 65, 70, 65, 60, 55, 50, 45]
        result = detect_divergence(rsi, _candles_from_highs(highs), 10)
        assert result.bearish is True
        assert result.bullish is False
        assert result.divergence_points == (1, 4)

    def test_window_is_the_tail(self):
        lows = [50, 1, 50] + [10, 8, 10, 9, 7, 9, 10, 11, 12, 13]
        rsi = [50, 99, 50] + [40, 20, 40, 35, 30, 35, 40, 45, 50, 55]
        result = detect_divergence(rsi, _candles_from_lows(lows), 10)
        assert result.bullish is True
        assert result.divergence_points == (1, 4)

    def test_undefined_rsi_in_window(self):
        lows = [10, 8, 10, 9, 7, 9, 10, 11, 12, 13]
        rsi = [None, 20, 40, 35, 30, 35, 40, 45, 50, 55]
        result = detect_divergence(rsi, _candles_from_lows(lows), 10)
        assert (result.bullish, result.bearish) == (False, False)

    def test_insufficient_history(self):
        lows = [10, 8, 10, 9, 7]
        rsi = [40, 20, 40, 35, 30]
        result = detect_divergence(rsi, _candles_from_lows(lows), 10)
        assert (result.bullish, result.bearish) == (False, False)

    def test_to_dict(self):
        lows = [10, 8, 10, 9, 7, 9, 10, 11, 12, 13]
        rsi = [40, 20, 40, 35, 30, 35, 40, 45, 50, 55]
        d = detect_divergence(rsi, _candles_from_lows(lows), 10).to_dict()
        assert d == {
            "bullish": True,
            "bearish": False,
            "strength": 0.7,
            "divergence_points": [1, 4],
        }
