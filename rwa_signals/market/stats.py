"""Descriptive statistics over a candle window — pure functions, no I/O."""

import math
from typing import Optional

import numpy as np

from rwa_signals.market.models import OHLCCandle

TRADING_DAYS_PER_YEAR = 252


def annualized_volatility(prices: list[float]) -> float:
    """Population std-dev of log returns, scaled by sqrt(252).

    Returns 0.0 for fewer than two prices.
    """
    if len(prices) < 2:
        return 0.0
    arr = np.asarray(prices, dtype=float)
    returns = np.log(arr[1:] / arr[:-1])
    return float(np.std(returns) * math.sqrt(TRADING_DAYS_PER_YEAR))


def classify_trend(prices: list[float]) -> str:
    """Compare the mean of the first and last thirds of *prices*.

    ``strongly_bullish`` above +2 %, ``bullish`` above +0.5 %, and the
    bearish mirror images; ``neutral`` otherwise or with fewer than
    three prices.
    """
    third = len(prices) // 3
    if third == 0:
        return "neutral"
    avg_first = sum(prices[:third]) / third
    avg_last = sum(prices[-third:]) / third
    change = (avg_last - avg_first) / avg_first

    if change > 0.02:
        return "strongly_bullish"
    if change > 0.005:
        return "bullish"
    if change < -0.02:
        return "strongly_bearish"
    if change < -0.005:
        return "bearish"
    return "neutral"


def price_change_pct(candles: list[OHLCCandle]) -> float:
    """Percent change from the first candle's open to the last close."""
    if len(candles) < 2:
        return 0.0
    first_open = candles[0].open
    return (candles[-1].close - first_open) / first_open * 100.0


def summarize(candles: list[OHLCCandle]) -> Optional[dict]:
    """Basic statistics for an OHLC response. ``None`` for an empty list."""
    if not candles:
        return None
    closes = [c.close for c in candles]
    return {
        "highest_price": max(c.high for c in candles),
        "lowest_price": min(c.low for c in candles),
        "avg_close": sum(closes) / len(closes),
        "price_change_pct": round(price_change_pct(candles), 2),
        "volatility": annualized_volatility(closes),
        "trend": classify_trend(closes),
    }
