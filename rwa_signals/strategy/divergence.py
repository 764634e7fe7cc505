"""RSI divergence detection — pure function, no I/O.

Bullish divergence: price prints a lower low while RSI prints a higher
low.  Bearish divergence: price prints a higher high while RSI prints a
lower high.  Extremes are strict three-point swings inside the window.
"""

from typing import Optional

from rwa_signals.market.models import OHLCCandle
from rwa_signals.strategy.models import DivergenceResult

DIVERGENCE_STRENGTH = 0.7


def _swing_points(
    candles: list[OHLCCandle],
) -> tuple[list[int], list[int]]:
    """Indices of strict local lows and highs (interior points only)."""
    lows: list[int] = []
    highs: list[int] = []
    for i in range(1, len(candles) - 1):
        prev_c, cur, next_c = candles[i - 1], candles[i], candles[i + 1]
        if cur.low < prev_c.low and cur.low < next_c.low:
            lows.append(i)
        if cur.high > prev_c.high and cur.high > next_c.high:
            highs.append(i)
    return lows, highs


def detect_divergence(
    rsi: list[Optional[float]],
    candles: list[OHLCCandle],
    lookback: int = 10,
) -> DivergenceResult:
    """Scan the last *lookback* candles for price/RSI divergence.

    Needs at least two swing points of a kind to flag that kind.  Returns
    no divergence when the window is shorter than *lookback* or any RSI
    value inside it is undefined.
    """
    none = DivergenceResult(bullish=False, bearish=False)
    if lookback < 3 or len(rsi) < lookback or len(candles) < lookback:
        return none

    window_rsi = rsi[-lookback:]
    window = candles[-lookback:]
    if any(v is None for v in window_rsi):
        return none

    lows, highs = _swing_points(window)
    points: list[int] = []

    bullish = False
    if len(lows) >= 2:
        prior, latest = lows[-2], lows[-1]
        bullish = (
            window[latest].low < window[prior].low
            and window_rsi[latest] > window_rsi[prior]
        )
        if bullish:
            points.extend((prior, latest))

    bearish = False
    if len(highs) >= 2:
        prior, latest = highs[-2], highs[-1]
        bearish = (
            window[latest].high > window[prior].high
            and window_rsi[latest] < window_rsi[prior]
        )
        if bearish:
            points.extend((prior, latest))

    return DivergenceResult(
        bullish=bullish,
        bearish=bearish,
        strength=DIVERGENCE_STRENGTH if (bullish or bearish) else None,
        divergence_points=tuple(sorted(points)),
    )
