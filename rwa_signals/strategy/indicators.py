"""Technical indicators — RSI, EMA, RSI momentum. Pure functions, no I/O."""

from typing import Literal, Optional

from rwa_signals.errors import InsufficientDataError
from rwa_signals.market.models import OHLCCandle

Momentum = Literal["building", "weakening", "strong", "weak", "neutral"]
RSIStatus = Literal["oversold", "neutral", "overbought"]


# ── EMA ──────────────────────────────────────────────────────────────────


def calculate_ema(candles: list[OHLCCandle], period: int) -> list[Optional[float]]:
    """Calculate an Exponential Moving Average series of closes.

    Uses the standard EMA formula:
        ``EMA_today = close × k + EMA_yesterday × (1 - k)``
    where ``k = 2 / (period + 1)``.

    The first EMA value is seeded with the SMA of the first *period*
    closes.  Returns a series the same length as *candles*; entries
    before the seed are ``None``.

    Raises ``InsufficientDataError`` if fewer than *period* candles are
    provided.
    """
    if period < 1:
        raise ValueError(f"period must be positive, got {period}")
    if len(candles) < period:
        raise InsufficientDataError(
            f"Need at least {period} candles for EMA({period}), "
            f"got {len(candles)}"
        )

    k = 2.0 / (period + 1)
    closes = [c.close for c in candles]
    ema: list[Optional[float]] = [None] * len(closes)

    prev = sum(closes[:period]) / period
    ema[period - 1] = prev

    for i in range(period, len(closes)):
        prev = closes[i] * k + prev * (1 - k)
        ema[i] = prev

    return ema


# ── RSI ──────────────────────────────────────────────────────────────────


def _rsi_from_avgs(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def calculate_rsi(
    candles: list[OHLCCandle],
    period: int = 14,
    allow_partial: bool = False,
) -> list[Optional[float]]:
    """Calculate Wilder's Relative Strength Index of closes.

    Algorithm (Wilder-smoothed):
        1. delta = close[i] - close[i-1]
        2. Separate gains (positive) and losses (|negative|).
        3. Seed average gain/loss = SMA of first *period* deltas.
        4. Subsequent: avg = (prev_avg × (period-1) + current) / period
        5. RS = avg_gain / avg_loss  (avg_loss == 0 → RSI 100)
        6. RSI = 100 - 100 / (1 + RS)

    Returns a list the same length as *candles*.  Entries before index
    *period* are ``None``.

    Requires at least ``period + 1`` candles; otherwise raises
    ``InsufficientDataError``, or with *allow_partial* returns an
    all-``None`` series.
    """
    if period < 1:
        raise ValueError(f"period must be positive, got {period}")
    if len(candles) < period + 1:
        if allow_partial:
            return [None] * len(candles)
        raise InsufficientDataError(
            f"Need at least {period + 1} candles for RSI({period}), "
            f"got {len(candles)}"
        )

    closes = [c.close for c in candles]
    deltas = [closes[i] - closes[i - 1] for i in range(1, len(closes))]

    gains = [max(d, 0.0) for d in deltas]
    losses = [abs(min(d, 0.0)) for d in deltas]

    rsi: list[Optional[float]] = [None] * len(candles)

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    rsi[period] = _rsi_from_avgs(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        # deltas are offset by one against candles
        rsi[i + 1] = _rsi_from_avgs(avg_gain, avg_loss)

    return rsi


def rsi_status(value: float, oversold: float, overbought: float) -> RSIStatus:
    if value < oversold:
        return "oversold"
    if value > overbought:
        return "overbought"
    return "neutral"


def calculate_momentum(rsi: list[Optional[float]], lookback: int = 5) -> Momentum:
    """Classify RSI momentum over the last *lookback* values.

    A swing of more than 10 points is ``building`` / ``weakening``;
    otherwise the level decides (``strong`` above 60, ``weak`` below 40).
    """
    recent = [v for v in rsi[-lookback:] if v is not None]
    if len(recent) < 2:
        return "neutral"

    current = recent[-1]
    change = current - recent[0]

    if change > 10:
        return "building"
    if change < -10:
        return "weakening"
    if current > 60:
        return "strong"
    if current < 40:
        return "weak"
    return "neutral"
