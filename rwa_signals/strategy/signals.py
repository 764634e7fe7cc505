"""Entry and exit signal evaluation — pure functions, no I/O.

Entry uses an RSI oversold crossover on the two most recent values:
``RSI(t-1) < oversold < RSI(t)``, plus a category-specific confirmation:

* Wrapped BTC — close(t) > close(t-1).
* Tokenized stock — close(t) above the 50-period EMA of closes.
* Gold token — three consecutive strictly increasing closes.

Exit checks run in a fixed precedence (stop-loss, take-profit, RSI
overbought) and the first one that fires wins.
"""

from typing import Optional

from rwa_signals.errors import InsufficientDataError
from rwa_signals.instruments import Category
from rwa_signals.market.models import OHLCCandle
from rwa_signals.strategy.indicators import calculate_ema
from rwa_signals.strategy.models import BuySignal, DivergenceResult, ExitSignal
from rwa_signals.strategy.thresholds import RSIThresholds

BASE_CONFIDENCE = 0.5
MOMENTUM_BONUS = 0.1
DIVERGENCE_BONUS = 0.2
# A close more than 0.5 % above the previous one counts as strong momentum
STRONG_MOVE_PCT = 0.005
STOCK_EMA_PERIOD = 50


def describe_rsi_zone(value: float, thresholds: RSIThresholds) -> str:
    """Human-readable position of *value* relative to the neutral zone."""
    if value < thresholds.oversold:
        return f"RSI below oversold zone ({value:.2f} < {thresholds.oversold:g})"
    if value > thresholds.overbought:
        return f"RSI above overbought zone ({value:.2f} > {thresholds.overbought:g})"
    return f"RSI in neutral zone ({value:.2f})"


def _stock_confirmation(candles: list[OHLCCandle]) -> Optional[str]:
    try:
        ema = calculate_ema(candles, STOCK_EMA_PERIOD)
    except InsufficientDataError:
        return None
    current_ema = ema[-1]
    if current_ema is not None and candles[-1].close > current_ema:
        return f"close above EMA{STOCK_EMA_PERIOD}"
    return None


def _gold_confirmation(candles: list[OHLCCandle]) -> Optional[str]:
    if len(candles) < 3:
        return None
    c1, c2, c3 = candles[-3].close, candles[-2].close, candles[-1].close
    if c3 > c2 > c1:
        return "three consecutive higher closes"
    return None


def detect_buy_signal(
    rsi: list[Optional[float]],
    candles: list[OHLCCandle],
    category: Category,
    thresholds: RSIThresholds,
    divergence: Optional[DivergenceResult] = None,
) -> BuySignal:
    """Evaluate the category's oversold-reversal entry rule.

    Args:
        rsi: RSI series aligned with *candles*.
        candles: Candle history, oldest first.
        category: Asset class deciding the confirmation rule.
        thresholds: Policy for *category*.
        divergence: Optional divergence scan; a bullish divergence adds
            confidence to a matching signal.

    Returns:
        ``BuySignal``.  On a match confidence starts at 0.5 and is capped
        at 1.0; the reason lists each sub-condition that fired.
    """
    if len(rsi) < 2 or len(candles) < 2:
        return BuySignal(signal=False, confidence=0.0, reason="Insufficient RSI data")

    current_rsi, previous_rsi = rsi[-1], rsi[-2]
    if current_rsi is None or previous_rsi is None:
        return BuySignal(signal=False, confidence=0.0, reason="RSI values not yet available")

    current_close = candles[-1].close
    previous_close = candles[-2].close
    oversold = thresholds.oversold

    crossed = previous_rsi < oversold < current_rsi
    reasons: list[str] = []
    matched = False

    if crossed:
        if category is Category.WRAPPED_BTC:
            if current_close > previous_close:
                matched = True
                reasons.append("RSI oversold reversal")
                reasons.append("higher close")
        elif category is Category.TOKENIZED_STOCK:
            confirmation = _stock_confirmation(candles)
            if confirmation:
                matched = True
                reasons.append("RSI oversold reversal")
                reasons.append(confirmation)
        elif category is Category.GOLD_TOKEN:
            confirmation = _gold_confirmation(candles)
            if confirmation:
                matched = True
                reasons.append("RSI oversold reversal")
                reasons.append(confirmation)

    if not matched:
        return BuySignal(
            signal=False,
            confidence=0.0,
            reason=describe_rsi_zone(current_rsi, thresholds),
        )

    confidence = BASE_CONFIDENCE
    if current_close > previous_close * (1 + STRONG_MOVE_PCT):
        confidence += MOMENTUM_BONUS
        reasons.append("strong upward price movement")
    if divergence is not None and divergence.bullish:
        confidence += DIVERGENCE_BONUS
        reasons.append("bullish divergence confirmation")

    return BuySignal(
        signal=True,
        confidence=min(confidence, 1.0),
        reason=", ".join(reasons),
    )


def risk_levels(entry_price: float, thresholds: RSIThresholds) -> tuple[float, float]:
    """Return ``(stop_loss, take_profit)`` prices for a long entry."""
    return (
        entry_price * (1 - thresholds.stop_loss),
        entry_price * (1 + thresholds.take_profit),
    )


def detect_exit_signal(
    rsi: list[Optional[float]],
    candles: list[OHLCCandle],
    entry_price: float,
    thresholds: RSIThresholds,
) -> ExitSignal:
    """Check whether a long opened at *entry_price* should be closed now.

    Precedence: stop-loss breach, take-profit breach, RSI overbought.
    The stop-loss / take-profit levels are returned either way.

    Raises ``ValueError`` for a non-positive entry price and
    ``InsufficientDataError`` when there are no candles.
    """
    if entry_price <= 0:
        raise ValueError(f"entry_price must be positive, got {entry_price}")
    if not candles:
        raise InsufficientDataError("No candles available to evaluate exit conditions")

    stop_loss, take_profit = risk_levels(entry_price, thresholds)
    current_price = candles[-1].close
    current_rsi = rsi[-1] if rsi else None

    if current_price <= stop_loss:
        return ExitSignal(
            should_exit=True,
            reason=(
                f"Stop loss triggered at {current_price:.2f} "
                f"(entry: {entry_price:.2f}, stop: {stop_loss:.2f})"
            ),
            stop_loss=stop_loss,
            take_profit=take_profit,
            trigger="stop_loss",
        )

    if current_price >= take_profit:
        return ExitSignal(
            should_exit=True,
            reason=(
                f"Take profit target reached at {current_price:.2f} "
                f"(entry: {entry_price:.2f}, target: {take_profit:.2f})"
            ),
            stop_loss=stop_loss,
            take_profit=take_profit,
            trigger="take_profit",
        )

    if current_rsi is not None and current_rsi > thresholds.overbought:
        return ExitSignal(
            should_exit=True,
            reason=f"RSI overbought ({current_rsi:.2f} > {thresholds.overbought:g})",
            stop_loss=stop_loss,
            take_profit=take_profit,
            trigger="overbought",
        )

    return ExitSignal(
        should_exit=False,
        reason="No exit signal",
        stop_loss=stop_loss,
        take_profit=take_profit,
    )
