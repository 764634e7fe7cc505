"""Signal analysis — per-instrument, multi-timeframe and portfolio-wide.

Reads candles from the aggregator (never writes), runs RSI, divergence
and signal detection, and assembles advisory results.  Batch operations
go through ``gather_settled`` so one instrument or interval failing
never fails the batch.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from rwa_signals.errors import InsufficientDataError
from rwa_signals.fanout import gather_settled
from rwa_signals.instruments import Category, Instrument, InstrumentRegistry
from rwa_signals.market.candles import CandleAggregator
from rwa_signals.market.intervals import Interval
from rwa_signals.strategy.divergence import detect_divergence
from rwa_signals.strategy.indicators import (
    Momentum,
    RSIStatus,
    calculate_momentum,
    calculate_rsi,
    rsi_status,
)
from rwa_signals.strategy.models import (
    Action,
    DivergenceResult,
    ExitSignal,
    SignalResult,
)
from rwa_signals.strategy.signals import (
    describe_rsi_zone,
    detect_buy_signal,
    detect_exit_signal,
    risk_levels,
)
from rwa_signals.strategy.thresholds import DEFAULT_THRESHOLDS, RSIThresholds

logger = logging.getLogger("rwa_signals.analysis")

ANALYSIS_CANDLES = 100
TIMEFRAME_CANDLES = 50
DIVERGENCE_LOOKBACK = 10
MOMENTUM_LOOKBACK = 5
SELL_CONFIDENCE = 0.6
DEFAULT_MIN_CONFIDENCE = 0.6
MULTI_TIMEFRAME_INTERVALS: tuple[Interval, ...] = (Interval.M5, Interval.H1, Interval.W1)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class TimeframeRSI:
    """Current RSI on one interval."""

    interval: Interval
    rsi: float
    status: RSIStatus

    def to_dict(self) -> dict:
        return {"interval": self.interval.value, "rsi": self.rsi, "status": self.status}


@dataclass(frozen=True)
class InstrumentAnalysis:
    """Full RSI analysis of one instrument on one interval."""

    instrument: Instrument
    current_price: float
    rsi_value: float
    rsi_period: int
    interval: Interval
    rsi_status: RSIStatus
    signal: SignalResult
    divergence: Optional[DivergenceResult]
    momentum: Momentum
    multi_timeframe: dict[str, float]
    timestamp_ms: int
    exit: Optional[ExitSignal] = None

    def to_dict(self) -> dict:
        return {
            "instrument": self.instrument.to_dict(),
            "current_price": self.current_price,
            "rsi": {
                "value": self.rsi_value,
                "period": self.rsi_period,
                "interval": self.interval.value,
                "status": self.rsi_status,
            },
            "signal": self.signal.to_dict(),
            "analysis": {
                "divergence": self.divergence.to_dict() if self.divergence else None,
                "momentum": self.momentum,
                "multi_timeframe": dict(self.multi_timeframe),
            },
            "exit": self.exit.to_dict() if self.exit else None,
            "timestamp": self.timestamp_ms,
        }


def _empty_tally() -> dict[str, int]:
    return {"buy": 0, "sell": 0, "hold": 0}


@dataclass
class PortfolioSignals:
    """Retained signals across the universe plus a tally."""

    timestamp_ms: int
    signals: list[InstrumentAnalysis] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    totals: dict[str, int] = field(default_factory=_empty_tally)
    by_category: dict[str, dict[str, int]] = field(default_factory=dict)

    def add(self, analysis: InstrumentAnalysis) -> None:
        self.signals.append(analysis)
        key = analysis.signal.action.value.lower()
        self.totals[key] += 1
        bucket = self.by_category.setdefault(analysis.instrument.category.value, _empty_tally())
        bucket[key] += 1

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp_ms,
            "signals": [s.to_dict() for s in self.signals],
            "summary": {
                "total_buy_signals": self.totals["buy"],
                "total_sell_signals": self.totals["sell"],
                "total_hold_signals": self.totals["hold"],
                "by_category": {k: dict(v) for k, v in self.by_category.items()},
            },
            "failures": dict(self.failures),
        }


class SignalAnalyzer:
    """Runs the indicator pipeline over collected candles.

    Args:
        aggregator: Candle source (read-only here).
        registry: Instrument catalog.
        thresholds: Policy per category.
        max_concurrency: Analyses in flight during batch operations.
        analysis_timeout: Per-instrument deadline in batch operations.
    """

    def __init__(
        self,
        aggregator: CandleAggregator,
        registry: InstrumentRegistry,
        thresholds: Optional[Mapping[Category, RSIThresholds]] = None,
        max_concurrency: int = 8,
        analysis_timeout: Optional[float] = 30.0,
    ) -> None:
        self._aggregator = aggregator
        self._registry = registry
        self._thresholds = dict(thresholds or DEFAULT_THRESHOLDS)
        self._max_concurrency = max_concurrency
        self._analysis_timeout = analysis_timeout

    def thresholds_for(self, category: Category) -> RSIThresholds:
        return self._thresholds[category]

    # ── Multi-timeframe ──────────────────────────────────────────────────

    async def _timeframe_rsi(self, instrument: Instrument, interval: Interval) -> TimeframeRSI:
        th = self.thresholds_for(instrument.category)
        candles = self._aggregator.get_candles(instrument.id, interval, TIMEFRAME_CANDLES)
        value = calculate_rsi(candles, th.period)[-1]
        return TimeframeRSI(
            interval=interval,
            rsi=value,
            status=rsi_status(value, th.oversold, th.overbought),
        )

    async def multi_timeframe_rsi(
        self,
        instrument_id: str,
        intervals: Iterable[Interval] = MULTI_TIMEFRAME_INTERVALS,
    ) -> list[TimeframeRSI]:
        """Current RSI per interval; intervals that fail are left out."""
        instrument = self._registry.resolve(instrument_id)
        intervals = list(intervals)
        outcomes = await gather_settled(
            [lambda iv=iv: self._timeframe_rsi(instrument, iv) for iv in intervals],
            limit=self._max_concurrency,
        )
        results: list[TimeframeRSI] = []
        for interval, outcome in zip(intervals, outcomes):
            if outcome.ok:
                results.append(outcome.value)
            else:
                logger.warning(
                    "Skipping %s RSI for %s: %s",
                    interval.value, instrument.symbol, outcome.error,
                )
        return results

    # ── Single instrument ────────────────────────────────────────────────

    async def analyze_instrument(
        self,
        instrument_id: str,
        interval: Optional[Interval] = None,
        entry_price: Optional[float] = None,
    ) -> InstrumentAnalysis:
        """Complete RSI analysis of one instrument.

        Args:
            instrument_id: Canonical id or symbol.
            interval: Candle interval; defaults to the category's interval.
            entry_price: When given, exit conditions for a long opened at
                this price are evaluated as well.

        Raises ``InstrumentNotFoundError`` or ``InsufficientDataError``.
        """
        instrument = self._registry.resolve(instrument_id)
        th = self.thresholds_for(instrument.category)
        interval = interval or th.interval

        candles = self._aggregator.get_candles(instrument.id, interval, ANALYSIS_CANDLES)
        try:
            rsi = calculate_rsi(candles, th.period)
        except InsufficientDataError as exc:
            raise InsufficientDataError(
                f"Unable to calculate RSI for {instrument.symbol} at "
                f"{interval.value}: {exc.message}"
            ) from exc

        current_rsi = rsi[-1]
        current_price = candles[-1].close
        status = rsi_status(current_rsi, th.oversold, th.overbought)

        divergence = detect_divergence(rsi, candles, DIVERGENCE_LOOKBACK)
        buy = detect_buy_signal(rsi, candles, instrument.category, th, divergence)

        if buy.signal:
            stop_loss, take_profit = risk_levels(current_price, th)
            signal = SignalResult(
                action=Action.BUY,
                confidence=buy.confidence,
                reason=buy.reason,
                entry_price=current_price,
                stop_loss=stop_loss,
                take_profit=take_profit,
                risk_reward_ratio=th.risk_reward_ratio,
            )
        elif status == "overbought":
            signal = SignalResult(
                action=Action.SELL,
                confidence=SELL_CONFIDENCE,
                reason=f"RSI overbought at {current_rsi:.2f}",
            )
        else:
            signal = SignalResult(
                action=Action.HOLD,
                confidence=0.0,
                reason=describe_rsi_zone(current_rsi, th),
            )

        exit_signal = None
        if entry_price is not None:
            exit_signal = detect_exit_signal(rsi, candles, entry_price, th)

        timeframes = await self.multi_timeframe_rsi(instrument.id)

        return InstrumentAnalysis(
            instrument=instrument,
            current_price=current_price,
            rsi_value=current_rsi,
            rsi_period=th.period,
            interval=interval,
            rsi_status=status,
            signal=signal,
            divergence=divergence if divergence.detected else None,
            momentum=calculate_momentum(rsi, MOMENTUM_LOOKBACK),
            multi_timeframe={t.interval.value: t.rsi for t in timeframes},
            exit=exit_signal,
            timestamp_ms=_now_ms(),
        )

    async def analyze_many(
        self,
        instruments: list[Instrument],
        interval: Optional[Interval] = None,
        entry_price: Optional[float] = None,
    ) -> tuple[list[InstrumentAnalysis], dict[str, str]]:
        """Analyse several instruments concurrently.

        Returns ``(analyses, failures)`` where *failures* maps instrument
        id to the error message of each instrument that could not be
        analysed.
        """
        outcomes = await gather_settled(
            [
                lambda i=inst: self.analyze_instrument(i.id, interval, entry_price)
                for inst in instruments
            ],
            limit=self._max_concurrency,
            timeout=self._analysis_timeout,
        )
        analyses: list[InstrumentAnalysis] = []
        failures: dict[str, str] = {}
        for inst, outcome in zip(instruments, outcomes):
            if outcome.ok:
                analyses.append(outcome.value)
            else:
                logger.error("Failed to analyze %s: %s", inst.symbol, outcome.error)
                failures[inst.id] = str(outcome.error) or type(outcome.error).__name__
        return analyses, failures

    # ── Portfolio ────────────────────────────────────────────────────────

    async def portfolio_signals(
        self,
        instruments: Optional[list[Instrument]] = None,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
    ) -> PortfolioSignals:
        """Signals for the whole universe.

        Non-HOLD signals below *min_confidence* are dropped; HOLD signals
        are always kept.  Failed instruments are logged, listed under
        ``failures`` and excluded.
        """
        if not 0.0 <= min_confidence <= 1.0:
            raise ValueError(f"min_confidence must be in [0, 1], got {min_confidence}")
        if instruments is None:
            instruments = self._registry.all()

        analyses, failures = await self.analyze_many(instruments)

        portfolio = PortfolioSignals(timestamp_ms=_now_ms(), failures=failures)
        for analysis in analyses:
            sig = analysis.signal
            if sig.action is Action.HOLD or sig.confidence >= min_confidence:
                portfolio.add(analysis)
        return portfolio
