"""Exposed operations and the composition root.

``OperationDesk`` owns every collaborator (quote service, candle
aggregator, analyzer, payment gate, poller); ``build_desk`` wires them
from a ``Config``.  Each public operation asks the gate exactly once
before doing any work.
"""

import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Mapping, Optional

from rwa_signals.analysis import SignalAnalyzer
from rwa_signals.config import Config
from rwa_signals.errors import AuthorizationDeniedError, InsufficientDataError
from rwa_signals.feed.models import PriceQuote
from rwa_signals.feed.price_client import JupiterPriceClient
from rwa_signals.feed.quote_cache import QuoteCache
from rwa_signals.feed.quote_service import QuoteService
from rwa_signals.instruments import InstrumentRegistry, parse_category
from rwa_signals.market.candles import CandleAggregator
from rwa_signals.market.intervals import Interval, parse_interval
from rwa_signals.market.stats import annualized_volatility, classify_trend, summarize
from rwa_signals.payment.gate import AuthorizationGate, build_gate
from rwa_signals.payment.pricing import OPERATION_PRICING, PAYMENT_INSTRUCTIONS
from rwa_signals.poller import PricePoller
from rwa_signals.strategy.divergence import detect_divergence
from rwa_signals.strategy.indicators import calculate_rsi
from rwa_signals.strategy.thresholds import load_thresholds

logger = logging.getLogger("rwa_signals.operations")

MAX_OHLC_COUNT = 1000
DEFAULT_OHLC_COUNT = 100
MIN_LOOKBACK = 5
MAX_LOOKBACK = 50
DIVERGENCE_CANDLES = 100
DAY_HOURS = 24

Context = Mapping[str, str]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _bounded_int(name: str, value: Any, low: int, high: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if not low <= value <= high:
        raise ValueError(f"{name} must be between {low} and {high}, got {value}")
    return value


def _optional_interval(value: Optional[str]) -> Optional[Interval]:
    return parse_interval(value) if value else None


class OperationDesk:
    """The externally invoked operations, each behind the payment gate.

    Args:
        quotes: Cached access to the live price feed.
        aggregator: Candle state written by *poller*.
        analyzer: RSI / signal pipeline over *aggregator*.
        gate: Payment authorization gate.
        poller: Background writer of candle state.
        config: Source of the reported poll interval.
    """

    def __init__(
        self,
        quotes: QuoteService,
        aggregator: CandleAggregator,
        analyzer: SignalAnalyzer,
        gate: AuthorizationGate,
        poller: Optional[PricePoller] = None,
        config: Optional[Config] = None,
    ) -> None:
        self.quotes = quotes
        self.registry: InstrumentRegistry = quotes.registry
        self.aggregator = aggregator
        self.analyzer = analyzer
        self.gate = gate
        self.poller = poller
        self.config = config or Config()
        self._operations: dict[str, Callable[..., Awaitable[dict]]] = {
            "get-current-prices": self.get_current_prices,
            "get-ohlc-data": self.get_ohlc_data,
            "get-interval-prices": self.get_interval_prices,
            "get-ohlc-stats": self.get_ohlc_stats,
            "get-rsi-analysis": self.get_rsi_analysis,
            "get-rsi-divergence": self.get_rsi_divergence,
            "get-portfolio-signals": self.get_portfolio_signals,
        }

    @property
    def operations(self) -> list[str]:
        return list(self._operations)

    def pricing(self) -> dict:
        return {
            "network": self.config.payment_network,
            "token": self.config.payment_token,
            "payment_enabled": self.config.payment_enabled,
            "tools": {name: OPERATION_PRICING[name].to_dict() for name in self._operations},
        }

    async def invoke(
        self, operation: str, arguments: Optional[dict] = None, context: Optional[Context] = None,
    ) -> dict:
        """Dispatch *operation* by name with keyword *arguments*.

        Raises ``KeyError`` for an unknown operation and ``ValueError`` for
        arguments the operation does not accept.
        """
        handler = self._operations[operation]
        kwargs = dict(arguments or {})
        kwargs.pop("context", None)
        try:
            inspect.signature(handler).bind(context=context, **kwargs)
        except TypeError as exc:
            raise ValueError(f"Invalid arguments for {operation}: {exc}") from None
        return await handler(context=context, **kwargs)

    async def _authorize(self, operation: str, context: Optional[Context]) -> None:
        decision = await self.gate.authorize(operation, context or {})
        if decision.granted:
            return
        price = OPERATION_PRICING[operation]
        logger.info("Denied %s: %s", operation, decision.reason)
        raise AuthorizationDeniedError(
            operation,
            decision.reason or "Payment Required",
            amount=price.amount,
            formatted_price=price.formatted,
            description=price.description,
            instructions=PAYMENT_INSTRUCTIONS,
        )

    # ── Prices ───────────────────────────────────────────────────────────

    def _price_change_24h(self, quote: PriceQuote) -> Optional[float]:
        """Feed-reported 24h change, else derived from the last 24 hourly candles.

        ``None`` when the feed omits it and fewer than 24 hourly candles
        have been collected.
        """
        if quote.price_change_24h is not None:
            return quote.price_change_24h
        if self.aggregator.candle_count(quote.instrument_id, Interval.H1) < DAY_HOURS:
            return None
        day_open = self.aggregator.get_candles(quote.instrument_id, Interval.H1, DAY_HOURS)[0].open
        return (quote.price - day_open) / day_open * 100.0

    async def get_current_prices(
        self, category: Optional[str] = None, context: Optional[Context] = None,
    ) -> dict:
        await self._authorize("get-current-prices", context)
        cat = parse_category(category) if category else None

        priced = await self.quotes.get_current_prices(cat)
        by_category: dict[str, int] = {}
        prices = []
        for inst, quote in priced:
            by_category[inst.category.value] = by_category.get(inst.category.value, 0) + 1
            prices.append({
                "instrument": inst.to_dict(),
                "price": quote.price,
                "timestamp": quote.timestamp_ms,
                "price_change_24h": self._price_change_24h(quote),
                "source": quote.source,
            })
        return {
            "timestamp": _now_ms(),
            "prices": prices,
            "summary": {
                "total_assets": len(prices),
                "by_category": by_category,
            },
        }

    # ── Candles ──────────────────────────────────────────────────────────

    async def get_ohlc_data(
        self,
        instrument: str,
        interval: str = "1h",
        count: int = DEFAULT_OHLC_COUNT,
        context: Optional[Context] = None,
    ) -> dict:
        await self._authorize("get-ohlc-data", context)
        iv = parse_interval(interval)
        count = _bounded_int("count", count, 1, MAX_OHLC_COUNT)
        inst = self.registry.resolve(instrument)

        candles = self.aggregator.get_candles(inst.id, iv, count)
        return {
            "instrument": inst.to_dict(),
            "interval": iv.value,
            "interval_label": iv.label,
            "count": len(candles),
            "candles": [c.to_dict() for c in candles],
            "statistics": summarize(candles),
        }

    async def get_interval_prices(
        self,
        instrument: str,
        interval: str = "1h",
        count: int = DEFAULT_OHLC_COUNT,
        context: Optional[Context] = None,
    ) -> dict:
        """Closing-price series for one interval, with change and trend analytics."""
        await self._authorize("get-interval-prices", context)
        iv = parse_interval(interval)
        count = _bounded_int("count", count, 1, MAX_OHLC_COUNT)
        inst = self.registry.resolve(instrument)

        candles = self.aggregator.get_candles(inst.id, iv, count)
        closes = [c.close for c in candles]
        first, last = candles[0], candles[-1]
        change = last.close - first.close
        return {
            "instrument": inst.to_dict(),
            "interval": iv.value,
            "data_points": len(candles),
            "time_range": {
                "start": first.bucket_start_ms,
                "end": last.bucket_start_ms,
                "duration_ms": last.bucket_start_ms - first.bucket_start_ms,
            },
            "prices": [
                {"price": c.close, "timestamp": c.bucket_start_ms, "source": "jupiter"}
                for c in candles
            ],
            "candles": [c.to_dict() for c in candles],
            "analytics": {
                "current_price": last.close,
                "first_price": first.close,
                "price_change": change,
                "price_change_pct": round(change / first.close * 100.0, 2),
                "volatility": annualized_volatility(closes),
                "trend": classify_trend(closes),
                "highest_price": max(closes),
                "lowest_price": min(closes),
            },
        }

    async def get_ohlc_stats(self, context: Optional[Context] = None) -> dict:
        await self._authorize("get-ohlc-stats", context)
        by_symbol: dict[str, dict[str, int]] = {}
        for instrument_id, counts in self.aggregator.stats().items():
            symbol = self.registry.get(instrument_id).symbol
            by_symbol[symbol] = counts
        return {
            "timestamp": _now_ms(),
            "instruments": by_symbol,
            "intervals": [iv.value for iv in self.aggregator.intervals],
            "max_candles": self.aggregator.max_candles,
            "poll_interval_seconds": self.config.poll_interval_seconds,
            "poller_cycles": self.poller.cycle_count if self.poller else 0,
        }

    # ── RSI ──────────────────────────────────────────────────────────────

    async def get_rsi_analysis(
        self,
        instrument: Optional[str] = None,
        category: Optional[str] = None,
        interval: Optional[str] = None,
        entry_price: Optional[float] = None,
        context: Optional[Context] = None,
    ) -> dict:
        await self._authorize("get-rsi-analysis", context)
        if instrument and category:
            raise ValueError("Pass either instrument or category, not both")
        iv = _optional_interval(interval)
        if entry_price is not None:
            if isinstance(entry_price, bool) or not isinstance(entry_price, (int, float)):
                raise ValueError(f"entry_price must be a number, got {entry_price!r}")
            if entry_price <= 0:
                raise ValueError(f"entry_price must be positive, got {entry_price}")

        if instrument:
            analyses = [await self.analyzer.analyze_instrument(instrument, iv, entry_price)]
            failures: dict[str, str] = {}
        else:
            cat = parse_category(category) if category else None
            analyses, failures = await self.analyzer.analyze_many(
                self.registry.by_category(cat), iv, entry_price,
            )

        tally = {"BUY": 0, "SELL": 0, "HOLD": 0}
        for a in analyses:
            tally[a.signal.action.value] += 1
        return {
            "timestamp": _now_ms(),
            "analyses": [a.to_dict() for a in analyses],
            "failures": failures,
            "summary": {
                "analyzed": len(analyses),
                "failed": len(failures),
                "buy_signals": tally["BUY"],
                "sell_signals": tally["SELL"],
                "hold_signals": tally["HOLD"],
            },
        }

    async def get_rsi_divergence(
        self,
        instrument: str,
        interval: Optional[str] = None,
        lookback: int = 10,
        context: Optional[Context] = None,
    ) -> dict:
        await self._authorize("get-rsi-divergence", context)
        lookback = _bounded_int("lookback", lookback, MIN_LOOKBACK, MAX_LOOKBACK)
        inst = self.registry.resolve(instrument)
        th = self.analyzer.thresholds_for(inst.category)
        iv = _optional_interval(interval) or th.interval

        candles = self.aggregator.get_candles(inst.id, iv, DIVERGENCE_CANDLES)
        try:
            rsi = calculate_rsi(candles, th.period)
        except InsufficientDataError as exc:
            raise InsufficientDataError(
                f"Unable to calculate RSI for {inst.symbol} at {iv.value}: {exc.message}"
            ) from exc

        return {
            "instrument": inst.to_dict(),
            "interval": iv.value,
            "lookback": lookback,
            "current_rsi": rsi[-1],
            "divergence": detect_divergence(rsi, candles, lookback).to_dict(),
            "timestamp": _now_ms(),
        }

    async def get_portfolio_signals(
        self, min_confidence: float = 0.6, context: Optional[Context] = None,
    ) -> dict:
        await self._authorize("get-portfolio-signals", context)
        if isinstance(min_confidence, bool) or not isinstance(min_confidence, (int, float)):
            raise ValueError(f"min_confidence must be a number, got {min_confidence!r}")
        portfolio = await self.analyzer.portfolio_signals(min_confidence=float(min_confidence))
        return portfolio.to_dict()


# ── Composition root ─────────────────────────────────────────────────────


def build_desk(config: Config, registry: Optional[InstrumentRegistry] = None) -> OperationDesk:
    """Wire every collaborator from *config*."""
    registry = registry or InstrumentRegistry()
    client = JupiterPriceClient(config.price_api_url, timeout=config.fetch_timeout_seconds)
    cache = QuoteCache(ttl_seconds=config.cache_ttl_seconds, max_entries=config.cache_max_entries)
    quotes = QuoteService(
        client,
        registry,
        cache=cache,
        fetch_timeout=config.fetch_timeout_seconds,
        max_concurrency=config.max_concurrency,
    )
    aggregator = CandleAggregator(max_candles=config.max_candles)
    analyzer = SignalAnalyzer(
        aggregator,
        registry,
        thresholds=load_thresholds(config.thresholds_path),
        max_concurrency=config.max_concurrency,
        analysis_timeout=config.analysis_timeout_seconds,
    )
    poller = PricePoller(
        client,
        registry,
        aggregator,
        poll_interval=config.poll_interval_seconds,
        fetch_timeout=config.fetch_timeout_seconds,
        max_concurrency=config.max_concurrency,
    )
    logger.info(
        "Built operation desk: %d instruments, payments %s",
        len(registry), "enabled" if config.payment_enabled else "disabled",
    )
    return OperationDesk(
        quotes, aggregator, analyzer, build_gate(config), poller=poller, config=config,
    )
