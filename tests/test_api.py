"""Tests for the operation desk and the HTTP surface (/tools, /pricing, /health)."""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from rwa_signals.analysis import SignalAnalyzer
from rwa_signals.api.operations import OperationDesk, build_desk
from rwa_signals.config import Config
from rwa_signals.errors import AuthorizationDeniedError, UpstreamFetchError
from rwa_signals.feed.models import PriceQuote
from rwa_signals.feed.quote_cache import QuoteCache
from rwa_signals.feed.quote_service import QuoteService
from rwa_signals.instruments import InstrumentRegistry
from rwa_signals.main import create_app
from rwa_signals.market.candles import CandleAggregator
from rwa_signals.payment.gate import AuthorizationDecision, FacilitatorGate, OpenGate
from rwa_signals.poller import PricePoller

HOUR = 3_600_000
T0 = 1_700_000_000_000 // HOUR * HOUR
REGISTRY = InstrumentRegistry()
PAXG = REGISTRY.resolve("PAXG")
WBTC = REGISTRY.resolve("WBTC")


# ── Helpers ──────────────────────────────────────────────────────────────


class FakeFeed:
    def __init__(self, failing=(), price=2650.0, change_24h=0.4):
        self.failing = set(failing)
        self.price = price
        self.change_24h = change_24h

    async def get_price(self, instrument_id: str) -> PriceQuote:
        if instrument_id in self.failing:
            raise UpstreamFetchError("feed down", instrument_id)
        return PriceQuote(
            instrument_id=instrument_id, price=self.price, timestamp_ms=T0,
            price_change_24h=self.change_24h,
        )


class CountingGate:
    """Grants or denies everything and records each call."""

    def __init__(self, granted: bool = True):
        self.granted = granted
        self.calls: list[str] = []

    async def authorize(self, operation, context):
        self.calls.append(operation)
        return AuthorizationDecision(self.granted, "" if self.granted else "Payment Required")


def _make_desk(gate=None, feed=None) -> OperationDesk:
    aggregator = CandleAggregator()
    quotes = QuoteService(feed or FakeFeed(), REGISTRY, cache=QuoteCache())
    analyzer = SignalAnalyzer(aggregator, REGISTRY)
    return OperationDesk(
        quotes, aggregator, analyzer, gate or OpenGate(),
        config=Config(poll_interval_seconds=5.0),
    )


def _feed_hourly(desk: OperationDesk, instrument_id: str, closes: list[float]) -> None:
    for i, price in enumerate(closes):
        desk.aggregator.ingest(instrument_id, price, T0 + i * HOUR)


def _price_entry(data: dict, symbol: str) -> dict:
    return next(p for p in data["prices"] if p["instrument"]["symbol"] == symbol)


@pytest.fixture
def desk():
    return _make_desk()


@pytest.fixture
def client(desk):
    with TestClient(create_app(desk=desk, start_poller=False)) as c:
        yield c


# ── Desk ─────────────────────────────────────────────────────────────────


class TestOperationDesk:
    @pytest.mark.asyncio
    async def test_denied_operation_never_computes(self):
        gate = CountingGate(granted=False)
        desk = _make_desk(gate)
        desk.analyzer.portfolio_signals = AsyncMock()

        with pytest.raises(AuthorizationDeniedError) as exc_info:
            await desk.get_portfolio_signals(min_confidence=0.6)

        desk.analyzer.portfolio_signals.assert_not_awaited()
        err = exc_info.value
        assert err.operation == "get-portfolio-signals"
        assert err.amount == "100000"
        assert err.formatted_price == "$0.100 USDC"
        assert err.description == "Portfolio-wide trading signals"
        assert err.instructions

    @pytest.mark.asyncio
    async def test_gate_called_once_per_operation(self):
        gate = CountingGate()
        desk = _make_desk(gate)
        _feed_hourly(desk, PAXG.id, [100.0 + i for i in range(20)])

        await desk.invoke("get-current-prices")
        await desk.invoke("get-ohlc-data", {"instrument": "PAXG", "interval": "1h"})
        await desk.invoke("get-interval-prices", {"instrument": "PAXG"})
        await desk.invoke("get-ohlc-stats")
        await desk.invoke("get-rsi-analysis", {"instrument": "PAXG"})
        await desk.invoke("get-rsi-divergence", {"instrument": "PAXG"})
        await desk.invoke("get-portfolio-signals")

        assert gate.calls == [
            "get-current-prices",
            "get-ohlc-data",
            "get-interval-prices",
            "get-ohlc-stats",
            "get-rsi-analysis",
            "get-rsi-divergence",
            "get-portfolio-signals",
        ]

    @pytest.mark.asyncio
    async def test_24h_change_from_hourly_candles(self):
        desk = _make_desk(feed=FakeFeed(price=130.0, change_24h=None))
        _feed_hourly(desk, WBTC.id, [100.0 + i for i in range(30)])

        data = await desk.get_current_prices(category="wrapped-btc")

        entry = _price_entry(data, "WBTC")
        # open of the 24th candle from the end is 106.0
        assert entry["price_change_24h"] == pytest.approx((130.0 - 106.0) / 106.0 * 100)

    @pytest.mark.asyncio
    async def test_24h_change_needs_a_day_of_candles(self):
        desk = _make_desk(feed=FakeFeed(price=130.0, change_24h=None))
        _feed_hourly(desk, WBTC.id, [100.0 + i for i in range(23)])

        data = await desk.get_current_prices(category="wrapped-btc")

        assert _price_entry(data, "WBTC")["price_change_24h"] is None

    @pytest.mark.asyncio
    async def test_feed_24h_change_wins(self):
        desk = _make_desk(feed=FakeFeed(price=130.0, change_24h=1.5))
        _feed_hourly(desk, WBTC.id, [100.0 + i for i in range(30)])

        data = await desk.get_current_prices(category="wrapped-btc")

        assert _price_entry(data, "WBTC")["price_change_24h"] == 1.5

    @pytest.mark.asyncio
    async def test_rsi_analysis_rejects_instrument_with_category(self, desk):
        with pytest.raises(ValueError, match="not both"):
            await desk.get_rsi_analysis(instrument="PAXG", category="gold-token")

    @pytest.mark.asyncio
    async def test_unknown_argument(self, desk):
        with pytest.raises(ValueError, match="Invalid arguments"):
            await desk.invoke("get-ohlc-stats", {"verbose": True})

    def test_build_desk(self):
        desk = build_desk(Config(payment_enabled=False, max_candles=50))
        assert isinstance(desk.gate, OpenGate)
        assert isinstance(desk.poller, PricePoller)
        assert desk.aggregator.max_candles == 50
        assert len(desk.registry) == 11

    def test_build_desk_with_payments(self):
        desk = build_desk(Config(payment_enabled=True, treasury_address="T"))
        assert isinstance(desk.gate, FacilitatorGate)


# ── HTTP ─────────────────────────────────────────────────────────────────


class TestUngatedEndpoints:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_pricing(self, client):
        resp = client.get("/pricing")
        assert resp.status_code == 200
        tools = resp.json()["tools"]
        assert tools["get-rsi-analysis"]["amount"] == "50000"
        assert tools["get-rsi-analysis"]["formatted"] == "$0.050 USDC"
        assert len(tools) == 7

    def test_list_tools(self, client):
        assert "get-portfolio-signals" in client.get("/tools").json()["tools"]


class TestPrices:
    def test_current_prices(self, client):
        resp = client.post("/tools/get-current-prices", json={"category": "gold-token"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "success"
        prices = body["data"]["prices"]
        assert [p["instrument"]["symbol"] for p in prices] == ["PAXG", "XAUT"]
        assert prices[0]["price"] == 2650.0
        assert body["data"]["summary"]["total_assets"] == 2

    def test_upstream_down(self):
        gold = [PAXG.id, REGISTRY.resolve("XAUT").id]
        desk = _make_desk(feed=FakeFeed(failing=gold))
        with TestClient(create_app(desk=desk, start_poller=False)) as c:
            resp = c.post("/tools/get-current-prices", json={"category": "gold-token"})
        assert resp.status_code == 502
        assert resp.json()["error"]["kind"] == "upstream_unavailable"

    def test_bad_category(self, client):
        resp = client.post("/tools/get-current-prices", json={"category": "bonds"})
        assert resp.status_code == 422
        assert resp.json()["error"]["kind"] == "invalid_request"


class TestOHLC:
    def test_candles_with_statistics(self, client, desk):
        _feed_hourly(desk, PAXG.id, [100.0, 102.0, 101.0, 105.0])
        resp = client.post(
            "/tools/get-ohlc-data", json={"instrument": "paxg", "interval": "1h", "count": 3},
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["count"] == 3
        assert [c["close"] for c in data["candles"]] == [102.0, 101.0, 105.0]
        assert data["statistics"]["highest_price"] == 105.0

    def test_no_data_yet(self, client):
        resp = client.post("/tools/get-ohlc-data", json={"instrument": "PAXG"})
        assert resp.status_code == 409
        assert resp.json()["error"]["kind"] == "insufficient_data"

    def test_unknown_instrument(self, client):
        resp = client.post("/tools/get-ohlc-data", json={"instrument": "DOGE"})
        assert resp.status_code == 404
        assert resp.json()["error"]["kind"] == "instrument_not_found"

    @pytest.mark.parametrize("count", [0, 1001, "ten"])
    def test_count_bounds(self, client, count):
        resp = client.post("/tools/get-ohlc-data", json={"instrument": "PAXG", "count": count})
        assert resp.status_code == 422

    def test_bad_interval(self, client):
        resp = client.post("/tools/get-ohlc-data", json={"instrument": "PAXG", "interval": "4h"})
        assert resp.status_code == 422

    def test_interval_prices_with_analytics(self, client, desk):
        _feed_hourly(desk, PAXG.id, [100.0, 104.0, 98.0, 110.0])
        resp = client.post(
            "/tools/get-interval-prices", json={"instrument": "PAXG", "interval": "1h", "count": 10},
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["data_points"] == 4
        assert [p["price"] for p in data["prices"]] == [100.0, 104.0, 98.0, 110.0]
        assert data["time_range"]["duration_ms"] == 3 * HOUR
        analytics = data["analytics"]
        assert analytics["current_price"] == 110.0
        assert analytics["first_price"] == 100.0
        assert analytics["price_change"] == pytest.approx(10.0)
        assert analytics["price_change_pct"] == pytest.approx(10.0)
        assert analytics["highest_price"] == 110.0
        assert analytics["lowest_price"] == 98.0

    def test_interval_prices_no_data_yet(self, client):
        resp = client.post("/tools/get-interval-prices", json={"instrument": "PAXG"})
        assert resp.status_code == 409

    def test_ohlc_stats_keyed_by_symbol(self, client, desk):
        _feed_hourly(desk, PAXG.id, [100.0, 101.0])
        resp = client.post("/tools/get-ohlc-stats")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["instruments"]["PAXG"]["1h"] == 2
        assert data["max_candles"] == 1000


class TestRSI:
    def test_single_instrument(self, client, desk):
        _feed_hourly(desk, PAXG.id, [100.0 + i for i in range(20)])
        resp = client.post("/tools/get-rsi-analysis", json={"instrument": "PAXG"})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["summary"]["analyzed"] == 1
        assert data["analyses"][0]["signal"]["action"] == "SELL"

    def test_category_batch_reports_failures(self, client, desk):
        _feed_hourly(desk, PAXG.id, [100.0 + i for i in range(20)])
        resp = client.post("/tools/get-rsi-analysis", json={"category": "gold-token"})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["summary"]["analyzed"] == 1
        assert list(data["failures"]) == [REGISTRY.resolve("XAUT").id]

    def test_insufficient_history(self, client, desk):
        _feed_hourly(desk, PAXG.id, [100.0, 101.0])
        resp = client.post("/tools/get-rsi-analysis", json={"instrument": "PAXG"})
        assert resp.status_code == 409

    def test_divergence(self, client, desk):
        _feed_hourly(desk, WBTC.id, [100.0 + i for i in range(20)])
        resp = client.post(
            "/tools/get-rsi-divergence", json={"instrument": "WBTC", "lookback": 10},
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["divergence"]["bullish"] is False
        assert data["divergence"]["bearish"] is False
        assert data["current_rsi"] == 100.0
        assert data["interval"] == "1h"

    @pytest.mark.parametrize("lookback", [4, 51])
    def test_divergence_lookback_bounds(self, client, lookback):
        resp = client.post(
            "/tools/get-rsi-divergence", json={"instrument": "WBTC", "lookback": lookback},
        )
        assert resp.status_code == 422

    def test_portfolio(self, client, desk):
        _feed_hourly(desk, PAXG.id, [100.0 - i for i in range(20)])
        resp = client.post("/tools/get-portfolio-signals", json={"min_confidence": 0.6})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert len(data["signals"]) == 1
        assert data["summary"]["total_hold_signals"] == 1
        assert len(data["failures"]) == 10


class TestGatedHTTP:
    def test_denied_returns_402_with_pricing(self):
        gate = CountingGate(granted=False)
        desk = _make_desk(gate)
        with TestClient(create_app(desk=desk, start_poller=False)) as c:
            resp = c.post("/tools/get-rsi-analysis", json={"instrument": "PAXG"})
        assert resp.status_code == 402
        body = resp.json()
        assert body["status"] == "error"
        err = body["error"]
        assert err["kind"] == "payment_required"
        assert err["message"] == "Payment Required"
        assert err["operation"] == "get-rsi-analysis"
        assert err["pricing"] == {
            "amount": "50000",
            "formatted": "$0.050 USDC",
            "description": "RSI trading signal analysis",
        }
        assert gate.calls == ["get-rsi-analysis"]

    def test_headers_reach_the_gate(self):
        seen = {}

        class RecordingGate:
            async def authorize(self, operation, context):
                seen.update(context)
                return AuthorizationDecision(True)

        desk = _make_desk(RecordingGate())
        with TestClient(create_app(desk=desk, start_poller=False)) as c:
            c.post("/tools/get-ohlc-stats", headers={"X-PAYMENT": "proof"})
        assert seen["x-payment"] == "proof"

    def test_unknown_operation(self, client):
        resp = client.post("/tools/get-crypto-news")
        assert resp.status_code == 404
        assert resp.json()["error"]["kind"] == "unknown_operation"
