"""Tests for rwa_signals.payment — pricing table and authorization gates."""

import base64
import json

import httpx
import pytest

from rwa_signals.config import Config
from rwa_signals.payment.gate import (
    FacilitatorGate,
    OpenGate,
    build_gate,
    decode_payment_header,
)
from rwa_signals.payment.pricing import OPERATION_PRICING, formatted_price

TREASURY = "Treasury1111111111111111111111111111111111"
PAYLOAD = {"x402Version": 1, "scheme": "exact", "network": "solana", "payload": {"transaction": "AQID"}}


def _config(**overrides) -> Config:
    values = dict(
        payment_enabled=True,
        facilitator_url="https://facilitator.example/",
        treasury_address=TREASURY,
    )
    values.update(overrides)
    return Config(**values)


def _header(payload: dict = PAYLOAD) -> str:
    return base64.b64encode(json.dumps(payload).encode()).decode()


# ── Pricing ──────────────────────────────────────────────────────────────


class TestPricing:
    def test_amounts(self):
        assert OPERATION_PRICING["get-current-prices"].amount == "10000"
        assert OPERATION_PRICING["get-ohlc-data"].amount == "20000"
        assert OPERATION_PRICING["get-interval-prices"].amount == "20000"
        assert OPERATION_PRICING["get-rsi-analysis"].amount == "50000"
        assert OPERATION_PRICING["get-rsi-divergence"].amount == "50000"
        assert OPERATION_PRICING["get-portfolio-signals"].amount == "100000"
        assert OPERATION_PRICING["get-ohlc-stats"].amount == "5000"

    def test_formatted(self):
        assert formatted_price("10000") == "$0.010 USDC"
        assert formatted_price("100000") == "$0.100 USDC"
        assert OPERATION_PRICING["get-ohlc-stats"].formatted == "$0.005 USDC"


# ── Gates ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_open_gate_grants():
    decision = await OpenGate().authorize("get-portfolio-signals", {})
    assert decision.granted is True


def test_build_gate():
    assert isinstance(build_gate(_config()), FacilitatorGate)
    assert isinstance(build_gate(_config(payment_enabled=False)), OpenGate)


def test_decode_payment_header():
    assert decode_payment_header(_header()) == PAYLOAD
    with pytest.raises(ValueError):
        decode_payment_header("not base64!!")
    with pytest.raises(ValueError):
        decode_payment_header(base64.b64encode(b"[1, 2]").decode())


class TestFacilitatorGate:
    @pytest.mark.asyncio
    async def test_missing_header_denied(self, monkeypatch):
        async def _fail_post(self, *args, **kwargs):
            raise AssertionError("facilitator must not be called")

        monkeypatch.setattr(httpx.AsyncClient, "post", _fail_post)
        decision = await FacilitatorGate(_config()).authorize("get-rsi-analysis", {})
        assert decision.granted is False
        assert decision.reason == "Payment Required"

    @pytest.mark.asyncio
    async def test_valid_payment_granted(self, monkeypatch):
        captured = {}

        async def _mock_post(self, url, *, json=None, timeout=None):
            captured["url"] = url
            captured["body"] = json
            return httpx.Response(200, json={"isValid": True}, request=httpx.Request("POST", url))

        monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)

        decision = await FacilitatorGate(_config()).authorize(
            "get-rsi-analysis", {"X-PAYMENT": _header()},
        )

        assert decision.granted is True
        assert captured["url"] == "https://facilitator.example/verify"
        body = captured["body"]
        assert body["paymentPayload"] == PAYLOAD
        req = body["paymentRequirements"]
        assert req["maxAmountRequired"] == "50000"
        assert req["payTo"] == TREASURY
        assert req["network"] == "solana"
        assert req["description"] == "RSI trading signal analysis"

    @pytest.mark.asyncio
    async def test_invalid_payment_denied(self, monkeypatch):
        async def _mock_post(self, url, *, json=None, timeout=None):
            return httpx.Response(
                200,
                json={"isValid": False, "invalidReason": "insufficient_funds"},
                request=httpx.Request("POST", url),
            )

        monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)

        decision = await FacilitatorGate(_config()).authorize(
            "get-ohlc-data", {"x-payment": _header()},
        )
        assert decision.granted is False
        assert "insufficient_funds" in decision.reason

    @pytest.mark.asyncio
    async def test_facilitator_unreachable_denied(self, monkeypatch):
        async def _mock_post(self, url, *, json=None, timeout=None):
            raise httpx.ConnectError("facilitator down")

        monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)

        decision = await FacilitatorGate(_config()).authorize(
            "get-ohlc-data", {"x-payment": _header()},
        )
        assert decision.granted is False
        assert decision.reason == "Payment verification failed"

    @pytest.mark.asyncio
    async def test_garbled_header_denied(self):
        decision = await FacilitatorGate(_config()).authorize(
            "get-ohlc-data", {"x-payment": "%%%"},
        )
        assert decision.granted is False
        assert decision.reason == "Invalid payment header"
