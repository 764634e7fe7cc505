"""Tests for rwa_signals.instruments — catalog and lookups."""

import pytest

from rwa_signals.errors import InstrumentNotFoundError
from rwa_signals.instruments import (
    Category,
    Instrument,
    InstrumentRegistry,
    parse_category,
)


@pytest.fixture
def registry():
    return InstrumentRegistry()


class TestRegistry:
    def test_default_universe(self, registry):
        assert len(registry) == 11
        assert len(registry.by_category(Category.WRAPPED_BTC)) == 3
        assert len(registry.by_category(Category.TOKENIZED_STOCK)) == 6
        assert len(registry.by_category(Category.GOLD_TOKEN)) == 2
        assert len(registry.by_category()) == 11

    def test_resolve_by_symbol_case_insensitive(self, registry):
        assert registry.resolve("paxg").symbol == "PAXG"
        assert registry.resolve("CBBTC").symbol == "cbBTC"

    def test_resolve_by_id(self, registry):
        wbtc = registry.resolve("WBTC")
        assert registry.resolve(wbtc.id) is wbtc
        assert registry.get(wbtc.id) is wbtc

    def test_get_rejects_symbol(self, registry):
        with pytest.raises(InstrumentNotFoundError):
            registry.get("WBTC")

    def test_no_substring_matching(self, registry):
        with pytest.raises(InstrumentNotFoundError) as exc_info:
            registry.resolve("BTC")
        assert "Available: WBTC" in exc_info.value.message

    def test_duplicate_id_rejected(self):
        a = Instrument("mint-a", "AAA", "A", Category.GOLD_TOKEN)
        b = Instrument("mint-a", "BBB", "B", Category.GOLD_TOKEN)
        with pytest.raises(ValueError, match="Duplicate instrument id"):
            InstrumentRegistry([a, b])

    def test_duplicate_symbol_rejected(self):
        a = Instrument("mint-a", "AAA", "A", Category.GOLD_TOKEN)
        b = Instrument("mint-b", "aaa", "B", Category.GOLD_TOKEN)
        with pytest.raises(ValueError, match="Duplicate instrument symbol"):
            InstrumentRegistry([a, b])

    def test_to_dict(self, registry):
        d = registry.resolve("XAUT").to_dict()
        assert d["symbol"] == "XAUT"
        assert d["category"] == "gold-token"


def test_parse_category():
    assert parse_category("tokenized-stock") is Category.TOKENIZED_STOCK
    with pytest.raises(ValueError, match="wrapped-btc"):
        parse_category("bonds")
