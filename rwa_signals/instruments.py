"""Instrument registry — the fixed universe of tracked tokens.

Resolved once at startup into a map keyed by canonical id (the token's
mint address), with a case-insensitive symbol index for lookups.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from rwa_signals.errors import InstrumentNotFoundError


class Category(str, Enum):
    """Asset class of an instrument. Drives the signal policy."""

    WRAPPED_BTC = "wrapped-btc"
    TOKENIZED_STOCK = "tokenized-stock"
    GOLD_TOKEN = "gold-token"


@dataclass(frozen=True)
class Instrument:
    """A tradable token on the price feed."""

    id: str
    symbol: str
    display_name: str
    category: Category
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "name": self.display_name,
            "category": self.category.value,
        }


DEFAULT_INSTRUMENTS: tuple[Instrument, ...] = (
    # ── Wrapped BTC ──────────────────────────────────────────────────────
    Instrument(
        id="3NZ9JMVBmGAqocybic2c7LQCJScmgsAZ6vQqTDzcqmJh",
        symbol="WBTC",
        display_name="Wrapped Bitcoin (Portal)",
        category=Category.WRAPPED_BTC,
        description="Wrapped Bitcoin bridged via Portal",
    ),
    Instrument(
        id="cbbtcf3aa214zXHbiAZQwf4122FBYbraNdFqgw4iMij",
        symbol="cbBTC",
        display_name="Coinbase Wrapped BTC",
        category=Category.WRAPPED_BTC,
        description="Coinbase Wrapped Bitcoin",
    ),
    Instrument(
        id="zBTCug3er3tLyffELcvDNrKkCymbPWysGcWihESYfLg",
        symbol="zBTC",
        display_name="Zeus Bitcoin",
        category=Category.WRAPPED_BTC,
        description="Bitcoin bridged via Zeus Network",
    ),
    # ── Tokenized stocks ─────────────────────────────────────────────────
    Instrument(
        id="XsDoVfqeBukxuZHWhdvWHBhgEHjGNst4MLodqsJHzoB",
        symbol="TSLAx",
        display_name="Tesla xStock",
        category=Category.TOKENIZED_STOCK,
        description="Tokenized Tesla stock",
    ),
    Instrument(
        id="XsbEhLAtcf6HdfpFZ5xEMdqW8nfAvcsP5bdudRLJzJp",
        symbol="AAPLx",
        display_name="Apple xStock",
        category=Category.TOKENIZED_STOCK,
        description="Tokenized Apple stock",
    ),
    Instrument(
        id="XspzcW1PRtgf6Wj92HCiZdjzKCyFekVD8P5Ueh3dRMX",
        symbol="MSFTx",
        display_name="Microsoft xStock",
        category=Category.TOKENIZED_STOCK,
        description="Tokenized Microsoft stock",
    ),
    Instrument(
        id="Xs3eBt7uRfJX8QUs4suhyU8p2M6DoUDrJyWBa8LLZsg",
        symbol="AMZNx",
        display_name="Amazon xStock",
        category=Category.TOKENIZED_STOCK,
        description="Tokenized Amazon stock",
    ),
    Instrument(
        id="XsCPL9dNWBMvFtTmwcCA5v3xWPSMEBCszbQdiLLq6aN",
        symbol="GOOGLx",
        display_name="Alphabet xStock",
        category=Category.TOKENIZED_STOCK,
        description="Tokenized Alphabet stock",
    ),
    Instrument(
        id="XsEH7wWfJJu2ZT3UCFeVfALnVA6CP5ur7Ee11KmzVpL",
        symbol="NFLXx",
        display_name="Netflix xStock",
        category=Category.TOKENIZED_STOCK,
        description="Tokenized Netflix stock",
    ),
    # ── Gold ─────────────────────────────────────────────────────────────
    Instrument(
        id="C6oFsE8nXRDThzrMEQ5SxaNFGKoyyfWDDVPw37JKvPTe",
        symbol="PAXG",
        display_name="Paxos Gold",
        category=Category.GOLD_TOKEN,
        description="1 PAXG = 1 troy oz of gold",
    ),
    Instrument(
        id="AymATz4TCL9sWNEEV9Kvyz45CHVhDZ6kUgjTJPzLpU9P",
        symbol="XAUT",
        display_name="Tether Gold",
        category=Category.GOLD_TOKEN,
        description="1 XAUt = 1 troy oz of gold",
    ),
)


def parse_category(value: str) -> Category:
    """Return the ``Category`` for *value*.

    Raises ``ValueError`` naming the accepted values when unknown.
    """
    try:
        return Category(value)
    except ValueError:
        accepted = ", ".join(c.value for c in Category)
        raise ValueError(f"Unknown category '{value}'. Expected one of: {accepted}") from None


class InstrumentRegistry:
    """Immutable lookup over the instrument catalog.

    Args:
        instruments: Catalog entries, in display order. Ids and symbols
                     must be unique (symbols case-insensitively).
    """

    def __init__(self, instruments: Iterable[Instrument] = DEFAULT_INSTRUMENTS) -> None:
        self._ordered: tuple[Instrument, ...] = tuple(instruments)
        self._by_id: dict[str, Instrument] = {}
        self._by_symbol: dict[str, Instrument] = {}
        for inst in self._ordered:
            if inst.id in self._by_id:
                raise ValueError(f"Duplicate instrument id: {inst.id}")
            key = inst.symbol.lower()
            if key in self._by_symbol:
                raise ValueError(f"Duplicate instrument symbol: {inst.symbol}")
            self._by_id[inst.id] = inst
            self._by_symbol[key] = inst

    def __len__(self) -> int:
        return len(self._ordered)

    def __iter__(self):
        return iter(self._ordered)

    def all(self) -> list[Instrument]:
        return list(self._ordered)

    @property
    def symbols(self) -> list[str]:
        return [i.symbol for i in self._ordered]

    def get(self, instrument_id: str) -> Instrument:
        """Look up by canonical id. Raises ``InstrumentNotFoundError``."""
        inst = self._by_id.get(instrument_id)
        if inst is None:
            raise InstrumentNotFoundError(instrument_id, self.symbols)
        return inst

    def resolve(self, identifier: str) -> Instrument:
        """Look up by canonical id or symbol (case-insensitive)."""
        inst = self._by_id.get(identifier) or self._by_symbol.get(identifier.lower())
        if inst is None:
            raise InstrumentNotFoundError(identifier, self.symbols)
        return inst

    def by_category(self, category: Optional[Category] = None) -> list[Instrument]:
        if category is None:
            return self.all()
        return [i for i in self._ordered if i.category is category]
