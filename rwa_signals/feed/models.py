"""Price feed data models."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PriceQuote:
    """One price observation for an instrument.

    Created by the price client on every successful fetch; never mutated.
    """

    instrument_id: str
    price: float
    timestamp_ms: int
    source: str = "jupiter"
    price_change_24h: Optional[float] = None
