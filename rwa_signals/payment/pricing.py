"""Per-operation prices, in token micro-units (1_000_000 = 1 USDC)."""

from dataclasses import dataclass

MICRO_UNITS_PER_TOKEN = 1_000_000


@dataclass(frozen=True)
class OperationPrice:
    amount: str
    description: str

    @property
    def formatted(self) -> str:
        return formatted_price(self.amount)

    def to_dict(self) -> dict:
        return {
            "amount": self.amount,
            "formatted": self.formatted,
            "description": self.description,
        }


OPERATION_PRICING: dict[str, OperationPrice] = {
    "get-current-prices": OperationPrice("10000", "Real-time asset prices"),
    "get-ohlc-data": OperationPrice("20000", "OHLC candlestick data"),
    "get-interval-prices": OperationPrice("20000", "Time-series price data with analytics"),
    "get-ohlc-stats": OperationPrice("5000", "OHLC collection statistics"),
    "get-rsi-analysis": OperationPrice("50000", "RSI trading signal analysis"),
    "get-rsi-divergence": OperationPrice("50000", "RSI divergence pattern detection"),
    "get-portfolio-signals": OperationPrice("100000", "Portfolio-wide trading signals"),
}

PAYMENT_INSTRUCTIONS = [
    "1. Create a signed transaction for the required amount",
    "2. Submit transaction to facilitator",
    "3. Include X-PAYMENT header with payment proof",
    "4. Retry the tool request with payment header",
]


def formatted_price(amount: str, token: str = "USDC") -> str:
    """``"10000"`` -> ``"$0.010 USDC"``."""
    return f"${int(amount) / MICRO_UNITS_PER_TOKEN:.3f} {token}"
