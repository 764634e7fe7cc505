"""RWA signal service — application configuration.

Loads .env variables into a typed config object.
Validates required variables on startup.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


_DEFAULT_PRICE_API_URL = "https://lite-api.jup.ag/price/v3"
_DEFAULT_FACILITATOR_URL = "https://facilitator.payai.network"
_DEFAULT_USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

# Only required while payment gating is on
_PAYMENT_REQUIRED_VARS = [
    "TREASURY_ADDRESS",
]

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    price_api_url: str = _DEFAULT_PRICE_API_URL
    cache_ttl_seconds: float = 5.0
    cache_max_entries: int = 100
    max_candles: int = 1000
    poll_interval_seconds: float = 5.0
    fetch_timeout_seconds: float = 10.0
    analysis_timeout_seconds: float = 30.0
    max_concurrency: int = 8
    payment_enabled: bool = True
    facilitator_url: str = _DEFAULT_FACILITATOR_URL
    payment_network: str = "solana"  # "solana" or "solana-devnet"
    treasury_address: str = ""
    payment_token: str = _DEFAULT_USDC_MINT
    thresholds_path: Optional[str] = None
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    http_port: int = 3001


def _float_var(name: str, default: str, minimum: float = 0.0) -> float:
    raw = os.environ.get(name, default)
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _int_var(name: str, default: str, minimum: int = 1) -> int:
    raw = os.environ.get(name, default)
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the offending variable when
    a required variable is absent or a numeric variable is malformed.
    """
    load_dotenv(dotenv_path=env_path)

    payment_enabled = os.environ.get("PAYMENT_ENABLED", "true").strip().lower() in _TRUTHY

    if payment_enabled:
        missing = [v for v in _PAYMENT_REQUIRED_VARS if not os.environ.get(v)]
        if missing:
            raise ValueError(
                f"Missing required environment variable(s): {', '.join(missing)} "
                "(set PAYMENT_ENABLED=false to run without payment gating)"
            )

    return Config(
        price_api_url=os.environ.get("PRICE_API_URL", _DEFAULT_PRICE_API_URL),
        cache_ttl_seconds=_float_var("CACHE_TTL_SECONDS", "5"),
        cache_max_entries=_int_var("CACHE_MAX_ENTRIES", "100"),
        max_candles=_int_var("MAX_CANDLES", "1000"),
        poll_interval_seconds=_float_var("PRICE_POLL_INTERVAL_SECONDS", "5", minimum=0.1),
        fetch_timeout_seconds=_float_var("FETCH_TIMEOUT_SECONDS", "10", minimum=0.1),
        analysis_timeout_seconds=_float_var("ANALYSIS_TIMEOUT_SECONDS", "30", minimum=0.1),
        max_concurrency=_int_var("MAX_CONCURRENCY", "8"),
        payment_enabled=payment_enabled,
        facilitator_url=os.environ.get("FACILITATOR_URL", _DEFAULT_FACILITATOR_URL),
        payment_network=os.environ.get("PAYMENT_NETWORK", "solana"),
        treasury_address=os.environ.get("TREASURY_ADDRESS", ""),
        payment_token=os.environ.get("PAYMENT_TOKEN", _DEFAULT_USDC_MINT),
        thresholds_path=os.environ.get("THRESHOLDS_PATH") or None,
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        host=os.environ.get("HOST", "0.0.0.0"),
        http_port=_int_var("HTTP_PORT", "3001"),
    )
