"""Jupiter Price API async client.

Fetches the current USD price for one token mint. Every failure mode
(transport error, non-2xx after retries, missing or non-positive price)
surfaces as ``UpstreamFetchError``; no fallback price is ever invented.
"""

import asyncio
import logging
import math
import time
from typing import Optional

import httpx

from rwa_signals.errors import UpstreamFetchError
from rwa_signals.feed.models import PriceQuote

logger = logging.getLogger("rwa_signals.price_client")

# Retry settings
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 0.5  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {502, 503, 504, 429}


def _now_ms() -> int:
    return int(time.time() * 1000)


class JupiterPriceClient:
    """Async client wrapping the Jupiter Price API (v3).

    Args:
        base_url: Price endpoint, e.g. ``https://lite-api.jup.ag/price/v3``.
        timeout: Per-request timeout in seconds.
        retry_base_delay: First backoff delay; doubles each attempt.
    """

    source = "jupiter"

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        retry_base_delay: float = _RETRY_BASE_DELAY,
    ) -> None:
        self._base_url = base_url
        self._timeout = timeout
        self._retry_base_delay = retry_base_delay

    # ── Retry helper ─────────────────────────────────────────────────────

    async def _request_with_retry(self, url: str, **kwargs) -> httpx.Response:
        """GET *url* with exponential-backoff retry.

        Retries on transient server errors (502, 503, 504) and rate-limits
        (429).  Non-retryable HTTP errors are raised immediately.
        """
        last_exc: Optional[Exception] = None

        for attempt in range(_MAX_RETRIES):
            try:
                async with httpx.AsyncClient() as client:
                    resp = await client.get(url, timeout=self._timeout, **kwargs)

                if resp.status_code in _RETRYABLE_STATUS_CODES:
                    delay = self._retry_base_delay * (2 ** attempt)
                    logger.warning(
                        "Price API GET %s returned %d, retry %d/%d in %.1fs",
                        url, resp.status_code, attempt + 1, _MAX_RETRIES, delay,
                    )
                    last_exc = httpx.HTTPStatusError(
                        f"Server error '{resp.status_code}'",
                        request=resp.request,
                        response=resp,
                    )
                    await asyncio.sleep(delay)
                    continue

                resp.raise_for_status()
                return resp

            except httpx.TransportError as exc:
                delay = self._retry_base_delay * (2 ** attempt)
                logger.warning(
                    "Price API GET %s transport error (%s), retry %d/%d in %.1fs",
                    url, exc, attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = exc
                await asyncio.sleep(delay)

        raise last_exc  # type: ignore[misc]

    # ── Prices ───────────────────────────────────────────────────────────

    async def get_price(self, instrument_id: str) -> PriceQuote:
        """Fetch the current price for the token mint *instrument_id*.

        Raises ``UpstreamFetchError`` when the feed cannot supply a usable
        price.
        """
        params = {"ids": instrument_id}
        try:
            resp = await self._request_with_retry(self._base_url, params=params)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamFetchError(
                f"Unable to fetch price for {instrument_id}: {exc}",
                instrument_id=instrument_id,
            ) from exc

        info = data.get(instrument_id) if isinstance(data, dict) else None
        if not info or info.get("usdPrice") is None:
            raise UpstreamFetchError(
                f"No price data available for {instrument_id}",
                instrument_id=instrument_id,
            )

        try:
            price = float(info["usdPrice"])
        except (TypeError, ValueError):
            raise UpstreamFetchError(
                f"Malformed price for {instrument_id}: {info['usdPrice']!r}",
                instrument_id=instrument_id,
            ) from None
        if not math.isfinite(price) or price <= 0:
            raise UpstreamFetchError(
                f"Unusable price for {instrument_id}: {price}",
                instrument_id=instrument_id,
            )

        change = info.get("priceChange24h")
        return PriceQuote(
            instrument_id=instrument_id,
            price=price,
            timestamp_ms=_now_ms(),
            source=self.source,
            price_change_24h=float(change) if change is not None else None,
        )
