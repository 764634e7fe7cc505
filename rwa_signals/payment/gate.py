"""Payment authorization gate.

Every exposed operation asks the gate once before doing any work.  The
gate only verifies a payment proof with the x402 facilitator; settlement
happens elsewhere.
"""

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol

import httpx

from rwa_signals.config import Config
from rwa_signals.payment.pricing import OPERATION_PRICING

logger = logging.getLogger("rwa_signals.payment")

PAYMENT_HEADER = "x-payment"
X402_VERSION = 1


@dataclass(frozen=True)
class AuthorizationDecision:
    granted: bool
    reason: str = ""


class AuthorizationGate(Protocol):
    """Decides whether a call to *operation* may proceed."""

    async def authorize(
        self, operation: str, context: Mapping[str, str],
    ) -> AuthorizationDecision:
        ...


class OpenGate:
    """Grants everything. Used when payments are disabled."""

    async def authorize(
        self, operation: str, context: Mapping[str, str],
    ) -> AuthorizationDecision:
        return AuthorizationDecision(granted=True, reason="payments disabled")


def _header(context: Mapping[str, str], name: str) -> Optional[str]:
    for key, value in context.items():
        if key.lower() == name:
            return value
    return None


def decode_payment_header(header: str) -> dict:
    """Decode a base64 JSON ``X-PAYMENT`` header into the payment payload.

    Raises ``ValueError`` when the header is not base64-encoded JSON.
    """
    try:
        raw = base64.b64decode(header, validate=True)
        payload = json.loads(raw)
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError(f"X-PAYMENT header is not base64-encoded JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError("X-PAYMENT header must encode a JSON object")
    return payload


class FacilitatorGate:
    """Verifies ``X-PAYMENT`` proofs with an x402 facilitator.

    Args:
        config: Supplies the facilitator URL, network, treasury and token.
        timeout: Per-request timeout in seconds.
    """

    def __init__(self, config: Config, timeout: float = 10.0) -> None:
        self._facilitator_url = config.facilitator_url.rstrip("/")
        self._network = config.payment_network
        self._pay_to = config.treasury_address
        self._asset = config.payment_token
        self._timeout = timeout

    def payment_requirements(self, operation: str, resource: str = "") -> dict:
        """Requirements a payment for *operation* must satisfy.

        Raises ``KeyError`` for an operation with no configured price.
        """
        price = OPERATION_PRICING[operation]
        return {
            "scheme": "exact",
            "network": self._network,
            "maxAmountRequired": price.amount,
            "asset": self._asset,
            "payTo": self._pay_to,
            "resource": resource or f"/tools/{operation}",
            "description": price.description,
            "mimeType": "application/json",
        }

    async def authorize(
        self, operation: str, context: Mapping[str, str],
    ) -> AuthorizationDecision:
        header = _header(context, PAYMENT_HEADER)
        if not header:
            return AuthorizationDecision(granted=False, reason="Payment Required")

        try:
            payload = decode_payment_header(header)
        except ValueError as exc:
            logger.warning("Rejected payment for %s: %s", operation, exc)
            return AuthorizationDecision(granted=False, reason="Invalid payment header")

        body = {
            "x402Version": X402_VERSION,
            "paymentPayload": payload,
            "paymentRequirements": self.payment_requirements(
                operation, _header(context, "x-resource-url") or "",
            ),
        }
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    f"{self._facilitator_url}/verify", json=body, timeout=self._timeout,
                )
            resp.raise_for_status()
            result = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Payment verification failed for %s: %s", operation, exc)
            return AuthorizationDecision(granted=False, reason="Payment verification failed")

        if isinstance(result, dict) and result.get("isValid") is True:
            logger.info("Payment verified for %s", operation)
            return AuthorizationDecision(granted=True, reason="payment verified")

        reason = "Payment verification failed"
        if isinstance(result, dict) and result.get("invalidReason"):
            reason = f"{reason}: {result['invalidReason']}"
        logger.warning("Payment rejected for %s: %s", operation, reason)
        return AuthorizationDecision(granted=False, reason=reason)


def build_gate(config: Config) -> AuthorizationGate:
    """``FacilitatorGate`` when payments are enabled, else ``OpenGate``."""
    if config.payment_enabled:
        return FacilitatorGate(config)
    logger.warning("Payment gating disabled; every operation is free")
    return OpenGate()
