"""Error taxonomy shared by every layer of the signal service.

Each error carries a machine-readable ``kind`` and an HTTP status so the
API surface can render it without knowing where it was raised.
"""

from typing import Optional


class SignalServiceError(Exception):
    """Base class for errors surfaced to callers."""

    kind = "internal_error"
    http_status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class InsufficientDataError(SignalServiceError):
    """Not enough candle history yet. Recoverable after more polling cycles."""

    kind = "insufficient_data"
    http_status = 409


class InstrumentNotFoundError(SignalServiceError):
    """Unknown instrument id or symbol."""

    kind = "instrument_not_found"
    http_status = 404

    def __init__(self, identifier: str, available: Optional[list[str]] = None) -> None:
        message = f"Instrument not found: {identifier}"
        if available:
            message += f". Available: {', '.join(available)}"
        super().__init__(message)
        self.identifier = identifier
        self.available = list(available or [])


class UpstreamFetchError(SignalServiceError):
    """The price feed is unreachable or returned no usable price."""

    kind = "upstream_unavailable"
    http_status = 502

    def __init__(self, message: str, instrument_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.instrument_id = instrument_id


class AuthorizationDeniedError(SignalServiceError):
    """The payment gate rejected the call.

    Carries the operation's price so the caller can pay and retry.
    """

    kind = "payment_required"
    http_status = 402

    def __init__(
        self,
        operation: str,
        reason: str,
        amount: Optional[str] = None,
        formatted_price: Optional[str] = None,
        description: Optional[str] = None,
        instructions: Optional[list[str]] = None,
    ) -> None:
        super().__init__(reason)
        self.operation = operation
        self.amount = amount
        self.formatted_price = formatted_price
        self.description = description
        self.instructions = list(instructions or [])

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["operation"] = self.operation
        data["pricing"] = (
            {
                "amount": self.amount,
                "formatted": self.formatted_price,
                "description": self.description,
            }
            if self.amount is not None
            else None
        )
        data["instructions"] = self.instructions
        return data
