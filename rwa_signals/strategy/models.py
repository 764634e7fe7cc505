"""Strategy data models — typed representations for detector outputs.

All of these are derived per request and never persisted; a
``SignalResult`` is advice, not an open position.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Action(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


@dataclass(frozen=True)
class BuySignal:
    """Outcome of the category-specific entry rule."""

    signal: bool
    confidence: float
    reason: str


@dataclass(frozen=True)
class ExitSignal:
    """Outcome of the exit checks for a hypothetical entry price.

    ``trigger`` is ``"stop_loss"``, ``"take_profit"``, ``"overbought"``
    or ``None``.
    """

    should_exit: bool
    reason: str
    stop_loss: float
    take_profit: float
    trigger: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "should_exit": self.should_exit,
            "reason": self.reason,
            "trigger": self.trigger,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
        }


@dataclass(frozen=True)
class DivergenceResult:
    """Price/RSI divergence over a lookback window."""

    bullish: bool
    bearish: bool
    strength: Optional[float] = None
    divergence_points: tuple[int, ...] = field(default_factory=tuple)

    @property
    def detected(self) -> bool:
        return self.bullish or self.bearish

    def to_dict(self) -> dict:
        return {
            "bullish": self.bullish,
            "bearish": self.bearish,
            "strength": self.strength,
            "divergence_points": list(self.divergence_points),
        }


@dataclass(frozen=True)
class SignalResult:
    """Advisory trading signal for one instrument."""

    action: Action
    confidence: float
    reason: str
    entry_price: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    risk_reward_ratio: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "action": self.action.value,
            "confidence": self.confidence,
            "entry_price": self.entry_price,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "risk_reward_ratio": self.risk_reward_ratio,
            "reason": self.reason,
        }
