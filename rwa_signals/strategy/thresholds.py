"""Per-category RSI policy table.

Defaults live here; a deployment can override any field per category with
a JSON file (``THRESHOLDS_PATH``) shaped like::

    {"gold-token": {"oversold": 20, "stop_loss": 0.02}}
"""

import dataclasses
import json
import logging
import pathlib
from dataclasses import dataclass
from typing import Mapping, Optional

from rwa_signals.instruments import Category, parse_category
from rwa_signals.market.intervals import Interval, parse_interval

logger = logging.getLogger("rwa_signals.thresholds")


@dataclass(frozen=True)
class RSIThresholds:
    """Signal policy for one asset category.

    ``stop_loss`` and ``take_profit`` are fractions of the entry price
    (0.03 = 3 %).
    """

    period: int
    oversold: float
    overbought: float
    stop_loss: float
    take_profit: float
    interval: Interval

    def __post_init__(self) -> None:
        if self.period < 1:
            raise ValueError(f"period must be positive, got {self.period}")
        if not 0 <= self.oversold < self.overbought <= 100:
            raise ValueError(
                f"need 0 <= oversold < overbought <= 100, "
                f"got {self.oversold} / {self.overbought}"
            )
        if not 0 < self.stop_loss < 1 or self.take_profit <= 0:
            raise ValueError(
                f"stop_loss must be in (0, 1) and take_profit positive, "
                f"got {self.stop_loss} / {self.take_profit}"
            )

    @property
    def risk_reward_ratio(self) -> float:
        return self.take_profit / self.stop_loss

    def to_dict(self) -> dict:
        return {
            "period": self.period,
            "oversold": self.oversold,
            "overbought": self.overbought,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "interval": self.interval.value,
        }


DEFAULT_THRESHOLDS: dict[Category, RSIThresholds] = {
    Category.WRAPPED_BTC: RSIThresholds(
        period=14, oversold=30, overbought=70,
        stop_loss=0.03, take_profit=0.05, interval=Interval.H1,
    ),
    Category.TOKENIZED_STOCK: RSIThresholds(
        period=14, oversold=35, overbought=65,
        stop_loss=0.025, take_profit=0.04, interval=Interval.M5,
    ),
    Category.GOLD_TOKEN: RSIThresholds(
        period=14, oversold=25, overbought=75,
        stop_loss=0.015, take_profit=0.03, interval=Interval.H1,
    ),
}

_FIELDS = {f.name for f in dataclasses.fields(RSIThresholds)}


def apply_overrides(
    base: Mapping[Category, RSIThresholds],
    overrides: Mapping[str, Mapping],
) -> dict[Category, RSIThresholds]:
    """Return a copy of *base* with per-category field overrides applied.

    Raises ``ValueError`` for unknown categories or fields.
    """
    table = dict(base)
    for raw_category, fields in overrides.items():
        category = parse_category(raw_category)
        unknown = set(fields) - _FIELDS
        if unknown:
            raise ValueError(
                f"Unknown threshold field(s) for {raw_category}: {', '.join(sorted(unknown))}"
            )
        changes = dict(fields)
        if "interval" in changes:
            changes["interval"] = parse_interval(changes["interval"])
        table[category] = dataclasses.replace(table[category], **changes)
    return table


def load_thresholds(path: Optional[str] = None) -> dict[Category, RSIThresholds]:
    """Load the policy table, applying the JSON overrides at *path* if given."""
    if not path:
        return dict(DEFAULT_THRESHOLDS)
    data = json.loads(pathlib.Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Threshold file {path} must contain a JSON object")
    table = apply_overrides(DEFAULT_THRESHOLDS, data)
    logger.info("Loaded threshold overrides for %s from %s", ", ".join(data), path)
    return table
