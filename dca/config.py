"""
DCA - Configuration.

============================================================
PURPOSE
============================================================
Weights and bounds for the dynamic multiplier, plus the
market-data and pre-flight parameters of the DCA engine.

============================================================
MULTIPLIER MODEL
============================================================
final = base_multiplier * sum(weight_i * sub_score_i)
clamped to [min_multiplier, max_multiplier].

The five weights must sum to 1.0.

============================================================
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict

from core.exceptions import ValidationError


WEIGHT_TOLERANCE = 1e-6


# ============================================================
# MULTIPLIER WEIGHTS
# ============================================================


@dataclass(frozen=True)
class MultiplierWeights:
    """Relative importance of each sub-score."""

    rsi: float = 0.20
    volatility: float = 0.25
    price_position: float = 0.20
    macd: float = 0.15
    support_resistance: float = 0.20

    def validate(self) -> None:
        values = self.to_dict()
        for name, value in values.items():
            if not math.isfinite(value) or value < 0:
                raise ValidationError(f"Weight {name} must be a non-negative number", field=name)
        total = sum(values.values())
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ValidationError(f"Multiplier weights must sum to 1.0, got {total:.6f}", field="weights")

    def to_dict(self) -> Dict[str, float]:
        return {
            "rsi": self.rsi,
            "volatility": self.volatility,
            "price_position": self.price_position,
            "macd": self.macd,
            "support_resistance": self.support_resistance,
        }


# ============================================================
# ENGINE CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class DCAConfig:
    """DCA engine parameters."""

    weights: MultiplierWeights = field(default_factory=MultiplierWeights)

    # Multiplier bounds
    base_multiplier: float = 1.5
    min_multiplier: float = 0.8                    # Hard floor, never crossed
    max_multiplier: float = 2.5                    # Hard ceiling, never crossed

    # Market data
    kline_interval: str = "30m"
    kline_limit: int = 200
    ema_period: int = 89                           # Entry requires price below this EMA
    sr_window: int = 20                            # Closes used for support/resistance

    # Funding
    quote_asset: str = "USDT"
    preflight_multiplier: float = 1.5              # Fixed per-step growth for affordability estimate

    # Schedule preview
    preview_price_step: float = 0.98               # Price factor applied per projected order
    preview_position_step: float = 5.0             # Price position points removed per projected order

    def validate(self) -> None:
        self.weights.validate()
        if not 0 < self.min_multiplier <= self.max_multiplier:
            raise ValidationError("min_multiplier must be positive and <= max_multiplier", field="min_multiplier")
        if self.kline_limit <= self.ema_period:
            raise ValidationError("kline_limit must exceed ema_period", field="kline_limit")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weights": self.weights.to_dict(),
            "base_multiplier": self.base_multiplier,
            "min_multiplier": self.min_multiplier,
            "max_multiplier": self.max_multiplier,
            "kline_interval": self.kline_interval,
            "kline_limit": self.kline_limit,
            "ema_period": self.ema_period,
            "quote_asset": self.quote_asset,
            "preflight_multiplier": self.preflight_multiplier,
        }
