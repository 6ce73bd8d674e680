"""
DCA - Dynamic Position Sizing.

============================================================
PURPOSE
============================================================
Pure function from a market snapshot to an order-size
multiplier, with an audit breakdown.

SUB-SCORES (each kept inside its own regime band):
- RSI:               oversold 1.8-2.2 | normal 1.3-1.7 | overbought 1.0-1.4
- Volatility %:      low 1.2-1.4      | normal 1.4-1.6 | high 1.6-2.0
- Price position:    near low 1.6-2.0 | middle 1.3-1.7 | near high 1.0-1.4
- MACD - signal:     flat 1.2-1.6     | up 1.3-1.7     | down 1.5-2.0
- Support/resistance: near support 1.6-2.0 | middle 1.3-1.7 | near resistance 1.0-1.4

final = clamp(base_multiplier * weighted sum, 0.8, 2.5)

The breakdown is informational only.

============================================================
"""

from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .config import DCAConfig, MultiplierWeights
from .snapshot import DCAMarketSnapshot


CENT = Decimal("0.01")


class DCAStrategy(Enum):
    CONSERVATIVE = "CONSERVATIVE"
    BALANCED = "BALANCED"
    AGGRESSIVE = "AGGRESSIVE"


STRATEGY_REASONS = {
    DCAStrategy.CONSERVATIVE: "Unfavourable conditions, accumulate conservatively",
    DCAStrategy.BALANCED: "Neutral conditions, balanced accumulation",
    DCAStrategy.AGGRESSIVE: "Favourable conditions, accumulate aggressively",
}


# ============================================================
# RESULT TYPES
# ============================================================


@dataclass(frozen=True)
class SubScore:
    name: str
    value: float
    regime: str
    weight: float

    @property
    def contribution(self) -> float:
        return self.value * self.weight


@dataclass(frozen=True)
class MultiplierResult:
    """Clamped multiplier plus per-indicator breakdown."""

    value: float
    weighted_sum: float
    unclamped: float
    components: Tuple[SubScore, ...]

    @property
    def strategy(self) -> DCAStrategy:
        return classify_strategy(self.value)

    @property
    def clamped(self) -> bool:
        return self.value != self.unclamped

    def explanation(self) -> str:
        parts = [f"{c.name} {c.regime} -> {c.value:.3f}" for c in self.components]
        return "; ".join(parts) + f". Final multiplier {self.value:.2f}x"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "multiplier": self.value,
            "weighted_sum": self.weighted_sum,
            "unclamped": self.unclamped,
            "strategy": self.strategy.value,
            "components": [
                {"name": c.name, "value": c.value, "regime": c.regime, "weight": c.weight}
                for c in self.components
            ],
            "explanation": self.explanation(),
        }


@dataclass(frozen=True)
class ScheduledOrder:
    """One projected order of a DCA schedule."""

    order_number: int
    price: float
    multiplier: float
    amount: Decimal
    total_invested: Decimal


# ============================================================
# SUB-SCORES
# ============================================================


def _band(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def rsi_score(rsi: float) -> Tuple[float, str]:
    if rsi < 30:
        return _band(1.8 + 0.4 * (30 - rsi) / 30, 1.8, 2.2), "oversold"
    if rsi > 70:
        return _band(1.4 - 0.4 * (rsi - 70) / 30, 1.0, 1.4), "overbought"
    return 1.3 + 0.4 * (rsi - 30) / 40, "normal"


def volatility_score(volatility: float) -> Tuple[float, str]:
    if volatility < 1:
        return _band(1.2 + 0.2 * volatility, 1.2, 1.4), "low"
    if volatility > 3:
        return 1.6 + 0.4 * min((volatility - 3) / 2, 1.0), "high"
    return 1.4 + 0.2 * (volatility - 1) / 2, "normal"


def price_position_score(position: float) -> Tuple[float, str]:
    if position < 30:
        return _band(1.6 + 0.4 * (30 - position) / 30, 1.6, 2.0), "near low"
    if position > 70:
        return _band(1.4 - 0.4 * (position - 70) / 30, 1.0, 1.4), "near high"
    return 1.3 + 0.4 * (position - 30) / 40, "middle"


def macd_score(macd: float, signal: float) -> Tuple[float, str]:
    diff = macd - signal
    if abs(diff) < 0.1:
        return 1.2 + 0.4 * abs(diff) / 0.1, "flat"
    if diff > 0:
        return 1.3 + 0.4 * min(diff / 2, 1.0), "uptrend"
    return 1.5 + 0.5 * min(abs(diff) / 2, 1.0), "downtrend"


def support_resistance_score(price: float, support: float, resistance: float) -> Tuple[float, str]:
    if support <= 0 or resistance <= 0:
        return 1.5, "unknown levels"

    support_distance = (price - support) / price * 100
    resistance_distance = (resistance - price) / price * 100
    if support_distance < 2:
        return _band(1.6 + 0.4 * (2 - support_distance) / 2, 1.6, 2.0), "near support"
    if resistance_distance < 2:
        return _band(1.4 - 0.4 * (2 - resistance_distance) / 2, 1.0, 1.4), "near resistance"

    mid = (support + resistance) / 2
    distance = abs(price - mid) / mid * 100
    return 1.3 + 0.4 * min(distance / 10, 1.0), "between levels"


# ============================================================
# MULTIPLIER
# ============================================================


def compute_multiplier(
    snapshot: DCAMarketSnapshot,
    weights: Optional[MultiplierWeights] = None,
    config: Optional[DCAConfig] = None,
) -> MultiplierResult:
    """
    Multiplier for the next DCA order.

    Deterministic: identical inputs give identical output.

    Raises:
        ValidationError: invalid weights or non-finite snapshot values
    """
    config = config or DCAConfig()
    weights = weights or config.weights
    weights.validate()
    snapshot.validate()

    scored = (
        ("rsi", rsi_score(snapshot.rsi), weights.rsi),
        ("volatility", volatility_score(snapshot.volatility), weights.volatility),
        ("price_position", price_position_score(snapshot.price_position), weights.price_position),
        ("macd", macd_score(snapshot.macd, snapshot.macd_signal), weights.macd),
        (
            "support_resistance",
            support_resistance_score(snapshot.current_price, snapshot.support, snapshot.resistance),
            weights.support_resistance,
        ),
    )
    components = tuple(
        SubScore(name=name, value=value, regime=regime, weight=weight)
        for name, (value, regime), weight in scored
    )

    weighted_sum = sum(c.contribution for c in components)
    unclamped = config.base_multiplier * weighted_sum
    value = max(config.min_multiplier, min(config.max_multiplier, unclamped))
    return MultiplierResult(
        value=value,
        weighted_sum=weighted_sum,
        unclamped=unclamped,
        components=components,
    )


def classify_strategy(multiplier: float) -> DCAStrategy:
    if multiplier < 1.3:
        return DCAStrategy.CONSERVATIVE
    if multiplier > 1.8:
        return DCAStrategy.AGGRESSIVE
    return DCAStrategy.BALANCED


def to_cents(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def next_order_amount(previous_amount: Decimal, multiplier: float) -> Decimal:
    """Previous order amount (or base amount) scaled by the live multiplier, in cents."""
    return to_cents(Decimal(str(previous_amount)) * Decimal(str(multiplier)))


def preview_schedule(
    base_amount: Decimal,
    max_orders: int,
    snapshot: DCAMarketSnapshot,
    weights: Optional[MultiplierWeights] = None,
    config: Optional[DCAConfig] = None,
) -> List[ScheduledOrder]:
    """
    Project the next ``max_orders`` orders under a falling market.

    Each step lowers the price and price position; amounts follow the
    same path-dependent rule as live execution.
    """
    config = config or DCAConfig()
    schedule: List[ScheduledOrder] = []
    amount = Decimal(str(base_amount))
    total = Decimal("0")
    current = snapshot

    for number in range(1, max_orders + 1):
        result = compute_multiplier(current, weights, config)
        amount = next_order_amount(amount, result.value)
        total += amount
        schedule.append(ScheduledOrder(
            order_number=number,
            price=current.current_price,
            multiplier=result.value,
            amount=amount,
            total_invested=total,
        ))
        current = replace(
            current,
            current_price=current.current_price * config.preview_price_step,
            price_position=max(0.0, current.price_position - config.preview_position_step),
        )
    return schedule


def preflight_estimate(base_amount: Decimal, max_orders: int, step_multiplier: float = 1.5) -> Decimal:
    """Capital needed for a full position under a fixed per-step multiplier."""
    factor = Decimal(str(step_multiplier))
    base = Decimal(str(base_amount))
    return to_cents(sum((base * factor ** i for i in range(max_orders)), Decimal("0")))
