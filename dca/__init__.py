"""
DCA Package.

Dynamic dollar-cost-averaging: indicator snapshot, pure sizing
multiplier and the per-symbol position engine.

Components:
- config: Multiplier weights and engine parameters
- indicators: EMA, RSI, MACD, OBV, volatility
- snapshot: Candles -> DCAMarketSnapshot
- sizing: Sub-scores, clamped multiplier, schedule preview
- scoring: Coarse technical score and recommendation
- models: Settings, position state, execution result
- engine: Start / stop / execute / reset
"""

from .config import DCAConfig, MultiplierWeights
from .models import DCAExecutionResult, DCAExecutionStatus, DCAPositionState, DCASettings
from .snapshot import DCAMarketSnapshot, build_snapshot
from .sizing import (
    DCAStrategy,
    MultiplierResult,
    ScheduledOrder,
    SubScore,
    classify_strategy,
    compute_multiplier,
    next_order_amount,
    preflight_estimate,
    preview_schedule,
)
from .scoring import Recommendation, StrategyScore, score_strategy
from .engine import DCAEngine

__all__ = [
    "DCAConfig",
    "MultiplierWeights",
    "DCAExecutionResult",
    "DCAExecutionStatus",
    "DCAPositionState",
    "DCASettings",
    "DCAMarketSnapshot",
    "build_snapshot",
    "DCAStrategy",
    "MultiplierResult",
    "ScheduledOrder",
    "SubScore",
    "classify_strategy",
    "compute_multiplier",
    "next_order_amount",
    "preflight_estimate",
    "preview_schedule",
    "Recommendation",
    "StrategyScore",
    "score_strategy",
    "DCAEngine",
]
