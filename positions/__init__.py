"""
Positions Package.

Tracked holdings with trailing stops.

Components:
- models: Tracked position and its lifecycle
- trailing: Pure stop ratchet and trigger rules
- config: Distance limits
- tracker: Open, trail, check and close positions
"""

from .models import PositionSide, PositionStatus, TrackedPosition
from .trailing import TrailingAction, TrailingDecision, evaluate_trailing_stop, stop_price_for
from .config import TrailingStopConfig
from .tracker import PositionTracker, TrailingCheckResult

__all__ = [
    "PositionSide",
    "PositionStatus",
    "TrackedPosition",
    "TrailingAction",
    "TrailingDecision",
    "evaluate_trailing_stop",
    "stop_price_for",
    "TrailingStopConfig",
    "PositionTracker",
    "TrailingCheckResult",
]
