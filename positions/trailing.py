"""
Trailing stop arithmetic.

LONG:  stop = best high * (1 - distance / 100); close when price <= stop
SHORT: stop = best low  * (1 + distance / 100); close when price >= stop

The stop only ever moves in the position's favour.
"""

from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_UP, Decimal
from enum import Enum
from typing import Optional

from .models import PositionSide, TrackedPosition


PRICE_STEP = Decimal("0.00000001")
HUNDRED = Decimal("100")


class TrailingAction(Enum):
    HOLD = "HOLD"
    RATCHET = "RATCHET"
    CLOSE = "CLOSE"


@dataclass(frozen=True)
class TrailingDecision:
    action: TrailingAction
    stop_price: Optional[Decimal]
    highest_price: Optional[Decimal]
    lowest_price: Optional[Decimal]


def stop_price_for(side: PositionSide, reference: Decimal, distance_pct: Decimal) -> Decimal:
    # Rounded towards the position so the stop never sits further away than asked
    if side is PositionSide.LONG:
        return (reference * (1 - distance_pct / HUNDRED)).quantize(PRICE_STEP, rounding=ROUND_UP)
    return (reference * (1 + distance_pct / HUNDRED)).quantize(PRICE_STEP, rounding=ROUND_DOWN)


def evaluate_trailing_stop(position: TrackedPosition, price: Decimal) -> TrailingDecision:
    """Decide what one price tick means for a trailing-stop position."""
    stop = position.trailing_stop_price
    high = position.highest_price if position.highest_price is not None else position.entry_price
    low = position.lowest_price if position.lowest_price is not None else position.entry_price
    distance = position.trailing_distance_pct or Decimal("0")

    if position.side is PositionSide.LONG:
        if stop is not None and price <= stop:
            return TrailingDecision(TrailingAction.CLOSE, stop, high, low)
        if price > high:
            new_stop = stop_price_for(position.side, price, distance)
            if stop is not None:
                new_stop = max(stop, new_stop)
            return TrailingDecision(TrailingAction.RATCHET, new_stop, price, low)
    else:
        if stop is not None and price >= stop:
            return TrailingDecision(TrailingAction.CLOSE, stop, high, low)
        if price < low:
            new_stop = stop_price_for(position.side, price, distance)
            if stop is not None:
                new_stop = min(stop, new_stop)
            return TrailingDecision(TrailingAction.RATCHET, new_stop, high, price)

    return TrailingDecision(TrailingAction.HOLD, stop, high, low)
