"""
Positions - Models.

============================================================
PURPOSE
============================================================
Tracked holdings that can carry a trailing stop.

POSITION LIFECYCLE:
OPEN -> CLOSED

A closed position never reopens. Every change returns a new
frozen value.

============================================================
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from exchanges.types import OrderSide


class PositionSide(Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def close_side(self) -> OrderSide:
        """Order side that flattens the position."""
        return OrderSide.SELL if self is PositionSide.LONG else OrderSide.BUY


class PositionStatus(Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


def _dec(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


@dataclass(frozen=True)
class TrackedPosition:
    """One holding on one venue."""

    id: str
    symbol: str
    exchange: str
    side: PositionSide
    quantity: Decimal
    entry_price: Decimal
    status: PositionStatus
    created_at: datetime
    updated_at: datetime

    trailing_enabled: bool = False
    trailing_distance_pct: Optional[Decimal] = None
    """Distance of the stop from the best price seen, in percent."""

    trailing_stop_price: Optional[Decimal] = None
    highest_price: Optional[Decimal] = None
    """Best price seen by a LONG position."""

    lowest_price: Optional[Decimal] = None
    """Best price seen by a SHORT position."""

    exit_price: Optional[Decimal] = None
    exit_at: Optional[datetime] = None
    close_order_id: Optional[str] = None
    close_reason: Optional[str] = None
    pnl: Optional[Decimal] = None
    pnl_percent: Optional[Decimal] = None

    @property
    def is_open(self) -> bool:
        return self.status is PositionStatus.OPEN

    def pnl_at(self, price: Decimal) -> Tuple[Decimal, Decimal]:
        """(quote PnL, percent of entry) if closed at ``price``."""
        move = price - self.entry_price if self.side is PositionSide.LONG else self.entry_price - price
        return move * self.quantity, move / self.entry_price * 100

    def closed(self, price: Decimal, order_id: str, reason: str, now: datetime) -> "TrackedPosition":
        pnl, pnl_percent = self.pnl_at(price)
        return replace(
            self,
            status=PositionStatus.CLOSED,
            exit_price=price,
            exit_at=now,
            close_order_id=order_id,
            close_reason=reason,
            pnl=pnl,
            pnl_percent=pnl_percent,
            updated_at=now,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "exchange": self.exchange,
            "side": self.side.value,
            "quantity": str(self.quantity),
            "entry_price": str(self.entry_price),
            "status": self.status.value,
            "trailing_enabled": self.trailing_enabled,
            "trailing_distance_pct": _dec(self.trailing_distance_pct),
            "trailing_stop_price": _dec(self.trailing_stop_price),
            "highest_price": _dec(self.highest_price),
            "lowest_price": _dec(self.lowest_price),
            "exit_price": _dec(self.exit_price),
            "exit_at": self.exit_at.isoformat() if self.exit_at else None,
            "close_order_id": self.close_order_id,
            "close_reason": self.close_reason,
            "pnl": _dec(self.pnl),
            "pnl_percent": _dec(self.pnl_percent),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
