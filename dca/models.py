"""
DCA - Models.

============================================================
PURPOSE
============================================================
Settings, per-symbol position state and execution results of
the DCA engine.

POSITION LIFECYCLE:
- start: active, index 0
- execute: index 0 -> 1 -> ... -> max_orders (strictly increasing)
- index == max_orders: complete, further executes are no-ops
- reset: index 0, nothing invested
- stop: inactive, state kept

============================================================
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from core.exceptions import DCAError


# ============================================================
# SETTINGS
# ============================================================


@dataclass(frozen=True)
class DCASettings:
    """User-supplied parameters of one DCA position."""

    base_amount: Decimal = Decimal("30")
    """Quote amount the first order is scaled from."""

    max_orders: int = 6
    """Orders after which the position is complete."""

    price_deviation_pct: float = 2.0
    take_profit_pct: float = 1.5
    stop_loss_pct: float = 6.0
    """
    Stored and reported only. Order timing comes from the EMA filter
    and order size from the market multiplier; exits are left to
    the caller (see ``positions`` for trailing stops).
    """

    def validate(self, symbol: Optional[str] = None) -> None:
        if self.base_amount is None or Decimal(str(self.base_amount)) <= 0:
            raise DCAError("base_amount must be positive", symbol=symbol)
        if self.max_orders < 1:
            raise DCAError("max_orders must be at least 1", symbol=symbol)
        for name in ("price_deviation_pct", "take_profit_pct", "stop_loss_pct"):
            if getattr(self, name) < 0:
                raise DCAError(f"{name} must be >= 0", symbol=symbol)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base_amount": str(self.base_amount),
            "max_orders": self.max_orders,
            "price_deviation_pct": self.price_deviation_pct,
            "take_profit_pct": self.take_profit_pct,
            "stop_loss_pct": self.stop_loss_pct,
        }


# ============================================================
# POSITION STATE
# ============================================================


@dataclass(frozen=True)
class DCAPositionState:
    """Persisted state of one symbol's DCA position."""

    symbol: str
    exchange: str
    is_active: bool
    settings: DCASettings
    current_order_index: int = 0
    total_invested: Decimal = Decimal("0")
    last_order_amount: Optional[Decimal] = None
    """Quote amount of the most recent order. None before the first order."""

    last_checked_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return self.current_order_index >= self.settings.max_orders

    @property
    def previous_amount(self) -> Decimal:
        """Amount the next order is scaled from."""
        if self.last_order_amount is None:
            return Decimal(str(self.settings.base_amount))
        return self.last_order_amount

    def reset(self, now: datetime) -> "DCAPositionState":
        return replace(
            self,
            current_order_index=0,
            total_invested=Decimal("0"),
            last_order_amount=None,
            updated_at=now,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "exchange": self.exchange,
            "is_active": self.is_active,
            "settings": self.settings.to_dict(),
            "current_order_index": self.current_order_index,
            "total_invested": str(self.total_invested),
            "last_order_amount": str(self.last_order_amount) if self.last_order_amount is not None else None,
            "last_checked_at": self.last_checked_at.isoformat() if self.last_checked_at else None,
            "is_complete": self.is_complete,
        }


# ============================================================
# EXECUTION RESULT
# ============================================================


class DCAExecutionStatus(Enum):
    EXECUTED = "EXECUTED"
    SKIPPED = "SKIPPED"
    COMPLETED = "COMPLETED"
    INACTIVE = "INACTIVE"


@dataclass(frozen=True)
class DCAExecutionResult:
    symbol: str
    status: DCAExecutionStatus
    message: str
    state: DCAPositionState
    order_id: Optional[str] = None
    amount: Optional[Decimal] = None
    quantity: Optional[Decimal] = None
    price: Optional[float] = None
    multiplier: Optional[float] = None
    explanation: Optional[str] = None

    @property
    def executed(self) -> bool:
        return self.status is DCAExecutionStatus.EXECUTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "status": self.status.value,
            "message": self.message,
            "order_id": self.order_id,
            "amount": str(self.amount) if self.amount is not None else None,
            "quantity": str(self.quantity) if self.quantity is not None else None,
            "price": self.price,
            "multiplier": self.multiplier,
            "explanation": self.explanation,
            "state": self.state.to_dict(),
        }
