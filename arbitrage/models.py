"""
Arbitrage - Models.

============================================================
PURPOSE
============================================================
Value objects for detected opportunities and executed trades.

ArbitrageOpportunity is derived and read-only; a new set is
computed every detection cycle.

ArbitrageTrade moves PENDING -> EXECUTED | FAILED exactly once.
Each transition produces a new frozen instance.

============================================================
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class RiskLevel(Enum):
    """Risk tier of an opportunity, or aggregate system risk."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class ArbitrageTradeStatus(Enum):
    PENDING = "PENDING"
    EXECUTED = "EXECUTED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class ArbitrageOpportunity:
    """Buy on the cheap venue, sell on the expensive one."""

    symbol: str
    buy_exchange: str
    sell_exchange: str
    buy_price: Decimal
    sell_price: Decimal
    spread: Decimal
    spread_percent: Decimal
    estimated_profit: Decimal
    risk_tier: RiskLevel
    detected_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "buy_exchange": self.buy_exchange,
            "sell_exchange": self.sell_exchange,
            "buy_price": str(self.buy_price),
            "sell_price": str(self.sell_price),
            "spread": str(self.spread),
            "spread_percent": str(self.spread_percent),
            "estimated_profit": str(self.estimated_profit),
            "risk_tier": self.risk_tier.value,
            "detected_at": self.detected_at.isoformat(),
        }


@dataclass(frozen=True)
class ArbitrageTrade:
    """One two-legged arbitrage execution."""

    id: str
    symbol: str
    buy_exchange: str
    sell_exchange: str
    buy_price: Decimal
    sell_price: Decimal
    amount: Decimal
    profit: Decimal
    profit_percent: Decimal
    status: ArbitrageTradeStatus
    created_at: datetime
    execution_time_ms: Optional[float] = None
    error: Optional[str] = None
    buy_order_id: Optional[str] = None
    sell_order_id: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not ArbitrageTradeStatus.PENDING

    def executed(self, execution_time_ms: float, buy_order_id: str, sell_order_id: str) -> "ArbitrageTrade":
        if self.is_terminal:
            raise ValueError(f"Trade {self.id} already {self.status.value}")
        return replace(
            self,
            status=ArbitrageTradeStatus.EXECUTED,
            execution_time_ms=execution_time_ms,
            buy_order_id=buy_order_id,
            sell_order_id=sell_order_id,
        )

    def failed(self, error: str, buy_order_id: Optional[str] = None) -> "ArbitrageTrade":
        if self.is_terminal:
            raise ValueError(f"Trade {self.id} already {self.status.value}")
        return replace(self, status=ArbitrageTradeStatus.FAILED, error=error, buy_order_id=buy_order_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "buy_exchange": self.buy_exchange,
            "sell_exchange": self.sell_exchange,
            "buy_price": str(self.buy_price),
            "sell_price": str(self.sell_price),
            "amount": str(self.amount),
            "profit": str(self.profit),
            "profit_percent": str(self.profit_percent),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "execution_time_ms": self.execution_time_ms,
            "error": self.error,
        }


@dataclass
class ArbitrageStatus:
    """Snapshot returned by get_status()."""

    is_enabled: bool
    risk_level: RiskLevel
    active_trades: int
    total_trades: int
    total_profit: Decimal
    last_check: Optional[datetime]
    active_opportunities: int
    warnings: List[str] = field(default_factory=list)


@dataclass
class RiskAssessment:
    """Result of perform_risk_check()."""

    risk_level: RiskLevel
    warnings: List[str]
    recommendations: List[str]


@dataclass
class ArbitrageStats:
    total_trades: int
    successful_trades: int
    total_profit: Decimal
    average_profit: Decimal
    success_rate: float
    best_trade: Optional[ArbitrageTrade]
    worst_trade: Optional[ArbitrageTrade]
