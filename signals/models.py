"""
Signals - Models.

============================================================
PURPOSE
============================================================
Value objects flowing through parse -> risk check -> execute.

SIGNAL RECORD STATE MACHINE:
PENDING -> EXECUTED | REJECTED | FAILED

Terminal states never change. Every transition returns a new
frozen record.

============================================================
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from core.exceptions import ExchangeRejected, ExchangeUnavailable, PartialExecutionWarning, RiskRejected
from exchanges.types import NormalizedOrderResult, OrderSide, OrderType


# ============================================================
# ENUMS
# ============================================================


class SignalAction(Enum):
    BUY = "BUY"
    SELL = "SELL"
    CLOSE = "CLOSE"


class SignalStatus(Enum):
    PENDING = "PENDING"
    EXECUTED = "EXECUTED"
    REJECTED = "REJECTED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not SignalStatus.PENDING


class RiskCategory(Enum):
    """Risk rule families, used to map violations to recommendations."""

    DAILY_LOSS = "daily_loss"
    POSITION_SIZE = "position_size"
    CONFIDENCE = "confidence"
    LEVERAGE = "leverage"
    TRADING_HOURS = "trading_hours"
    FREQUENCY = "frequency"
    BALANCE = "balance"


def _dec(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def _undec(value: Optional[str]) -> Optional[Decimal]:
    return Decimal(value) if value is not None else None


# ============================================================
# TRADE SIGNAL
# ============================================================


@dataclass(frozen=True)
class TradeSignal:
    """Normalized, validated trading instruction."""

    symbol: str
    action: SignalAction
    exchange: str
    order_type: OrderType
    quantity: Decimal
    confidence: float
    strategy: str
    timestamp: datetime
    price: Optional[Decimal] = None
    stop_loss: Optional[Decimal] = None
    take_profit: Optional[Decimal] = None
    leverage: Optional[float] = None

    @property
    def side(self) -> OrderSide:
        """Main order side. CLOSE sells."""
        return OrderSide.BUY if self.action is SignalAction.BUY else OrderSide.SELL

    @property
    def notional(self) -> Decimal:
        """Quote value of the main order. Zero for unpriced market signals."""
        return self.quantity * (self.price or Decimal("0"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "action": self.action.value,
            "exchange": self.exchange,
            "order_type": self.order_type.value,
            "quantity": str(self.quantity),
            "price": _dec(self.price),
            "stop_loss": _dec(self.stop_loss),
            "take_profit": _dec(self.take_profit),
            "leverage": self.leverage,
            "confidence": self.confidence,
            "strategy": self.strategy,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradeSignal":
        return cls(
            symbol=data["symbol"],
            action=SignalAction(data["action"]),
            exchange=data["exchange"],
            order_type=OrderType(data["order_type"]),
            quantity=Decimal(data["quantity"]),
            price=_undec(data.get("price")),
            stop_loss=_undec(data.get("stop_loss")),
            take_profit=_undec(data.get("take_profit")),
            leverage=data.get("leverage"),
            confidence=data["confidence"],
            strategy=data["strategy"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


# ============================================================
# RISK CHECK
# ============================================================


@dataclass(frozen=True)
class RiskCheck:
    """Outcome of one risk rule."""

    category: RiskCategory
    passed: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class RiskCheckResult:
    approved: bool
    reasons: Tuple[str, ...]
    recommendations: Tuple[str, ...]
    risk_score: int
    checks: Tuple[RiskCheck, ...] = ()

    @property
    def failed_categories(self) -> List[RiskCategory]:
        return [check.category for check in self.checks if not check.passed]

    def to_exception(self) -> RiskRejected:
        return RiskRejected(list(self.reasons), list(self.recommendations), self.risk_score)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "approved": self.approved,
            "reasons": list(self.reasons),
            "recommendations": list(self.recommendations),
            "risk_score": self.risk_score,
            "checks": [
                {"category": c.category.value, "passed": c.passed, "reason": c.reason}
                for c in self.checks
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RiskCheckResult":
        return cls(
            approved=data["approved"],
            reasons=tuple(data.get("reasons", ())),
            recommendations=tuple(data.get("recommendations", ())),
            risk_score=data.get("risk_score", 0),
            checks=tuple(
                RiskCheck(RiskCategory(c["category"]), c["passed"], c.get("reason"))
                for c in data.get("checks", ())
            ),
        )


# ============================================================
# EXECUTION RESULT
# ============================================================


def _warning_to_dict(warning: PartialExecutionWarning) -> Dict[str, Any]:
    return {
        "leg": warning.leg,
        "venue": warning.error.venue,
        "message": warning.error.message,
        "venue_code": warning.error.venue_code,
        "retryable": warning.error.retryable,
    }


def _warning_from_dict(data: Dict[str, Any]) -> PartialExecutionWarning:
    error_cls = ExchangeUnavailable if data.get("retryable") else ExchangeRejected
    return PartialExecutionWarning(
        data["leg"],
        error_cls(data["venue"], data["message"], venue_code=data.get("venue_code")),
    )


@dataclass(frozen=True)
class ExecutionResult:
    """Orders placed for one signal. Warnings list failed protective legs."""

    success: bool
    timestamp: datetime
    main_order: Optional[NormalizedOrderResult] = None
    stop_loss_order: Optional[NormalizedOrderResult] = None
    take_profit_order: Optional[NormalizedOrderResult] = None
    warnings: Tuple[PartialExecutionWarning, ...] = ()
    error: Optional[str] = None
    ledger_failures: Tuple[str, ...] = ()
    """Legs whose orders stand on the venue but are missing from the ledger."""

    def to_dict(self) -> Dict[str, Any]:
        def order(o: Optional[NormalizedOrderResult]) -> Optional[Dict[str, Any]]:
            return o.to_dict() if o is not None else None

        return {
            "success": self.success,
            "timestamp": self.timestamp.isoformat(),
            "main_order": order(self.main_order),
            "stop_loss_order": order(self.stop_loss_order),
            "take_profit_order": order(self.take_profit_order),
            "warnings": [_warning_to_dict(w) for w in self.warnings],
            "error": self.error,
            "ledger_failures": list(self.ledger_failures),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionResult":
        def order(key: str) -> Optional[NormalizedOrderResult]:
            return NormalizedOrderResult.from_dict(data[key]) if data.get(key) else None

        return cls(
            success=data["success"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            main_order=order("main_order"),
            stop_loss_order=order("stop_loss_order"),
            take_profit_order=order("take_profit_order"),
            warnings=tuple(_warning_from_dict(w) for w in data.get("warnings", ())),
            error=data.get("error"),
            ledger_failures=tuple(data.get("ledger_failures", ())),
        )


# ============================================================
# SIGNAL RECORD
# ============================================================


@dataclass(frozen=True)
class SignalRecord:
    """Audit record of one inbound signal."""

    id: str
    raw_signal: Any
    trade_signal: TradeSignal
    status: SignalStatus
    created_at: datetime
    updated_at: datetime
    risk_check: Optional[RiskCheckResult] = None
    execution_result: Optional[ExecutionResult] = None
    error: Optional[str] = None

    @property
    def symbol(self) -> str:
        return self.trade_signal.symbol

    def transition(self, status: SignalStatus, now: datetime, **changes: Any) -> "SignalRecord":
        if self.status.is_terminal:
            raise ValueError(f"Signal record {self.id} is already {self.status.value}")
        if not status.is_terminal:
            raise ValueError(f"Signal record {self.id} can only move to a terminal state")
        return replace(self, status=status, updated_at=now, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "raw_signal": self.raw_signal,
            "trade_signal": self.trade_signal.to_dict(),
            "status": self.status.value,
            "risk_check": self.risk_check.to_dict() if self.risk_check else None,
            "execution_result": self.execution_result.to_dict() if self.execution_result else None,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class SignalStatistics:
    total: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    approval_rate: float = 0.0
