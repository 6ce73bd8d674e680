"""
Arbitrage - Guarded Executor.

============================================================
PURPOSE
============================================================
Executes two-legged arbitrage trades behind protection gates.

GATES (checked in this order, atomically with slot reservation):
1. System enabled (emergency stop not engaged)
2. Per-symbol cooldown since the last trade
3. Global cap on in-flight trades
4. HIGH-tier opportunity blocked while system risk is HIGH

EXECUTION:
- Buy leg is placed and acknowledged before the sell leg starts
- The legs are not atomic; a failed sell after a filled buy is
  logged as an open position, never auto-reversed
- The concurrency slot is always released in ``finally``

STATE:
The slot set and cooldown timestamps are the only mutable state
shared between concurrent executions, guarded by one lock.

============================================================
"""

import asyncio
import logging
import time
import uuid
from decimal import ROUND_DOWN, Decimal
from typing import Dict, List, Optional

from core.clock import ClockProtocol, get_clock
from core.exceptions import (
    ArbitrageDisabled,
    ArbitrageExecutionError,
    ConcurrencyLimitExceeded,
    CooldownActive,
    HighRiskBlocked,
    ValidationError,
)
from exchanges.manager import ExchangeManager
from exchanges.types import NormalizedOrderRequest, OrderSide, OrderType

from .config import ArbitrageProtectionConfig
from .models import (
    ArbitrageOpportunity,
    ArbitrageStats,
    ArbitrageStatus,
    ArbitrageTrade,
    ArbitrageTradeStatus,
    RiskAssessment,
    RiskLevel,
)


logger = logging.getLogger(__name__)

EMERGENCY_STOP_WARNING = "Arbitrage system emergency stopped"
QUANTITY_STEP = Decimal("0.00000001")


class ArbitrageGuard:
    """Guarded executor and ledger for arbitrage trades."""

    def __init__(
        self,
        manager: ExchangeManager,
        config: Optional[ArbitrageProtectionConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self.manager = manager
        self.config = config or ArbitrageProtectionConfig()
        self._clock = clock or get_clock()

        self._lock = asyncio.Lock()
        self._active: Dict[str, ArbitrageTrade] = {}
        self._last_trade_at: Dict[str, float] = {}
        self._history: List[ArbitrageTrade] = []

        self._enabled = True
        self._risk_level = RiskLevel.LOW
        self._risk_warnings: List[str] = []
        self._stop_warnings: List[str] = []
        self._total_profit = Decimal("0")
        self._total_trades = 0
        self._last_check = None
        self._active_opportunities = 0

    # ============================================================
    # GATES
    # ============================================================

    @property
    def active_count(self) -> int:
        return len(self._active)

    def _cooldown_remaining(self, symbol: str) -> float:
        last = self._last_trade_at.get(symbol)
        if last is None:
            return 0.0
        return max(0.0, self.config.cooldown_seconds - (self._clock.monotonic() - last))

    def _check_gates(self, opportunity: ArbitrageOpportunity) -> None:
        if not self._enabled:
            raise ArbitrageDisabled("Arbitrage system is disabled")

        remaining = self._cooldown_remaining(opportunity.symbol)
        if remaining > 0:
            raise CooldownActive(opportunity.symbol, remaining)

        if self.active_count >= self.config.max_concurrent_orders:
            raise ConcurrencyLimitExceeded(self.active_count, self.config.max_concurrent_orders)

        if opportunity.risk_tier is RiskLevel.HIGH and self.perform_risk_check().risk_level is RiskLevel.HIGH:
            raise HighRiskBlocked(
                f"HIGH risk opportunity on {opportunity.symbol} blocked while system risk is HIGH",
                context={"symbol": opportunity.symbol},
            )

    def _new_trade(self, opportunity: ArbitrageOpportunity, amount: Decimal) -> ArbitrageTrade:
        return ArbitrageTrade(
            id=f"arb_{self._clock.timestamp_ms()}_{uuid.uuid4().hex[:8]}",
            symbol=opportunity.symbol,
            buy_exchange=opportunity.buy_exchange,
            sell_exchange=opportunity.sell_exchange,
            buy_price=opportunity.buy_price,
            sell_price=opportunity.sell_price,
            amount=amount,
            profit=opportunity.spread * amount,
            profit_percent=opportunity.spread_percent,
            status=ArbitrageTradeStatus.PENDING,
            created_at=self._clock.now(),
        )

    # ============================================================
    # EXECUTION
    # ============================================================

    def budget_quantity(self, opportunity: ArbitrageOpportunity, budget: Optional[Decimal] = None) -> Decimal:
        """Base quantity bought with ``budget`` quote (default ``max_order_amount``) at the buy price."""
        budget = self.config.max_order_amount if budget is None else Decimal(str(budget))
        return (budget / opportunity.buy_price).quantize(QUANTITY_STEP, rounding=ROUND_DOWN)

    async def execute(self, opportunity: ArbitrageOpportunity, amount: Decimal) -> ArbitrageTrade:
        """
        Execute an opportunity.

        Args:
            opportunity: Detected opportunity
            amount: Base-asset quantity per leg

        Returns:
            The EXECUTED trade

        Raises:
            ArbitrageGuardError subclasses: gate rejected, no venue call made
            ArbitrageExecutionError: a leg failed; carries the FAILED trade
        """
        amount = Decimal(str(amount))
        if amount <= 0:
            raise ValidationError("Arbitrage amount must be positive", field="amount")
        if opportunity.buy_exchange == opportunity.sell_exchange:
            raise ValidationError("Buy and sell exchange must differ", field="opportunity")

        async with self._lock:
            self._check_gates(opportunity)
            trade = self._new_trade(opportunity, amount)
            self._active[trade.id] = trade
            self._last_trade_at[opportunity.symbol] = self._clock.monotonic()

        logger.info(
            "Arbitrage %s: buy %s %s on %s, sell on %s",
            trade.id, amount, trade.symbol, trade.buy_exchange, trade.sell_exchange,
        )
        started = time.monotonic()
        buy_order_id = None
        try:
            buy = await self.manager.place_order(
                trade.buy_exchange,
                NormalizedOrderRequest(symbol=trade.symbol, side=OrderSide.BUY, type=OrderType.MARKET, quantity=amount),
            )
            buy_order_id = buy.order_id
            sell = await self.manager.place_order(
                trade.sell_exchange,
                NormalizedOrderRequest(symbol=trade.symbol, side=OrderSide.SELL, type=OrderType.MARKET, quantity=amount),
            )
        except Exception as e:
            failed = trade.failed(str(e), buy_order_id=buy_order_id)
            self._history.append(failed)
            if buy_order_id is not None:
                logger.error(
                    "Arbitrage %s: buy leg %s on %s succeeded but sell leg failed, position left open: %s",
                    trade.id, buy_order_id, trade.buy_exchange, e,
                )
            else:
                logger.error("Arbitrage %s failed on buy leg: %s", trade.id, e)
            raise ArbitrageExecutionError(f"Arbitrage {trade.id} failed: {e}", trade=failed, cause=e) from e
        finally:
            self._active.pop(trade.id, None)

        executed = trade.executed((time.monotonic() - started) * 1000, buy.order_id, sell.order_id)
        self._history.append(executed)
        self._total_trades += 1
        self._total_profit += executed.profit
        logger.info("Arbitrage %s executed, estimated profit %s", trade.id, executed.profit)
        return executed

    # ============================================================
    # CONTROL
    # ============================================================

    async def emergency_stop(self) -> None:
        """Drop every in-flight slot and disable execution."""
        async with self._lock:
            dropped = list(self._active)
            self._active.clear()
            self._enabled = False
            self._stop_warnings.append(EMERGENCY_STOP_WARNING)
        logger.warning("Arbitrage emergency stop: released %d in-flight slot(s) %s", len(dropped), dropped)

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        if enabled:
            self._stop_warnings.clear()
        logger.info("Arbitrage %s", "enabled" if enabled else "disabled")

    def update_config(self, **changes) -> ArbitrageProtectionConfig:
        for key, value in changes.items():
            if not hasattr(self.config, key):
                raise ValidationError(f"Unknown arbitrage setting: {key}", field=key)
            setattr(self.config, key, value)
        self.config.validate()
        return self.config

    def note_scan(self, opportunity_count: int) -> None:
        self._last_check = self._clock.now()
        self._active_opportunities = opportunity_count

    # ============================================================
    # REPORTING
    # ============================================================

    def perform_risk_check(self) -> RiskAssessment:
        warnings: List[str] = []
        recommendations: List[str] = []

        if self.active_count > self.config.max_concurrent_orders * 0.8:
            warnings.append(f"High number of active trades: {self.active_count}/{self.config.max_concurrent_orders}")
            recommendations.append("Reduce the number of concurrent trades")

        if self._total_profit < 0:
            warnings.append(f"Total profit is negative: {self._total_profit}")
            recommendations.append("Review arbitrage thresholds and risk parameters")

        recent = self._history[-20:]
        if recent:
            success_rate = sum(1 for t in recent if t.status is ArbitrageTradeStatus.EXECUTED) / len(recent)
            if success_rate < 0.8:
                warnings.append(f"Low success rate: {success_rate * 100:.1f}%")
                recommendations.append("Check network connectivity and exchange API status")

        if len(warnings) >= 3:
            level = RiskLevel.HIGH
        elif warnings:
            level = RiskLevel.MEDIUM
        else:
            level = RiskLevel.LOW

        self._risk_level = level
        self._risk_warnings = warnings
        return RiskAssessment(risk_level=level, warnings=warnings, recommendations=recommendations)

    def get_status(self) -> ArbitrageStatus:
        return ArbitrageStatus(
            is_enabled=self._enabled,
            risk_level=self._risk_level,
            active_trades=self.active_count,
            total_trades=self._total_trades,
            total_profit=self._total_profit,
            last_check=self._last_check,
            active_opportunities=self._active_opportunities,
            warnings=self._risk_warnings + self._stop_warnings,
        )

    def get_trade_history(self, limit: int = 50) -> List[ArbitrageTrade]:
        """Terminal trades, newest first."""
        return sorted(self._history, key=lambda t: t.created_at, reverse=True)[:limit]

    def get_stats(self) -> ArbitrageStats:
        successful = [t for t in self._history if t.status is ArbitrageTradeStatus.EXECUTED]
        total_profit = sum((t.profit for t in successful), Decimal("0"))
        return ArbitrageStats(
            total_trades=len(self._history),
            successful_trades=len(successful),
            total_profit=total_profit,
            average_profit=total_profit / len(successful) if successful else Decimal("0"),
            success_rate=len(successful) / len(self._history) if self._history else 0.0,
            best_trade=max(successful, key=lambda t: t.profit) if successful else None,
            worst_trade=min(successful, key=lambda t: t.profit) if successful else None,
        )
