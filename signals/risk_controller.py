"""
Signals - Risk Controller.

============================================================
PURPOSE
============================================================
Evaluates every risk rule against a parsed TradeSignal and
reports all violations at once.

RULES:
1. Daily realized PnL above ``-daily_loss_limit``
2. Notional / quote free balance <= ``max_position_size``
   (unpriced market signals are valued at the venue last price)
3. ``confidence >= min_confidence``
4. ``leverage <= max_leverage`` (signals without leverage pass)
5. Inside the trading-hours window (only when enabled)
6. Fewer than ``max_signals_per_hour`` prior signals for the
   symbol in the trailing hour
7. Quote free balance covers the notional

risk_score = failed checks / evaluated checks * 100

The controller only reads state, so running the same signal
twice against unchanged state yields the same result.

============================================================
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional, Tuple
from zoneinfo import ZoneInfo

from core.clock import ClockProtocol, get_clock
from core.exceptions import TradingException
from exchanges.manager import ExchangeManager

from .config import RiskControlConfig
from .models import RiskCategory, RiskCheck, RiskCheckResult, TradeSignal

if TYPE_CHECKING:
    from storage.repository import TradingRepository


logger = logging.getLogger(__name__)

RECOMMENDATIONS = {
    RiskCategory.DAILY_LOSS: "Pause trading for today",
    RiskCategory.POSITION_SIZE: "Reduce position size",
    RiskCategory.CONFIDENCE: "Wait for a more reliable signal",
    RiskCategory.LEVERAGE: "Lower leverage",
    RiskCategory.TRADING_HOURS: "Wait for the trading window",
    RiskCategory.FREQUENCY: "Wait for cooldown",
    RiskCategory.BALANCE: "Top up balance or reduce size",
}


class RiskController:
    """Accumulating (non short-circuit) risk check for trade signals."""

    def __init__(
        self,
        manager: ExchangeManager,
        repository: "TradingRepository",
        config: Optional[RiskControlConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self.manager = manager
        self.repository = repository
        self.config = config or RiskControlConfig()
        self.config.validate()
        self._clock = clock or get_clock()

    async def check(self, signal: TradeSignal) -> RiskCheckResult:
        checks: List[RiskCheck] = [await self._check_daily_loss()]

        free, balance_error = await self._quote_free(signal.exchange)
        notional, price_error = await self._notional(signal)
        sizing_error = balance_error or price_error
        checks.append(self._check_position_size(notional, free, sizing_error))
        checks.append(self._check_confidence(signal))
        checks.append(self._check_leverage(signal))
        if self.config.trading_hours.enabled:
            checks.append(self._check_trading_hours())
        checks.append(await self._check_frequency(signal))
        checks.append(self._check_balance(notional, free, sizing_error))

        failed = [check for check in checks if not check.passed]
        recommendations: List[str] = []
        for check in failed:
            hint = RECOMMENDATIONS[check.category]
            if hint not in recommendations:
                recommendations.append(hint)

        result = RiskCheckResult(
            approved=not failed,
            reasons=tuple(check.reason for check in failed),
            recommendations=tuple(recommendations),
            risk_score=round(len(failed) / len(checks) * 100),
            checks=tuple(checks),
        )
        if failed:
            logger.warning(
                "Risk check failed for %s %s: %s",
                signal.action.value, signal.symbol, "; ".join(result.reasons),
            )
        else:
            logger.info("Risk check passed for %s %s", signal.action.value, signal.symbol)
        return result

    # ============================================================
    # RULES
    # ============================================================

    async def _check_daily_loss(self) -> RiskCheck:
        pnl = await self.repository.realized_pnl_since(self._clock.start_of_day())
        limit = self.config.daily_loss_limit
        if pnl <= -limit:
            return RiskCheck(
                RiskCategory.DAILY_LOSS, False,
                f"Daily loss limit reached: realized PnL {pnl} <= -{limit}",
            )
        return RiskCheck(RiskCategory.DAILY_LOSS, True)

    async def _quote_free(self, exchange: str) -> Tuple[Decimal, Optional[str]]:
        adapter = self.manager.get_exchange(exchange)
        if adapter is None:
            return Decimal("0"), f"exchange {exchange} is not registered"
        try:
            balance = await adapter.get_balance(self.config.quote_asset)
        except TradingException as e:
            logger.warning("Balance unavailable on %s: %s", exchange, e)
            return Decimal("0"), f"balance unavailable: {e}"
        return balance.free, None

    async def _notional(self, signal: TradeSignal) -> Tuple[Decimal, Optional[str]]:
        """Quote value of the main order; unpriced signals use the venue's last price."""
        if signal.price is not None:
            return signal.notional, None
        adapter = self.manager.get_exchange(signal.exchange)
        if adapter is None:
            return Decimal("0"), f"exchange {signal.exchange} is not registered"
        try:
            price = await adapter.get_price(signal.symbol)
        except TradingException as e:
            logger.warning("Price unavailable for %s on %s: %s", signal.symbol, signal.exchange, e)
            return Decimal("0"), f"price unavailable: {e}"
        return signal.quantity * price, None

    def _check_position_size(self, notional: Decimal, free: Decimal, sizing_error: Optional[str]) -> RiskCheck:
        if sizing_error is not None:
            return RiskCheck(RiskCategory.POSITION_SIZE, False, f"Cannot size position: {sizing_error}")
        limit = self.config.max_position_size
        if free <= 0 or notional / free > limit:
            return RiskCheck(
                RiskCategory.POSITION_SIZE, False,
                f"Position {notional} {self.config.quote_asset} exceeds {limit * 100}% of free balance {free}",
            )
        return RiskCheck(RiskCategory.POSITION_SIZE, True)

    def _check_confidence(self, signal: TradeSignal) -> RiskCheck:
        if signal.confidence < self.config.min_confidence:
            return RiskCheck(
                RiskCategory.CONFIDENCE, False,
                f"Confidence {signal.confidence:g} below minimum {self.config.min_confidence:g}",
            )
        return RiskCheck(RiskCategory.CONFIDENCE, True)

    def _check_leverage(self, signal: TradeSignal) -> RiskCheck:
        if signal.leverage is not None and signal.leverage > self.config.max_leverage:
            return RiskCheck(
                RiskCategory.LEVERAGE, False,
                f"Leverage {signal.leverage:g}x above maximum {self.config.max_leverage:g}x",
            )
        return RiskCheck(RiskCategory.LEVERAGE, True)

    def _check_trading_hours(self) -> RiskCheck:
        hours = self.config.trading_hours
        local = self._clock.now().astimezone(ZoneInfo(hours.timezone)).time()
        if not hours.contains(local):
            return RiskCheck(
                RiskCategory.TRADING_HOURS, False,
                f"Outside trading hours {hours.start}-{hours.end} {hours.timezone}",
            )
        return RiskCheck(RiskCategory.TRADING_HOURS, True)

    async def _check_frequency(self, signal: TradeSignal) -> RiskCheck:
        since = self._clock.now() - timedelta(hours=1)
        count = await self.repository.count_signals_since(signal.symbol, since)
        limit = self.config.max_signals_per_hour
        if count >= limit:
            return RiskCheck(
                RiskCategory.FREQUENCY, False,
                f"{count} signals for {signal.symbol} in the last hour (max {limit})",
            )
        return RiskCheck(RiskCategory.FREQUENCY, True)

    def _check_balance(self, notional: Decimal, free: Decimal, sizing_error: Optional[str]) -> RiskCheck:
        if sizing_error is not None:
            return RiskCheck(RiskCategory.BALANCE, False, f"Cannot check balance: {sizing_error}")
        if free < notional:
            return RiskCheck(
                RiskCategory.BALANCE, False,
                f"Insufficient {self.config.quote_asset}: need {notional}, available {free}",
            )
        return RiskCheck(RiskCategory.BALANCE, True)
