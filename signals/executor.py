"""
Signals - Executor.

============================================================
PURPOSE
============================================================
Places the orders of an approved signal.

LEGS (sequential):
1. Main order: side from the action (CLOSE sells), signal type
2. Stop loss: STOP_MARKET on the opposite side at ``stop_loss``
3. Take profit: LIMIT on the opposite side at ``take_profit``

A failing main order propagates. Protective legs are best
effort: a venue error there becomes a PartialExecutionWarning on
an otherwise successful result, and the main order stays in
place. Every acknowledged leg is appended to the trade ledger.

Once an order is acknowledged the signal counts as executed: a
ledger write that fails is logged for reconciliation and listed
in ``ledger_failures``, never raised.

============================================================
"""

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from core.clock import ClockProtocol, get_clock
from core.exceptions import ExchangeError, PartialExecutionWarning, TradingException
from exchanges.manager import ExchangeManager
from exchanges.types import NormalizedOrderRequest, NormalizedOrderResult, OrderType
from storage.records import TradeLedgerEntry

from .models import ExecutionResult, TradeSignal

if TYPE_CHECKING:
    from storage.repository import TradingRepository


logger = logging.getLogger(__name__)

MAIN_LEG = "main"
STOP_LOSS_LEG = "stop_loss"
TAKE_PROFIT_LEG = "take_profit"


def ledger_tag(strategy: str) -> str:
    return f"signal_{strategy}"


class SignalExecutor:
    def __init__(
        self,
        manager: ExchangeManager,
        repository: "TradingRepository",
        clock: Optional[ClockProtocol] = None,
    ):
        self.manager = manager
        self.repository = repository
        self._clock = clock or get_clock()

    async def execute(self, signal: TradeSignal) -> ExecutionResult:
        """
        Raises:
            ExchangeError: main order failed (nothing was placed)
        """
        main_request = NormalizedOrderRequest(
            symbol=signal.symbol,
            side=signal.side,
            type=signal.order_type,
            quantity=signal.quantity,
            price=signal.price if signal.order_type is not OrderType.MARKET else None,
            stop_price=signal.price if signal.order_type.is_stop else None,
        )
        main_order = await self.manager.place_order(signal.exchange, main_request)
        logger.info(
            "Signal order %s placed on %s: %s %s %s",
            main_order.order_id, signal.exchange, signal.side.value, signal.quantity, signal.symbol,
        )
        ledger_failures: List[str] = []
        await self._record(main_order, MAIN_LEG, ledger_tag(signal.strategy), signal.price, ledger_failures)

        warnings: List[PartialExecutionWarning] = []
        stop_loss_order = None
        if signal.stop_loss is not None:
            stop_loss_order = await self._protective_leg(
                signal,
                STOP_LOSS_LEG,
                NormalizedOrderRequest(
                    symbol=signal.symbol,
                    side=signal.side.opposite,
                    type=OrderType.STOP_MARKET,
                    quantity=signal.quantity,
                    stop_price=signal.stop_loss,
                ),
                warnings,
                ledger_failures,
            )

        take_profit_order = None
        if signal.take_profit is not None:
            take_profit_order = await self._protective_leg(
                signal,
                TAKE_PROFIT_LEG,
                NormalizedOrderRequest(
                    symbol=signal.symbol,
                    side=signal.side.opposite,
                    type=OrderType.LIMIT,
                    quantity=signal.quantity,
                    price=signal.take_profit,
                ),
                warnings,
                ledger_failures,
            )

        return ExecutionResult(
            success=True,
            timestamp=self._clock.now(),
            main_order=main_order,
            stop_loss_order=stop_loss_order,
            take_profit_order=take_profit_order,
            warnings=tuple(warnings),
            ledger_failures=tuple(ledger_failures),
        )

    async def _protective_leg(
        self,
        signal: TradeSignal,
        leg: str,
        request: NormalizedOrderRequest,
        warnings: List[PartialExecutionWarning],
        ledger_failures: List[str],
    ) -> Optional[NormalizedOrderResult]:
        try:
            order = await self.manager.place_order(signal.exchange, request)
        except ExchangeError as e:
            warning = PartialExecutionWarning(leg, e)
            logger.warning("%s for %s on %s; main order kept", warning.message, signal.symbol, signal.exchange)
            warnings.append(warning)
            return None
        await self._record(order, leg, ledger_tag(leg), request.price or request.stop_price, ledger_failures)
        return order

    async def _record(
        self,
        order: NormalizedOrderResult,
        leg: str,
        tag: str,
        fallback_price: Optional[Decimal],
        ledger_failures: List[str],
    ) -> None:
        entry = TradeLedgerEntry.from_order(order, tag, self._clock.now(), fallback_price=order.price or fallback_price)
        try:
            await self.repository.append_trade(entry)
        except TradingException as e:
            logger.error(
                "Ledger write failed for %s order %s on %s (%s %s %s); reconcile from the venue: %s",
                leg, order.order_id, order.exchange_name, order.side.value, order.requested_qty, order.symbol, e,
            )
            ledger_failures.append(leg)
