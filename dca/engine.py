"""
DCA - Position Engine.

============================================================
PURPOSE
============================================================
Runs accumulation positions: a sequence of up to ``max_orders``
market buys per symbol, each sized by the dynamic multiplier.

EXECUTE FLOW:
1. Inactive position        -> INACTIVE, no venue call
2. Index == max_orders      -> COMPLETED, no venue call
3. Load candles, build snapshot
4. Price not below EMA89    -> SKIPPED
5. Amount = previous amount x live multiplier
6. Quote balance check
7. Claim the order index in the repository (conditional update)
8. Place MARKET BUY; on failure release the claim and re-raise
9. Record the fill and append a ``dca`` ledger entry

A per-symbol lock serializes executes inside this process; the
repository claim protects against other processes.

============================================================
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import replace
from decimal import ROUND_DOWN, Decimal
from typing import TYPE_CHECKING, Dict, List, Optional

from core.clock import ClockProtocol, get_clock
from core.exceptions import DCAError, RiskRejected, TradingException, ValidationError
from exchanges.base import ExchangeAdapter
from exchanges.manager import ExchangeManager
from exchanges.types import NormalizedOrderRequest, OrderSide, OrderType
from storage.records import TradeLedgerEntry

from .config import DCAConfig
from .models import DCAExecutionResult, DCAExecutionStatus, DCAPositionState, DCASettings
from .scoring import StrategyScore, score_strategy
from .sizing import MultiplierResult, ScheduledOrder, compute_multiplier, next_order_amount, preflight_estimate, preview_schedule
from .snapshot import DCAMarketSnapshot, build_snapshot

if TYPE_CHECKING:
    from storage.repository import TradingRepository


logger = logging.getLogger(__name__)

QUANTITY_STEP = Decimal("0.00000001")
LEDGER_TAG = "dca"


class DCAEngine:
    """Start, stop, execute and reset DCA positions."""

    def __init__(
        self,
        manager: ExchangeManager,
        repository: "TradingRepository",
        config: Optional[DCAConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self.manager = manager
        self.repository = repository
        self.config = config or DCAConfig()
        self.config.validate()
        self._clock = clock or get_clock()
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ============================================================
    # HELPERS
    # ============================================================

    def _resolve_exchange(self, exchange: Optional[str]) -> ExchangeAdapter:
        if exchange:
            return self.manager.require_exchange(exchange)
        active = self.manager.get_active_exchanges()
        if not active:
            raise ValidationError("No active exchange available for DCA", field="exchange")
        return self.manager.require_exchange(active[0])

    async def _require_state(self, symbol: str) -> DCAPositionState:
        state = await self.repository.get_dca_position(symbol)
        if state is None:
            raise DCAError(f"No DCA position for {symbol}", symbol=symbol)
        return state

    async def snapshot(self, symbol: str, exchange: Optional[str] = None) -> DCAMarketSnapshot:
        """Indicator snapshot from the venue's candle history."""
        adapter = self._resolve_exchange(exchange)
        klines = await adapter.get_klines(symbol.upper(), self.config.kline_interval, self.config.kline_limit)
        return build_snapshot(klines, self.config.ema_period, self.config.sr_window)

    def multiplier(self, snapshot: DCAMarketSnapshot) -> MultiplierResult:
        return compute_multiplier(snapshot, self.config.weights, self.config)

    # ============================================================
    # LIFECYCLE
    # ============================================================

    async def start(
        self,
        symbol: str,
        settings: Optional[DCASettings] = None,
        exchange: Optional[str] = None,
    ) -> DCAPositionState:
        """
        Activate (or re-activate) a position.

        Raises:
            DCAError: invalid settings
            RiskRejected: quote balance cannot fund the full position
                under the fixed pre-flight multiplier
        """
        symbol = symbol.upper()
        settings = settings or DCASettings()
        settings.validate(symbol)
        adapter = self._resolve_exchange(exchange)

        required = preflight_estimate(settings.base_amount, settings.max_orders, self.config.preflight_multiplier)
        balance = await adapter.get_balance(self.config.quote_asset)
        if balance.free < required:
            raise RiskRejected(
                [f"Insufficient {self.config.quote_asset} for {settings.max_orders} DCA orders: "
                 f"need {required}, available {balance.free}"],
                ["Top up balance or reduce base amount / max orders"],
                risk_score=100,
            )

        now = self._clock.now()
        existing = await self.repository.get_dca_position(symbol)
        if existing is not None:
            state = replace(existing, is_active=True, settings=settings, exchange=adapter.name, updated_at=now)
        else:
            state = DCAPositionState(
                symbol=symbol,
                exchange=adapter.name,
                is_active=True,
                settings=settings,
                created_at=now,
                updated_at=now,
            )
        await self.repository.upsert_dca_position(state)
        logger.info(
            "DCA started for %s on %s: base %s, max %d orders (pre-flight %s)",
            symbol, adapter.name, settings.base_amount, settings.max_orders, required,
        )
        return state

    async def stop(self, symbol: str) -> DCAPositionState:
        symbol = symbol.upper()
        async with self._locks[symbol]:
            state = await self._require_state(symbol)
            state = replace(state, is_active=False, updated_at=self._clock.now())
            await self.repository.upsert_dca_position(state)
        logger.info("DCA stopped for %s at order %d/%d", symbol, state.current_order_index, state.settings.max_orders)
        return state

    async def reset(self, symbol: str) -> DCAPositionState:
        """Back to order 0 with nothing invested. The active flag is kept."""
        symbol = symbol.upper()
        async with self._locks[symbol]:
            state = (await self._require_state(symbol)).reset(self._clock.now())
            await self.repository.upsert_dca_position(state)
        logger.info("DCA reset for %s", symbol)
        return state

    async def update_settings(self, symbol: str, settings: DCASettings) -> DCAPositionState:
        symbol = symbol.upper()
        settings.validate(symbol)
        async with self._locks[symbol]:
            state = await self._require_state(symbol)
            if settings.max_orders < state.current_order_index:
                raise DCAError(
                    f"max_orders {settings.max_orders} below orders already placed ({state.current_order_index})",
                    symbol=symbol,
                )
            state = replace(state, settings=settings, updated_at=self._clock.now())
            await self.repository.upsert_dca_position(state)
        logger.info("DCA settings updated for %s: %s", symbol, settings.to_dict())
        return state

    async def get_state(self, symbol: str) -> Optional[DCAPositionState]:
        return await self.repository.get_dca_position(symbol.upper())

    async def list_states(self, active_only: bool = False) -> List[DCAPositionState]:
        return await self.repository.list_dca_positions(active_only=active_only)

    # ============================================================
    # EXECUTION
    # ============================================================

    async def execute(self, symbol: str) -> DCAExecutionResult:
        symbol = symbol.upper()
        async with self._locks[symbol]:
            return await self._execute_locked(symbol)

    async def _execute_locked(self, symbol: str) -> DCAExecutionResult:
        state = await self._require_state(symbol)
        now = self._clock.now()

        if not state.is_active:
            return DCAExecutionResult(symbol, DCAExecutionStatus.INACTIVE, "DCA position is not active", state)

        if state.is_complete:
            return DCAExecutionResult(
                symbol,
                DCAExecutionStatus.COMPLETED,
                f"DCA position already complete ({state.current_order_index}/{state.settings.max_orders} orders)",
                state,
            )

        snapshot = await self.snapshot(symbol, state.exchange)
        if not snapshot.below_ema:
            await self.repository.mark_dca_checked(symbol, now)
            return DCAExecutionResult(
                symbol,
                DCAExecutionStatus.SKIPPED,
                f"Price {snapshot.current_price:.8g} not below EMA{self.config.ema_period} {snapshot.ema89:.8g}",
                replace(state, last_checked_at=now),
                price=snapshot.current_price,
            )

        sizing = self.multiplier(snapshot)
        amount = next_order_amount(state.previous_amount, sizing.value)
        price = Decimal(str(snapshot.current_price))

        adapter = self.manager.require_exchange(state.exchange)
        balance = await adapter.get_balance(self.config.quote_asset)
        if balance.free < amount:
            raise RiskRejected(
                [f"Insufficient {self.config.quote_asset} balance: need {amount}, available {balance.free}"],
                ["Top up balance or reduce base amount"],
                risk_score=100,
            )

        index = state.current_order_index
        if not await self.repository.claim_dca_order(symbol, index):
            raise DCAError(f"DCA order {index + 1} for {symbol} was claimed concurrently", symbol=symbol)

        quantity = (amount / price).quantize(QUANTITY_STEP, rounding=ROUND_DOWN)
        request = NormalizedOrderRequest(symbol=symbol, side=OrderSide.BUY, type=OrderType.MARKET, quantity=quantity)
        try:
            order = await self.manager.place_order(state.exchange, request)
        except Exception as e:
            await self.repository.release_dca_order(symbol, index)
            logger.error("DCA order %d for %s failed, claim released: %s", index + 1, symbol, e)
            raise

        fill_price = order.fill_price
        invested = order.executed_qty * fill_price if fill_price and order.executed_qty > 0 else amount
        updated = await self.repository.record_dca_fill(symbol, amount, invested, now)
        await self.repository.append_trade(TradeLedgerEntry.from_order(order, LEDGER_TAG, now, fallback_price=price))

        logger.info(
            "DCA order %d/%d for %s: %s %s at %s (multiplier %.3f, %s)",
            updated.current_order_index, updated.settings.max_orders, symbol,
            amount, self.config.quote_asset, price, sizing.value, sizing.strategy.value,
        )
        return DCAExecutionResult(
            symbol,
            DCAExecutionStatus.EXECUTED,
            f"DCA order {updated.current_order_index}/{updated.settings.max_orders} executed",
            updated,
            order_id=order.order_id,
            amount=amount,
            quantity=quantity,
            price=snapshot.current_price,
            multiplier=sizing.value,
            explanation=sizing.explanation(),
        )

    async def run_due_positions(self) -> List[DCAExecutionResult]:
        """Scheduled tick: execute every active, incomplete position."""
        results = []
        for state in await self.repository.list_dca_positions(active_only=True):
            if state.is_complete:
                continue
            try:
                results.append(await self.execute(state.symbol))
            except TradingException as e:
                logger.warning("DCA tick for %s failed: %s", state.symbol, e)
        return results

    # ============================================================
    # ANALYSIS
    # ============================================================

    async def preview(self, symbol: str, exchange: Optional[str] = None) -> List[ScheduledOrder]:
        """Projected remaining orders of a position (or a fresh default one)."""
        state = await self.repository.get_dca_position(symbol.upper())
        if state is not None:
            exchange = exchange or state.exchange
            base, remaining = state.previous_amount, state.settings.max_orders - state.current_order_index
        else:
            defaults = DCASettings()
            base, remaining = defaults.base_amount, defaults.max_orders
        snapshot = await self.snapshot(symbol, exchange)
        return preview_schedule(base, remaining, snapshot, self.config.weights, self.config)

    async def strategy_score(self, symbol: str, exchange: Optional[str] = None) -> StrategyScore:
        return score_strategy(await self.snapshot(symbol, exchange))
