"""
Positions - Tracker.

============================================================
PURPOSE
============================================================
Keeps tracked positions and runs their trailing stops.

CHECK TICK (``check_trailing_stops``):
1. Load open positions with a trailing stop
2. One price request per (exchange, symbol)
3. Price through the stop  -> MARKET order on the closing side,
                              position CLOSED with PnL, ledger
                              entry tagged ``trailing_stop``
4. New best price          -> stop ratcheted and saved
5. Otherwise               -> untouched

A failure on one position is reported in its result and never
stops the tick. Opening a position only records it; the entry
order is the caller's.

============================================================
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from core.clock import ClockProtocol, get_clock
from core.exceptions import PositionError, TradingException, ValidationError
from exchanges.manager import ExchangeManager
from exchanges.types import NormalizedOrderRequest, NormalizedOrderResult, OrderType
from storage.records import TradeLedgerEntry

from .config import TrailingStopConfig
from .models import PositionSide, PositionStatus, TrackedPosition
from .trailing import TrailingAction, evaluate_trailing_stop, stop_price_for

if TYPE_CHECKING:
    from storage.repository import TradingRepository


logger = logging.getLogger(__name__)

LEDGER_TAG = "trailing_stop"
MANUAL_CLOSE_TAG = "position_close"


@dataclass(frozen=True)
class TrailingCheckResult:
    position_id: str
    symbol: str
    action: Optional[TrailingAction]
    price: Optional[Decimal] = None
    stop_price: Optional[Decimal] = None
    close_order_id: Optional[str] = None
    error: Optional[str] = None


class PositionTracker:
    """Open, trail and close tracked positions."""

    def __init__(
        self,
        manager: ExchangeManager,
        repository: "TradingRepository",
        config: Optional[TrailingStopConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self.manager = manager
        self.repository = repository
        self.config = config or TrailingStopConfig()
        self._clock = clock or get_clock()
        self._lock = asyncio.Lock()

    # ============================================================
    # POSITIONS
    # ============================================================

    async def open_position(
        self,
        exchange: str,
        symbol: str,
        side: PositionSide,
        quantity: Decimal,
        entry_price: Optional[Decimal] = None,
    ) -> TrackedPosition:
        """
        Start tracking a holding. No order is placed.

        The entry price defaults to the venue's last price.
        """
        quantity = Decimal(str(quantity))
        if quantity <= 0:
            raise ValidationError("Quantity must be positive", field="quantity")
        adapter = self.manager.require_exchange(exchange)
        symbol = symbol.upper()
        if entry_price is None:
            entry_price = await adapter.get_price(symbol)
        entry_price = Decimal(str(entry_price))
        if entry_price <= 0:
            raise ValidationError("Entry price must be positive", field="entry_price")

        now = self._clock.now()
        position = TrackedPosition(
            id=f"pos_{uuid.uuid4().hex[:16]}",
            symbol=symbol,
            exchange=exchange,
            side=side,
            quantity=quantity,
            entry_price=entry_price,
            status=PositionStatus.OPEN,
            created_at=now,
            updated_at=now,
        )
        await self.repository.insert_position(position)
        logger.info(
            "Tracking %s %s %s on %s at %s (%s)",
            side.value, quantity, symbol, exchange, entry_price, position.id,
        )
        return position

    async def get_position(self, position_id: str) -> Optional[TrackedPosition]:
        return await self.repository.get_position(position_id)

    async def list_positions(self, open_only: bool = False) -> List[TrackedPosition]:
        return await self.repository.list_positions(open_only=open_only)

    async def set_trailing_stop(
        self,
        position_id: str,
        enabled: bool,
        distance_pct: Optional[Decimal] = None,
        current_price: Optional[Decimal] = None,
    ) -> TrackedPosition:
        """
        Arm or disarm the trailing stop of an open position.

        Arming places the stop ``distance_pct`` away from the current
        price (venue price when not given) and resets the best price
        seen to it.

        Raises:
            PositionError: unknown or closed position
            ValidationError: distance outside the configured range
        """
        async with self._lock:
            position = await self._require_open(position_id)
            now = self._clock.now()

            if not enabled:
                updated = replace(position, trailing_enabled=False, trailing_stop_price=None, updated_at=now)
                await self.repository.update_position(updated)
                logger.info("Trailing stop disabled for %s", position_id)
                return updated

            distance = Decimal(str(distance_pct)) if distance_pct is not None else self.config.default_distance_pct
            if not self.config.min_distance_pct <= distance <= self.config.max_distance_pct:
                raise ValidationError(
                    f"Trailing distance must be between {self.config.min_distance_pct}% "
                    f"and {self.config.max_distance_pct}%",
                    field="distance_pct",
                )
            if current_price is None:
                current_price = await self.manager.require_exchange(position.exchange).get_price(position.symbol)
            price = Decimal(str(current_price))

            updated = replace(
                position,
                trailing_enabled=True,
                trailing_distance_pct=distance,
                trailing_stop_price=stop_price_for(position.side, price, distance),
                highest_price=price if position.side is PositionSide.LONG else position.highest_price,
                lowest_price=price if position.side is PositionSide.SHORT else position.lowest_price,
                updated_at=now,
            )
            await self.repository.update_position(updated)
            logger.info(
                "Trailing stop for %s armed at %s (%s%% from %s)",
                position_id, updated.trailing_stop_price, distance, price,
            )
            return updated

    async def close_position(self, position_id: str, price: Optional[Decimal] = None) -> TrackedPosition:
        """Flatten an open position with a MARKET order and mark it CLOSED."""
        async with self._lock:
            position = await self._require_open(position_id)
            if price is None:
                price = await self.manager.require_exchange(position.exchange).get_price(position.symbol)
            return await self._close(position, Decimal(str(price)), MANUAL_CLOSE_TAG)

    # ============================================================
    # TRAILING CHECK
    # ============================================================

    async def check_trailing_stops(self) -> List[TrailingCheckResult]:
        """Evaluate every armed open position against its venue price."""
        async with self._lock:
            positions = await self.repository.list_positions(open_only=True, trailing_only=True)
            if not positions:
                return []

            prices: Dict[Tuple[str, str], Decimal] = {}
            price_errors: Dict[Tuple[str, str], str] = {}
            for key in {(p.exchange, p.symbol) for p in positions}:
                try:
                    prices[key] = await self.manager.require_exchange(key[0]).get_price(key[1])
                except TradingException as e:
                    logger.warning("Trailing check: no price for %s on %s: %s", key[1], key[0], e)
                    price_errors[key] = str(e)

            results = []
            for position in positions:
                key = (position.exchange, position.symbol)
                if key in price_errors:
                    results.append(TrailingCheckResult(position.id, position.symbol, None, error=price_errors[key]))
                    continue
                results.append(await self._check_one(position, prices[key]))
            return results

    async def _check_one(self, position: TrackedPosition, price: Decimal) -> TrailingCheckResult:
        decision = evaluate_trailing_stop(position, price)
        try:
            if decision.action is TrailingAction.CLOSE:
                logger.warning(
                    "Trailing stop hit for %s %s: price %s through stop %s",
                    position.id, position.symbol, price, decision.stop_price,
                )
                closed = await self._close(position, price, LEDGER_TAG)
                return TrailingCheckResult(
                    position.id, position.symbol, decision.action, price, decision.stop_price,
                    close_order_id=closed.close_order_id,
                )
            if decision.action is TrailingAction.RATCHET:
                await self.repository.update_position(replace(
                    position,
                    trailing_stop_price=decision.stop_price,
                    highest_price=decision.highest_price,
                    lowest_price=decision.lowest_price,
                    updated_at=self._clock.now(),
                ))
                logger.info(
                    "Trailing stop for %s moved %s -> %s at price %s",
                    position.id, position.trailing_stop_price, decision.stop_price, price,
                )
        except TradingException as e:
            logger.error("Trailing check failed for %s: %s", position.id, e)
            return TrailingCheckResult(position.id, position.symbol, decision.action, price, decision.stop_price, error=str(e))
        return TrailingCheckResult(position.id, position.symbol, decision.action, price, decision.stop_price)

    # ============================================================
    # HELPERS
    # ============================================================

    async def _require_open(self, position_id: str) -> TrackedPosition:
        position = await self.repository.get_position(position_id)
        if position is None:
            raise PositionError(f"Unknown position {position_id}", position_id=position_id)
        if not position.is_open:
            raise PositionError(f"Position {position_id} is already closed", position_id=position_id)
        return position

    async def _close(self, position: TrackedPosition, price: Decimal, tag: str) -> TrackedPosition:
        order = await self.manager.place_order(
            position.exchange,
            NormalizedOrderRequest(
                symbol=position.symbol,
                side=position.side.close_side,
                type=OrderType.MARKET,
                quantity=position.quantity,
            ),
        )
        exit_price = order.fill_price or price
        closed = position.closed(exit_price, order.order_id, tag, self._clock.now())
        await self.repository.update_position(closed)
        await self._record(order, tag, price)
        logger.info(
            "Closed %s %s on %s at %s, PnL %s (%s%%)",
            position.id, position.symbol, position.exchange, exit_price, closed.pnl, closed.pnl_percent,
        )
        return closed

    async def _record(self, order: NormalizedOrderResult, tag: str, fallback_price: Decimal) -> None:
        entry = TradeLedgerEntry.from_order(order, tag, self._clock.now(), fallback_price=fallback_price)
        try:
            await self.repository.append_trade(entry)
        except TradingException as e:
            logger.error(
                "Ledger write failed for close order %s on %s (%s %s %s); reconcile from the venue: %s",
                order.order_id, order.exchange_name, order.side.value, order.requested_qty, order.symbol, e,
            )
