"""
Exchanges - Mock Adapter.

============================================================
PURPOSE
============================================================
In-memory venue implementing the full adapter contract.

FEATURES:
- Configurable prices, candles and balances
- Configurable latency
- Failure injection per operation (once, N times or always)
- Call log for assertions
- Market orders fill immediately and move balances

Used by the test-suite and by ``--dry-run`` mode of the CLI.

============================================================
"""

import asyncio
import itertools
import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from core.clock import ClockProtocol
from core.exceptions import ExchangeError, ExchangeRejected

from .base import ExchangeAdapter
from .types import (
    Balance,
    ExchangeCredential,
    Kline,
    NormalizedOrderRequest,
    NormalizedOrderResult,
    OrderSide,
    OrderStatus,
    OrderType,
    Ticker24h,
    TradeFill,
    split_symbol,
)


logger = logging.getLogger(__name__)


# ============================================================
# MOCK CONFIGURATION
# ============================================================

@dataclass
class MockConfig:
    """Configuration for the mock adapter."""

    name: str = "mock"

    prices: Dict[str, Decimal] = field(default_factory=dict)
    """Last price by canonical symbol."""

    default_price: Decimal = Decimal("100")
    """Price for symbols missing from ``prices``."""

    balances: Dict[str, Decimal] = field(default_factory=lambda: {"USDT": Decimal("10000")})
    """Free balance by asset."""

    klines: Dict[str, List[Kline]] = field(default_factory=dict)
    """Explicit candle history by symbol. Flat candles are generated otherwise."""

    latency_seconds: float = 0.0
    """Delay applied to every call."""

    immediate_fill: bool = True
    """MARKET orders fill at the current price on placement."""


# ============================================================
# MOCK EXCHANGE ADAPTER
# ============================================================

class MockExchangeAdapter(ExchangeAdapter):
    """In-memory venue."""

    def __init__(
        self,
        config: Optional[MockConfig] = None,
        credential: Optional[ExchangeCredential] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self.config = config or MockConfig()
        self.name = self.config.name
        super().__init__(
            credential or ExchangeCredential(name=self.name, api_key="mock", api_secret="mock"),
            clock=clock,
        )
        self.prices: Dict[str, Decimal] = {k.upper(): Decimal(str(v)) for k, v in self.config.prices.items()}
        self.balances: Dict[str, Decimal] = {k.upper(): Decimal(str(v)) for k, v in self.config.balances.items()}
        self.locked: Dict[str, Decimal] = defaultdict(Decimal)
        self.orders: Dict[str, NormalizedOrderResult] = {}
        self.fills: List[TradeFill] = []
        self.calls: List[Tuple[str, tuple]] = []
        self._failures: Dict[str, List[ExchangeError]] = defaultdict(list)
        self._permanent_failures: Dict[str, ExchangeError] = {}
        self._ids = itertools.count(1)

    def to_venue_symbol(self, symbol: str) -> str:
        return symbol.upper()

    # ============================================================
    # TEST CONTROLS
    # ============================================================

    def set_price(self, symbol: str, price) -> None:
        self.prices[symbol.upper()] = Decimal(str(price))

    def set_balance(self, asset: str, free) -> None:
        self.balances[asset.upper()] = Decimal(str(free))

    def inject_failure(self, operation: str, error: ExchangeError, times: Optional[int] = 1) -> None:
        """
        Make ``operation`` raise ``error``.

        Args:
            operation: Contract method name, e.g. ``"place_order"``
            error: Exception to raise
            times: Number of failing calls, None for every call
        """
        if times is None:
            self._permanent_failures[operation] = error
        else:
            self._failures[operation].extend([error] * times)

    def clear_failures(self) -> None:
        self._failures.clear()
        self._permanent_failures.clear()

    def call_count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    async def _enter(self, operation: str, *args) -> None:
        self.calls.append((operation, args))
        if self.config.latency_seconds:
            await asyncio.sleep(self.config.latency_seconds)
        if operation in self._permanent_failures:
            raise self._permanent_failures[operation]
        if self._failures.get(operation):
            raise self._failures[operation].pop(0)

    def _price_of(self, symbol: str) -> Decimal:
        return self.prices.get(symbol.upper(), Decimal(self.config.default_price))

    # ============================================================
    # MARKET DATA
    # ============================================================

    async def get_price(self, symbol: str) -> Decimal:
        await self._enter("get_price", symbol)
        return self._price_of(symbol)

    async def get_klines(self, symbol: str, interval: str = "30m", limit: int = 200) -> List[Kline]:
        await self._enter("get_klines", symbol, interval, limit)
        if symbol.upper() in self.config.klines:
            return list(self.config.klines[symbol.upper()][-limit:])
        price = self._price_of(symbol)
        start = self._clock.now() - timedelta(minutes=30 * limit)
        return [
            Kline(
                open_time=start + timedelta(minutes=30 * i),
                open=price, high=price, low=price, close=price,
                volume=Decimal("1"),
            )
            for i in range(limit)
        ]

    async def get_24h_ticker(self, symbol: str) -> Ticker24h:
        await self._enter("get_24h_ticker", symbol)
        price = self._price_of(symbol)
        return Ticker24h(
            symbol=symbol.upper(),
            last_price=price,
            high=price,
            low=price,
            volume=Decimal("0"),
            quote_volume=Decimal("0"),
            change_percent=Decimal("0"),
            exchange_name=self.name,
        )

    # ============================================================
    # ACCOUNT
    # ============================================================

    async def get_all_balances(self) -> List[Balance]:
        await self._enter("get_all_balances")
        return [
            Balance(asset=asset, free=free, locked=self.locked.get(asset, Decimal("0")))
            for asset, free in sorted(self.balances.items())
        ]

    # ============================================================
    # ORDERS
    # ============================================================

    async def place_order(self, request: NormalizedOrderRequest) -> NormalizedOrderResult:
        self.check_order_request(request)
        await self._enter("place_order", request)

        price = self._price_of(request.symbol)
        base, quote = split_symbol(request.symbol)
        fills_now = request.type is OrderType.MARKET and self.config.immediate_fill
        fill_price = price if fills_now else None

        if request.side is OrderSide.BUY:
            needed = request.quantity * (request.price or price)
            if self.balances.get(quote, Decimal("0")) < needed and not request.type.is_stop:
                raise ExchangeRejected(self.name, "Insufficient balance", venue_code="INSUFFICIENT_FUNDS")

        order_id = f"{self.name}-{next(self._ids)}"
        result = NormalizedOrderResult(
            order_id=order_id,
            symbol=request.symbol,
            side=request.side,
            type=request.type,
            status=OrderStatus.FILLED if fills_now else OrderStatus.PENDING,
            requested_qty=request.quantity,
            price=request.price,
            executed_qty=request.quantity if fills_now else Decimal("0"),
            avg_price=fill_price,
            timestamp=self._clock.now(),
            exchange_name=self.name,
        )
        self.orders[order_id] = result

        if fills_now:
            notional = request.quantity * price
            sign = 1 if request.side is OrderSide.BUY else -1
            self.balances[quote] = self.balances.get(quote, Decimal("0")) - sign * notional
            self.balances[base] = self.balances.get(base, Decimal("0")) + sign * request.quantity
            self.fills.append(TradeFill(
                trade_id=f"t-{order_id}",
                order_id=order_id,
                symbol=request.symbol,
                side=request.side,
                price=price,
                quantity=request.quantity,
                fee=Decimal("0"),
                fee_asset=quote,
                timestamp=result.timestamp,
                exchange_name=self.name,
            ))
        return result

    async def cancel_order(self, symbol: str, order_id: str) -> NormalizedOrderResult:
        await self._enter("cancel_order", symbol, order_id)
        order = self.orders.get(order_id)
        if order is None:
            raise ExchangeRejected(self.name, f"Order {order_id} not found", venue_code="ORDER_NOT_FOUND")
        if order.status is OrderStatus.PENDING:
            order = replace(order, status=OrderStatus.CANCELLED)
            self.orders[order_id] = order
        return order

    async def get_order(self, symbol: str, order_id: str) -> NormalizedOrderResult:
        await self._enter("get_order", symbol, order_id)
        if order_id not in self.orders:
            raise ExchangeRejected(self.name, f"Order {order_id} not found", venue_code="ORDER_NOT_FOUND")
        return self.orders[order_id]

    async def get_open_orders(self, symbol: Optional[str] = None) -> List[NormalizedOrderResult]:
        await self._enter("get_open_orders", symbol)
        return [
            order for order in self.orders.values()
            if order.status is OrderStatus.PENDING and (symbol is None or order.symbol == symbol.upper())
        ]

    async def get_trade_history(self, symbol: str, limit: int = 50) -> List[TradeFill]:
        await self._enter("get_trade_history", symbol, limit)
        return [fill for fill in self.fills if fill.symbol == symbol.upper()][-limit:]

    async def get_order_history(self, symbol: str, limit: int = 50) -> List[NormalizedOrderResult]:
        await self._enter("get_order_history", symbol, limit)
        return [order for order in self.orders.values() if order.symbol == symbol.upper()][-limit:]
