"""
Exchanges - Exchange Manager.

============================================================
PURPOSE
============================================================
Owns the name -> adapter registry and builds aggregate views
(best price, price spread, health) from the adapter contract
alone.

AGGREGATION RULES:
- Every venue is queried in parallel
- A failing or slow venue is dropped from the result, never
  fails the whole call
- Calls are bounded by a deadline; venues still pending at the
  deadline are cancelled and excluded
- best_price fails only when no venue answers, price_spread when
  fewer than two do

The registry is read-mostly: built at startup, replaced on reload.

============================================================
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

import aiohttp

from core.clock import ClockProtocol, get_clock
from core.exceptions import ExchangeUnavailable, ValidationError

from .base import ExchangeAdapter
from .factory import AdapterFactory
from .types import ExchangeCredential, NormalizedOrderRequest, NormalizedOrderResult


logger = logging.getLogger(__name__)

AGGREGATE_VENUE = "aggregate"


# ============================================================
# RESULT TYPES
# ============================================================

@dataclass(frozen=True)
class VenuePrice:
    exchange: str
    price: Decimal


@dataclass(frozen=True)
class BestPrice:
    """Lowest quote across venues (buy-side view)."""

    symbol: str
    exchange: str
    price: Decimal
    prices: Tuple[VenuePrice, ...]
    failed: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PriceSpread:
    """All quotes sorted ascending plus the extremes."""

    symbol: str
    prices: Tuple[VenuePrice, ...]
    lowest: VenuePrice
    highest: VenuePrice
    spread: Decimal
    spread_percent: Decimal
    failed: Dict[str, str] = field(default_factory=dict)


@dataclass
class ExchangeStatus:
    name: str
    active: bool
    signed: bool
    sandbox: bool
    healthy: Optional[bool] = None
    latency_ms: Optional[float] = None
    last_error: Optional[str] = None


# ============================================================
# MANAGER
# ============================================================

class ExchangeManager:
    """
    Registry of venue adapters with parallel aggregate queries.

    Constructed explicitly and injected wherever it is needed.
    """

    def __init__(
        self,
        clock: Optional[ClockProtocol] = None,
        price_timeout: float = 10.0,
        health_symbol: str = "BTCUSDT",
    ):
        self._clock = clock or get_clock()
        self.price_timeout = price_timeout
        self.health_symbol = health_symbol
        self._adapters: Dict[str, ExchangeAdapter] = {}
        self._active: Dict[str, bool] = {}
        self._statuses: Dict[str, ExchangeStatus] = {}

    @classmethod
    def from_credentials(
        cls,
        credentials: Iterable[ExchangeCredential],
        session: Optional[aiohttp.ClientSession] = None,
        **kwargs: Any,
    ) -> "ExchangeManager":
        manager = cls(**kwargs)
        for credential in credentials:
            if credential.active:
                manager.add_exchange(credential, session=session)
        return manager

    # ============================================================
    # REGISTRY
    # ============================================================

    def register(self, adapter: ExchangeAdapter, active: bool = True) -> None:
        name = adapter.name
        self._adapters[name] = adapter
        self._active[name] = active
        self._statuses[name] = ExchangeStatus(
            name=name,
            active=active,
            signed=adapter.has_credentials,
            sandbox=adapter.sandbox,
        )
        logger.info("Registered exchange %s (%s)", name, "signed" if adapter.has_credentials else "public")

    def add_exchange(
        self,
        credential: ExchangeCredential,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> ExchangeAdapter:
        adapter = AdapterFactory.create(credential, session=session, clock=self._clock)
        self.register(adapter, active=credential.active)
        return adapter

    async def remove_exchange(self, name: str) -> bool:
        adapter = self._adapters.pop(name, None)
        self._active.pop(name, None)
        self._statuses.pop(name, None)
        if adapter is None:
            return False
        await adapter.close()
        logger.info("Removed exchange %s", name)
        return True

    def get_exchange(self, name: str) -> Optional[ExchangeAdapter]:
        return self._adapters.get(name)

    def require_exchange(self, name: str) -> ExchangeAdapter:
        adapter = self._adapters.get(name)
        if adapter is None:
            raise ValidationError(f"Unknown exchange: {name}", field="exchange")
        return adapter

    def get_active_exchanges(self) -> List[str]:
        return [name for name, active in self._active.items() if active]

    def set_active(self, name: str, active: bool) -> None:
        self.require_exchange(name)
        self._active[name] = active
        self._statuses[name].active = active

    def get_statuses(self) -> Dict[str, ExchangeStatus]:
        return dict(self._statuses)

    async def reload(self, credentials: Iterable[ExchangeCredential], session: Optional[aiohttp.ClientSession] = None) -> None:
        """Replace every adapter built from credentials."""
        for name in list(self._adapters):
            await self.remove_exchange(name)
        for credential in credentials:
            if credential.active:
                self.add_exchange(credential, session=session)
        logger.info("Exchange registry reloaded: %s", ", ".join(self._adapters) or "(empty)")

    async def close(self) -> None:
        for adapter in self._adapters.values():
            await adapter.close()

    # ============================================================
    # PARALLEL FAN-OUT
    # ============================================================

    async def _fan_out(
        self,
        call: Callable[[ExchangeAdapter], Awaitable[Any]],
        timeout: Optional[float],
    ) -> Tuple[Dict[str, Any], Dict[str, str]]:
        """
        Run ``call`` against every active adapter concurrently.

        Returns:
            (results by venue, error text by venue)
        """
        names = self.get_active_exchanges()
        if not names:
            return {}, {}

        tasks = {asyncio.ensure_future(call(self._adapters[name])): name for name in names}
        done, pending = await asyncio.wait(list(tasks), timeout=timeout if timeout is not None else self.price_timeout)

        failed: Dict[str, str] = {}
        for task in pending:
            task.cancel()
            failed[tasks[task]] = "deadline exceeded"
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        results: Dict[str, Any] = {}
        for task in done:
            name = tasks[task]
            error = task.exception()
            if error is not None:
                failed[name] = str(error)
                logger.warning("%s excluded from aggregation: %s", name, error)
            else:
                results[name] = task.result()
        return results, failed

    async def _collect_prices(self, symbol: str, timeout: Optional[float]) -> Tuple[List[VenuePrice], Dict[str, str]]:
        symbol = symbol.upper()
        results, failed = await self._fan_out(lambda adapter: adapter.get_price(symbol), timeout)
        prices = []
        for name, price in results.items():
            if price is None or price <= 0:
                failed[name] = f"invalid price {price}"
                continue
            prices.append(VenuePrice(exchange=name, price=Decimal(price)))
        prices.sort(key=lambda item: (item.price, item.exchange))
        return prices, failed

    # ============================================================
    # AGGREGATES
    # ============================================================

    async def best_price(self, symbol: str, timeout: Optional[float] = None) -> BestPrice:
        """Lowest price across venues."""
        prices, failed = await self._collect_prices(symbol, timeout)
        if not prices:
            raise ExchangeUnavailable(
                AGGREGATE_VENUE,
                f"No exchange returned a price for {symbol.upper()}",
                context={"failed": failed},
            )
        best = prices[0]
        return BestPrice(
            symbol=symbol.upper(),
            exchange=best.exchange,
            price=best.price,
            prices=tuple(prices),
            failed=failed,
        )

    async def price_spread(self, symbol: str, timeout: Optional[float] = None) -> PriceSpread:
        """Sorted quotes with spread and spread percent (relative to the lowest)."""
        prices, failed = await self._collect_prices(symbol, timeout)
        if len(prices) < 2:
            raise ExchangeUnavailable(
                AGGREGATE_VENUE,
                f"Need at least 2 exchange prices for {symbol.upper()}, got {len(prices)}",
                context={"failed": failed},
            )
        lowest, highest = prices[0], prices[-1]
        spread = highest.price - lowest.price
        return PriceSpread(
            symbol=symbol.upper(),
            prices=tuple(prices),
            lowest=lowest,
            highest=highest,
            spread=spread,
            spread_percent=spread / lowest.price * 100,
            failed=failed,
        )

    async def health_check(self, timeout: Optional[float] = None) -> Dict[str, ExchangeStatus]:
        """Ping every active venue with a price request."""

        async def ping(adapter: ExchangeAdapter) -> float:
            started = time.monotonic()
            await adapter.get_price(self.health_symbol)
            return (time.monotonic() - started) * 1000

        results, failed = await self._fan_out(ping, timeout)
        for name, latency in results.items():
            status = self._statuses[name]
            status.healthy, status.latency_ms, status.last_error = True, latency, None
        for name, error in failed.items():
            status = self._statuses[name]
            status.healthy, status.latency_ms, status.last_error = False, None, error
        return {name: self._statuses[name] for name in self.get_active_exchanges()}

    # ============================================================
    # ORDERS
    # ============================================================

    async def place_order(self, exchange: str, request: NormalizedOrderRequest) -> NormalizedOrderResult:
        """Route an order to one venue. Errors propagate unchanged."""
        adapter = self.require_exchange(exchange)
        return await adapter.place_order(request)
