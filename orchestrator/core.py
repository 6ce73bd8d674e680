"""
Orchestrator - Core.

============================================================
RESPONSIBILITY
============================================================
TradingCore is the facade route handlers and the CLI call into.

- Wires manager, detector, guard, DCA engine, signal pipeline,
  position tracker and repository from one CoreConfig
- Exposes manual orders, arbitrage, DCA, signals, tracked
  positions and health checks as plain async methods
- Owns startup (tables, scheduler) and shutdown (sessions,
  engine)

============================================================
ARCHITECTURAL POSITION
============================================================
- No business logic lives here
- Collaborators are constructed once and injected; nothing is
  global

============================================================
"""

import json
import logging
import sys
from decimal import Decimal
from typing import Any, Dict, List, Optional

from arbitrage.detector import ArbitrageDetector
from arbitrage.guard import ArbitrageGuard
from arbitrage.models import ArbitrageOpportunity, ArbitrageStatus, ArbitrageTrade
from core.clock import ClockProtocol, get_clock
from dca.engine import DCAEngine
from dca.models import DCAExecutionResult, DCAPositionState, DCASettings
from dca.sizing import MultiplierResult, ScheduledOrder
from dca.snapshot import DCAMarketSnapshot
from exchanges.manager import ExchangeManager
from exchanges.types import NormalizedOrderRequest, NormalizedOrderResult, OrderSide, OrderType
from positions.models import PositionSide, TrackedPosition
from positions.tracker import PositionTracker, TrailingCheckResult
from signals.executor import SignalExecutor
from signals.parser import SignalParser
from signals.pipeline import SignalPipeline, SignalProcessingResult
from signals.risk_controller import RiskController
from storage.database import Database
from storage.records import TradeLedgerEntry
from storage.repository import TradingRepository

from .config import CoreConfig
from .scheduler import Scheduler


logger = logging.getLogger(__name__)

MANUAL_LEDGER_TAG = "manual"


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(level: str = "INFO", log_format: str = "json") -> logging.Logger:
    """
    Install a single stdout handler on the root logger.

    Args:
        level: Log level name
        log_format: ``json`` or ``text``
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("orchestrator")


# ============================================================
# TRADING CORE
# ============================================================

class TradingCore:
    """Single entry point over every engine component."""

    def __init__(
        self,
        config: Optional[CoreConfig] = None,
        manager: Optional[ExchangeManager] = None,
        repository: Optional[TradingRepository] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        """
        Args:
            config: Aggregated configuration (defaults when omitted)
            manager: Pre-built registry; built from credentials otherwise
            repository: Persistence; a SQL repository over
                ``config.database`` otherwise
        """
        self.config = config or CoreConfig()
        self._clock = clock or get_clock()

        if manager is None:
            credentials = self.config.exchanges.get_active() if self.config.exchanges else []
            manager = ExchangeManager.from_credentials(
                credentials, clock=self._clock, price_timeout=self.config.price_timeout_seconds
            )
        self.manager = manager

        self.database: Optional[Database] = None
        if repository is None:
            self.database = Database(self.config.database)
            repository = self.database.repository()
        self.repository = repository

        self.detector = ArbitrageDetector(self.manager, self.config.arbitrage, self._clock)
        self.guard = ArbitrageGuard(self.manager, self.config.arbitrage, self._clock)
        self.dca = DCAEngine(self.manager, self.repository, self.config.dca, self._clock)
        self.pipeline = SignalPipeline(
            parser=SignalParser(self.manager, self.config.parser, self._clock),
            risk_controller=RiskController(self.manager, self.repository, self.config.risk, self._clock),
            executor=SignalExecutor(self.manager, self.repository, self._clock),
            repository=self.repository,
            clock=self._clock,
        )
        self.positions = PositionTracker(self.manager, self.repository, self.config.positions, self._clock)
        self.scheduler = Scheduler(
            self.detector,
            self.guard,
            self.dca,
            self.config.scheduler,
            symbols=self.config.arbitrage.symbols,
            clock=self._clock,
            tracker=self.positions,
        )
        self._started = False

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    async def start(self, run_scheduler: bool = False) -> None:
        if self._started:
            return
        if self.database is not None:
            await self.database.create_tables()
        if run_scheduler:
            self.scheduler.start()
        self._started = True
        logger.info(
            "Trading core started | exchanges=%s scheduler=%s",
            ",".join(self.manager.get_active_exchanges()) or "-", run_scheduler,
        )

    async def stop(self) -> None:
        await self.scheduler.stop()
        await self.manager.close()
        await self.repository.close()
        if self.database is not None:
            await self.database.close()
        self._started = False
        logger.info("Trading core stopped")

    async def __aenter__(self) -> "TradingCore":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # --------------------------------------------------------
    # Manual orders
    # --------------------------------------------------------

    async def place_manual_order(
        self,
        exchange: str,
        symbol: str,
        side: OrderSide,
        quantity: Decimal,
        order_type: OrderType = OrderType.MARKET,
        price: Optional[Decimal] = None,
        stop_price: Optional[Decimal] = None,
    ) -> NormalizedOrderResult:
        """Route one order to a venue and append it to the ledger. Errors propagate."""
        request = NormalizedOrderRequest(
            symbol=symbol.upper(),
            side=side,
            type=order_type,
            quantity=Decimal(quantity),
            price=price,
            stop_price=stop_price,
        )
        order = await self.manager.place_order(exchange, request)
        await self.repository.append_trade(
            TradeLedgerEntry.from_order(order, MANUAL_LEDGER_TAG, self._clock.now(), fallback_price=price or stop_price)
        )
        logger.info("Manual order %s on %s: %s %s %s", order.order_id, exchange, side.value, quantity, symbol)
        return order

    # --------------------------------------------------------
    # Arbitrage
    # --------------------------------------------------------

    async def get_arbitrage_opportunities(self, symbol: str) -> List[ArbitrageOpportunity]:
        opportunities = await self.detector.detect(symbol)
        self.guard.note_scan(len(opportunities))
        return opportunities

    def get_arbitrage_status(self) -> ArbitrageStatus:
        return self.guard.get_status()

    async def execute_arbitrage(self, opportunity: ArbitrageOpportunity, amount: Decimal) -> ArbitrageTrade:
        return await self.guard.execute(opportunity, amount)

    async def emergency_stop_arbitrage(self) -> None:
        await self.guard.emergency_stop()

    # --------------------------------------------------------
    # Sizing
    # --------------------------------------------------------

    def compute_multiplier(self, snapshot: DCAMarketSnapshot) -> MultiplierResult:
        """Pure sizing multiplier for a snapshot, clamped to the configured bounds."""
        return self.dca.multiplier(snapshot)

    async def market_multiplier(self, symbol: str, exchange: Optional[str] = None) -> MultiplierResult:
        return self.dca.multiplier(await self.dca.snapshot(symbol, exchange))

    # --------------------------------------------------------
    # Signals
    # --------------------------------------------------------

    async def process_signal(self, raw: Any) -> SignalProcessingResult:
        return await self.pipeline.process_signal(raw)

    # --------------------------------------------------------
    # DCA
    # --------------------------------------------------------

    async def start_dca(
        self, symbol: str, settings: Optional[DCASettings] = None, exchange: Optional[str] = None
    ) -> DCAPositionState:
        return await self.dca.start(symbol, settings, exchange)

    async def stop_dca(self, symbol: str) -> DCAPositionState:
        return await self.dca.stop(symbol)

    async def execute_dca(self, symbol: str) -> DCAExecutionResult:
        return await self.dca.execute(symbol)

    async def reset_dca(self, symbol: str) -> DCAPositionState:
        return await self.dca.reset(symbol)

    async def update_dca_settings(self, symbol: str, settings: DCASettings) -> DCAPositionState:
        return await self.dca.update_settings(symbol, settings)

    async def get_dca_state(self, symbol: str) -> Optional[DCAPositionState]:
        return await self.dca.get_state(symbol)

    async def preview_dca(self, symbol: str, exchange: Optional[str] = None) -> List[ScheduledOrder]:
        return await self.dca.preview(symbol, exchange)

    # --------------------------------------------------------
    # Tracked positions
    # --------------------------------------------------------

    async def open_position(
        self,
        exchange: str,
        symbol: str,
        side: PositionSide,
        quantity: Decimal,
        entry_price: Optional[Decimal] = None,
    ) -> TrackedPosition:
        return await self.positions.open_position(exchange, symbol, side, quantity, entry_price)

    async def set_trailing_stop(
        self,
        position_id: str,
        enabled: bool,
        distance_pct: Optional[Decimal] = None,
        current_price: Optional[Decimal] = None,
    ) -> TrackedPosition:
        return await self.positions.set_trailing_stop(position_id, enabled, distance_pct, current_price)

    async def get_position(self, position_id: str) -> Optional[TrackedPosition]:
        return await self.positions.get_position(position_id)

    async def list_positions(self, open_only: bool = False) -> List[TrackedPosition]:
        return await self.positions.list_positions(open_only)

    async def close_position(self, position_id: str) -> TrackedPosition:
        return await self.positions.close_position(position_id)

    async def check_trailing_stops(self) -> List[TrailingCheckResult]:
        return await self.positions.check_trailing_stops()

    # --------------------------------------------------------
    # Health & Status
    # --------------------------------------------------------

    async def health_check(self) -> Dict[str, Any]:
        """Venue checks, database reachability and arbitrage risk level."""
        statuses = await self.manager.health_check()
        exchanges = {
            name: {"healthy": bool(status.healthy), "latency_ms": status.latency_ms, "error": status.last_error}
            for name, status in statuses.items()
        }
        database_ok = await self.database.health_check() if self.database is not None else True
        arbitrage = self.guard.get_status()
        return {
            "healthy": database_ok and any(entry["healthy"] for entry in exchanges.values()),
            "exchanges": exchanges,
            "database": database_ok,
            "arbitrage": {
                "enabled": arbitrage.is_enabled,
                "risk_level": arbitrage.risk_level.value,
                "active_trades": arbitrage.active_trades,
            },
            "scheduler_running": self.scheduler.is_running,
            "timestamp": self._clock.now().isoformat(),
        }
