"""
Orchestrator - Scheduler.

============================================================
RESPONSIBILITY
============================================================
Background loops driving the engine without an inbound caller.

- Arbitrage scan: detect opportunities for every configured
  symbol; execute the best one through the guard only when
  auto-execute is enabled, sized as ``max_order_amount`` quote
  at the buy price
- DCA tick: execute every active, incomplete DCA position
- Trailing stop tick: ratchet or trigger every armed position
  (only when a tracker is wired in)

A failing cycle is logged and the loop carries on at the next
interval. Loops stop on ``stop()`` or task cancellation.

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from arbitrage.detector import ArbitrageDetector
from arbitrage.guard import ArbitrageGuard
from core.clock import ClockProtocol, get_clock
from core.exceptions import ArbitrageGuardError, TradingException
from dca.engine import DCAEngine
from positions.tracker import PositionTracker, TrailingCheckResult
from positions.trailing import TrailingAction

from .config import SchedulerConfig


logger = logging.getLogger(__name__)


@dataclass
class CycleStats:
    """Counters for one loop."""

    runs: int = 0
    failures: int = 0
    last_error: Optional[str] = None
    last_run_at: Optional[str] = None


@dataclass
class ScanReport:
    symbol: str
    opportunities: int = 0
    executed_trade_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SchedulerStatus:
    running: bool
    loops: Dict[str, CycleStats] = field(default_factory=dict)


class Scheduler:
    """Arbitrage scan, DCA tick and trailing stop loops."""

    def __init__(
        self,
        detector: ArbitrageDetector,
        guard: ArbitrageGuard,
        dca_engine: DCAEngine,
        config: Optional[SchedulerConfig] = None,
        symbols: Sequence[str] = (),
        clock: Optional[ClockProtocol] = None,
        tracker: Optional[PositionTracker] = None,
    ):
        self.detector = detector
        self.guard = guard
        self.dca_engine = dca_engine
        self.tracker = tracker
        self.config = config or SchedulerConfig()
        self.symbols = [s.upper() for s in symbols]
        self._clock = clock or get_clock()
        self._running = False
        self._tasks: List[asyncio.Task] = []
        self._stats: Dict[str, CycleStats] = {
            "arbitrage": CycleStats(),
            "dca": CycleStats(),
            "trailing_stop": CycleStats(),
        }

    @property
    def is_running(self) -> bool:
        return self._running

    # ============================================================
    # CYCLES
    # ============================================================

    async def run_arbitrage_cycle(self) -> List[ScanReport]:
        reports = []
        found = 0
        for symbol in self.symbols:
            report = ScanReport(symbol=symbol)
            try:
                opportunities = await self.detector.detect(symbol)
            except TradingException as e:
                logger.warning("Arbitrage scan for %s failed: %s", symbol, e)
                report.error = str(e)
                reports.append(report)
                continue

            report.opportunities = len(opportunities)
            found += len(opportunities)
            if opportunities and self.config.arbitrage_auto_execute:
                try:
                    best = opportunities[0]
                    trade = await self.guard.execute(best, self.guard.budget_quantity(best))
                    report.executed_trade_id = trade.id
                except ArbitrageGuardError as e:
                    logger.info("Auto-execute for %s skipped: %s", symbol, e)
                    report.error = str(e)
                except TradingException as e:
                    logger.error("Auto-execute for %s failed: %s", symbol, e)
                    report.error = str(e)
            reports.append(report)

        self.guard.note_scan(found)
        return reports

    async def run_dca_cycle(self) -> int:
        results = await self.dca_engine.run_due_positions()
        executed = sum(1 for result in results if result.executed)
        if executed:
            logger.info("DCA tick executed %d order(s)", executed)
        return executed

    async def run_trailing_stop_cycle(self) -> List[TrailingCheckResult]:
        if self.tracker is None:
            return []
        results = await self.tracker.check_trailing_stops()
        closed = sum(1 for result in results if result.action is TrailingAction.CLOSE and result.error is None)
        if closed:
            logger.info("Trailing stop tick closed %d position(s)", closed)
        return results

    # ============================================================
    # LOOPS
    # ============================================================

    async def _loop(self, name: str, interval: float, cycle: Callable[[], Awaitable[object]]) -> None:
        logger.info("Starting %s loop | interval=%ss", name, interval)
        stats = self._stats[name]
        while self._running:
            try:
                await cycle()
            except Exception as e:
                stats.failures += 1
                stats.last_error = str(e)
                logger.error("%s cycle error: %s", name, e, exc_info=True)
            stats.runs += 1
            stats.last_run_at = self._clock.now().isoformat()
            await asyncio.sleep(interval)

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        if self.config.arbitrage_scan_enabled and self.symbols:
            self._tasks.append(asyncio.create_task(
                self._loop("arbitrage", self.config.arbitrage_scan_interval_seconds, self.run_arbitrage_cycle)
            ))
        if self.config.dca_enabled:
            self._tasks.append(asyncio.create_task(
                self._loop("dca", self.config.dca_interval_seconds, self.run_dca_cycle)
            ))
        if self.config.trailing_stop_enabled and self.tracker is not None:
            self._tasks.append(asyncio.create_task(
                self._loop("trailing_stop", self.config.trailing_stop_interval_seconds, self.run_trailing_stop_cycle)
            ))

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Scheduler stopped")

    def get_status(self) -> SchedulerStatus:
        return SchedulerStatus(running=self._running, loops=dict(self._stats))
