"""
Orchestrator Package.

Wires every engine component behind one facade and drives the
background loops.

Components:
- config: CoreConfig aggregated from the environment
- core: TradingCore facade and logging setup
- scheduler: Arbitrage scan, DCA tick and trailing stop loops
- cli: argparse command-line interface
"""

from .config import CoreConfig, SchedulerConfig
from .scheduler import CycleStats, ScanReport, Scheduler, SchedulerStatus
from .core import TradingCore, setup_logging

__all__ = [
    "CoreConfig",
    "SchedulerConfig",
    "CycleStats",
    "ScanReport",
    "Scheduler",
    "SchedulerStatus",
    "TradingCore",
    "setup_logging",
]
