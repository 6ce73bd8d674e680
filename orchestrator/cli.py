"""
Orchestrator - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface over TradingCore.

- prices / spread / opportunities: multi-venue price views
- health: venue checks and database reachability
- multiplier: live DCA sizing multiplier with breakdown
- signal: run one raw signal through the pipeline
- run: background scheduler until SIGINT / SIGTERM

``--dry-run`` replaces every venue with in-memory mock adapters
and the database with the in-memory repository.

============================================================
USAGE
============================================================
python -m orchestrator.cli prices SOLUSDT
python -m orchestrator.cli --dry-run opportunities SOLUSDT
python -m orchestrator.cli signal 'BUY SOLUSDT @ 150 SL: 145 TP: 160'
python -m orchestrator.cli run --auto-execute

============================================================
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from dataclasses import asdict, is_dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from core.exceptions import TradingException
from exchanges.manager import ExchangeManager
from exchanges.mock import MockConfig, MockExchangeAdapter
from storage.memory import InMemoryTradingRepository

from .config import CoreConfig
from .core import TradingCore, setup_logging


logger = logging.getLogger(__name__)

# Dry-run venues quote the same symbol with a small offset so spreads exist.
DRY_RUN_VENUES = (("binance", Decimal("1.000")), ("okx", Decimal("1.004")), ("bybit", Decimal("0.998")))
DRY_RUN_PRICES = {"BTCUSDT": Decimal("65000"), "ETHUSDT": Decimal("3200"), "SOLUSDT": Decimal("150")}


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="trading-engine",
        description="Multi-exchange trading decision engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s prices SOLUSDT
  %(prog)s --dry-run spread SOLUSDT
  %(prog)s multiplier BTCUSDT --exchange binance
  %(prog)s signal '{"symbol": "SOLUSDT", "action": "BUY", "quantity": 1}'
        """,
    )

    parser.add_argument("--dry-run", action="store_true", help="Use mock venues and in-memory storage")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Logging level (default: LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "text"],
        default=None,
        help="Logging format (default: LOG_FORMAT or json)",
    )
    parser.add_argument("--version", "-v", action="version", version="%(prog)s 1.0.0")

    commands = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("prices", "Best price and every venue quote"),
        ("spread", "Sorted venue quotes with spread"),
        ("opportunities", "Arbitrage opportunities"),
    ):
        sub = commands.add_parser(name, help=help_text)
        sub.add_argument("symbol")

    commands.add_parser("health", help="Check venues and database")

    multiplier = commands.add_parser("multiplier", help="DCA sizing multiplier from live candles")
    multiplier.add_argument("symbol")
    multiplier.add_argument("--exchange", default=None)

    signal_cmd = commands.add_parser("signal", help="Process one raw signal (JSON object or alert text)")
    signal_cmd.add_argument("payload")

    run = commands.add_parser("run", help="Run the background scheduler")
    run.add_argument("--auto-execute", action="store_true", help="Execute the best arbitrage opportunity per scan")
    run.add_argument("--symbols", default=None, help="Comma-separated symbols to scan")

    return parser


# ============================================================
# OUTPUT
# ============================================================

def _jsonable(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    return str(value)


def emit(payload: Any) -> None:
    print(json.dumps(payload, default=_jsonable, indent=2))


def parse_payload(text: str) -> Any:
    """JSON object payloads become dicts; anything else is alert text."""
    stripped = text.strip()
    if stripped.startswith("{"):
        return json.loads(stripped)
    return stripped


# ============================================================
# CORE CONSTRUCTION
# ============================================================

def build_dry_run_manager(config: CoreConfig) -> ExchangeManager:
    manager = ExchangeManager(price_timeout=config.price_timeout_seconds)
    for name, factor in DRY_RUN_VENUES:
        prices = {symbol: price * factor for symbol, price in DRY_RUN_PRICES.items()}
        manager.register(MockExchangeAdapter(MockConfig(name=name, prices=prices)))
    return manager


def build_core(args: argparse.Namespace, config: Optional[CoreConfig] = None) -> TradingCore:
    config = config or CoreConfig.from_env()
    if getattr(args, "auto_execute", False):
        config.scheduler.arbitrage_auto_execute = True
    if getattr(args, "symbols", None):
        config.arbitrage.symbols = [s.strip().upper() for s in args.symbols.split(",") if s.strip()]
    if args.dry_run:
        return TradingCore(config, manager=build_dry_run_manager(config), repository=InMemoryTradingRepository())
    return TradingCore(config)


# ============================================================
# COMMANDS
# ============================================================

async def run_until_signalled(core: TradingCore) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    if sys.platform != "win32":
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)
    await core.start(run_scheduler=True)
    logger.info("Scheduler running (press Ctrl+C to stop)...")
    try:
        await stop_event.wait()
    finally:
        if sys.platform != "win32":
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)


async def dispatch(core: TradingCore, args: argparse.Namespace) -> int:
    command = args.command

    if command == "run":
        await run_until_signalled(core)
        return 0

    await core.start()
    if command == "prices":
        emit(await core.manager.best_price(args.symbol))
    elif command == "spread":
        emit(await core.manager.price_spread(args.symbol))
    elif command == "opportunities":
        emit([opp.to_dict() for opp in await core.get_arbitrage_opportunities(args.symbol)])
    elif command == "health":
        health = await core.health_check()
        emit(health)
        return 0 if health["healthy"] else 1
    elif command == "multiplier":
        result = await core.market_multiplier(args.symbol, args.exchange)
        print(result.explanation())
    elif command == "signal":
        result = await core.process_signal(parse_payload(args.payload))
        emit(result.to_dict())
        return 0 if result.approved else 2
    return 0


async def async_main(args: argparse.Namespace, config: Optional[CoreConfig] = None) -> int:
    core = build_core(args, config)
    try:
        return await dispatch(core, args)
    except TradingException as e:
        emit({"error": e.to_dict()})
        return 1
    except json.JSONDecodeError as e:
        print(f"Error: invalid JSON payload: {e}", file=sys.stderr)
        return 1
    finally:
        await core.stop()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    config = CoreConfig.from_env()
    setup_logging(args.log_level or config.log_level, args.log_format or config.log_format)

    try:
        return asyncio.run(async_main(args, config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


# ============================================================
# MODULE EXECUTION
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
