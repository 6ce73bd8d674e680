"""
Orchestrator - Configuration.

============================================================
RESPONSIBILITY
============================================================
Aggregates every package configuration into one object built
from the environment (after ``load_dotenv()``).

- Exchange credentials (ExchangeConfigManager)
- Arbitrage protection limits
- DCA engine parameters
- Signal parser defaults and risk thresholds
- Trailing stop limits
- Database URL
- Logging and scheduler settings

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from dotenv import load_dotenv

from arbitrage.config import ArbitrageProtectionConfig
from core.exceptions import ConfigurationError
from dca.config import DCAConfig
from exchanges.config import ExchangeConfigManager
from positions.config import TrailingStopConfig
from signals.config import RiskControlConfig, SignalParserConfig
from storage.database import DatabaseConfig


@dataclass
class SchedulerConfig:
    """Background loops."""

    arbitrage_scan_enabled: bool = True
    arbitrage_scan_interval_seconds: float = 30.0
    arbitrage_auto_execute: bool = False
    """Execute the best opportunity of each scan through the guard."""

    dca_enabled: bool = True
    dca_interval_seconds: float = 1800.0                # One 30m candle

    trailing_stop_enabled: bool = True
    trailing_stop_interval_seconds: float = 60.0

    def validate(self) -> List[str]:
        errors = []
        if self.arbitrage_scan_interval_seconds <= 0:
            errors.append("arbitrage_scan_interval_seconds must be positive")
        if self.dca_interval_seconds <= 0:
            errors.append("dca_interval_seconds must be positive")
        if self.trailing_stop_interval_seconds <= 0:
            errors.append("trailing_stop_interval_seconds must be positive")
        return errors


@dataclass
class CoreConfig:
    """Everything TradingCore needs to wire itself."""

    exchanges: Optional[ExchangeConfigManager] = None
    arbitrage: ArbitrageProtectionConfig = field(default_factory=ArbitrageProtectionConfig)
    dca: DCAConfig = field(default_factory=DCAConfig)
    risk: RiskControlConfig = field(default_factory=RiskControlConfig)
    parser: SignalParserConfig = field(default_factory=SignalParserConfig)
    positions: TrailingStopConfig = field(default_factory=TrailingStopConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)

    log_level: str = "INFO"
    log_format: str = "json"
    price_timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CoreConfig":
        """Load configuration from environment variables."""
        if environ is None:
            load_dotenv()
            env: Mapping[str, str] = os.environ
        else:
            env = environ

        try:
            scheduler = SchedulerConfig(
                arbitrage_scan_enabled=env.get("ARBITRAGE_SCAN_ENABLED", "true").lower() == "true",
                arbitrage_scan_interval_seconds=float(env.get("ARBITRAGE_SCAN_INTERVAL_SECONDS", "30")),
                arbitrage_auto_execute=env.get("ARBITRAGE_AUTO_EXECUTE", "false").lower() == "true",
                dca_enabled=env.get("DCA_ENABLED", "true").lower() == "true",
                dca_interval_seconds=float(env.get("DCA_INTERVAL_SECONDS", "1800")),
                trailing_stop_enabled=env.get("TRAILING_STOP_ENABLED", "true").lower() == "true",
                trailing_stop_interval_seconds=float(env.get("TRAILING_STOP_INTERVAL_SECONDS", "60")),
            )
            price_timeout = float(env.get("PRICE_TIMEOUT_SECONDS", "10"))
        except ValueError as e:
            raise ConfigurationError(f"Invalid scheduler setting: {e}", cause=e) from e

        config = cls(
            exchanges=ExchangeConfigManager(environ=env, use_dotenv=False),
            arbitrage=ArbitrageProtectionConfig.from_env(env),
            risk=RiskControlConfig.from_env(env),
            parser=SignalParserConfig.from_env(env),
            positions=TrailingStopConfig.from_env(env),
            database=DatabaseConfig.from_env(env),
            scheduler=scheduler,
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_format=env.get("LOG_FORMAT", "json"),
            price_timeout_seconds=price_timeout,
        )
        errors = config.validate()
        if errors:
            raise ConfigurationError("; ".join(errors))
        return config

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = self.scheduler.validate()
        if self.log_format not in ("json", "text"):
            errors.append(f"log_format must be json or text, got {self.log_format!r}")
        if self.price_timeout_seconds <= 0:
            errors.append("price_timeout_seconds must be positive")
        return errors
