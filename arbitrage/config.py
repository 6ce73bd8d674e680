"""
Arbitrage - Configuration.

============================================================
PURPOSE
============================================================
Thresholds for opportunity detection and the executor gates.

All values can be overridden from the environment with
``ArbitrageProtectionConfig.from_env()``.

============================================================
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Mapping, Optional

from core.exceptions import ConfigurationError

from .models import RiskLevel


@dataclass(frozen=True)
class RiskBand:
    """Ceiling for one risk tier."""

    max_amount: Decimal
    """Highest estimated profit (quote units) allowed in this tier."""

    max_spread: Decimal
    """Highest spread percent allowed in this tier."""


def default_risk_bands() -> Dict[RiskLevel, RiskBand]:
    return {
        RiskLevel.LOW: RiskBand(max_amount=Decimal("50"), max_spread=Decimal("0.5")),
        RiskLevel.MEDIUM: RiskBand(max_amount=Decimal("100"), max_spread=Decimal("1.0")),
        RiskLevel.HIGH: RiskBand(max_amount=Decimal("200"), max_spread=Decimal("2.0")),
    }


@dataclass
class ArbitrageProtectionConfig:
    """Arbitrage detection and execution limits."""

    min_spread_percent: Decimal = Decimal("0.1")
    """Smallest spread percent worth reporting (inclusive)."""

    max_spread_percent: Decimal = Decimal("5.0")
    """Largest believable spread percent (inclusive). Above it the quote is treated as bad."""

    min_profit_amount: Decimal = Decimal("1.0")
    """Smallest estimated profit worth reporting."""

    max_order_amount: Decimal = Decimal("100")
    """Quote-sized trade used for profit estimation and auto-execute sizing."""

    max_concurrent_orders: int = 3
    """In-flight arbitrage trades allowed at once."""

    cooldown_seconds: float = 5.0
    """Minimum time between two trades on the same symbol."""

    risk_bands: Dict[RiskLevel, RiskBand] = field(default_factory=default_risk_bands)

    symbols: List[str] = field(default_factory=lambda: ["BTCUSDT", "ETHUSDT", "SOLUSDT"])
    """Symbols scanned by the scheduler."""

    def validate(self) -> None:
        if self.min_spread_percent < 0:
            raise ConfigurationError("min_spread_percent must be >= 0", config_key="min_spread_percent")
        if self.max_spread_percent < self.min_spread_percent:
            raise ConfigurationError(
                "max_spread_percent must be >= min_spread_percent", config_key="max_spread_percent"
            )
        if self.max_concurrent_orders < 1:
            raise ConfigurationError("max_concurrent_orders must be >= 1", config_key="max_concurrent_orders")
        if self.cooldown_seconds < 0:
            raise ConfigurationError("cooldown_seconds must be >= 0", config_key="cooldown_seconds")
        missing = {RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH} - set(self.risk_bands)
        if missing:
            raise ConfigurationError(
                f"risk_bands missing tiers: {sorted(level.value for level in missing)}", config_key="risk_bands"
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ArbitrageProtectionConfig":
        env = os.environ if environ is None else environ
        config = cls()
        try:
            _apply_env(config, env)
        except (ArithmeticError, ValueError) as e:
            raise ConfigurationError(f"Invalid arbitrage setting: {e}", cause=e) from e
        config.validate()
        return config


def _apply_env(config: ArbitrageProtectionConfig, env: Mapping[str, str]) -> None:
    if env.get("ARBITRAGE_MIN_SPREAD_PERCENT"):
        config.min_spread_percent = Decimal(env["ARBITRAGE_MIN_SPREAD_PERCENT"])
    if env.get("ARBITRAGE_MAX_SPREAD_PERCENT"):
        config.max_spread_percent = Decimal(env["ARBITRAGE_MAX_SPREAD_PERCENT"])
    if env.get("ARBITRAGE_MAX_ORDER_AMOUNT"):
        config.max_order_amount = Decimal(env["ARBITRAGE_MAX_ORDER_AMOUNT"])
    if env.get("ARBITRAGE_MAX_CONCURRENT_ORDERS"):
        config.max_concurrent_orders = int(env["ARBITRAGE_MAX_CONCURRENT_ORDERS"])
    if env.get("ARBITRAGE_COOLDOWN_SECONDS"):
        config.cooldown_seconds = float(env["ARBITRAGE_COOLDOWN_SECONDS"])
    if env.get("ARBITRAGE_SYMBOLS"):
        config.symbols = [s.strip().upper() for s in env["ARBITRAGE_SYMBOLS"].split(",") if s.strip()]
