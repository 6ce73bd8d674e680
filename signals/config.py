"""
Signals - Configuration.

============================================================
PURPOSE
============================================================
Parser defaults and risk-control thresholds for inbound
trading signals.

RISK RULES (all evaluated, none short-circuit):
- Daily realized loss floor
- Position size as a fraction of quote free balance
- Minimum confidence
- Maximum leverage
- Trading hours window (optional, disabled by default)
- Signals per symbol per trailing hour
- Balance covers the order notional

============================================================
"""

import os
from dataclasses import dataclass, field
from datetime import time
from decimal import Decimal
from typing import Mapping, Optional

from core.exceptions import ConfigurationError


def _parse_clock(value: str, key: str) -> time:
    try:
        hour, minute = value.split(":")
        return time(int(hour), int(minute))
    except ValueError as e:
        raise ConfigurationError(f"{key} must be HH:MM, got {value!r}", config_key=key, cause=e) from e


@dataclass(frozen=True)
class TradingHours:
    """Daily trading window. ``end`` before ``start`` wraps over midnight."""

    enabled: bool = False
    start: str = "09:00"
    end: str = "17:00"
    timezone: str = "UTC"

    @property
    def start_time(self) -> time:
        return _parse_clock(self.start, "trading_hours.start")

    @property
    def end_time(self) -> time:
        return _parse_clock(self.end, "trading_hours.end")

    def contains(self, moment: time) -> bool:
        start, end = self.start_time, self.end_time
        if start < end:
            return start <= moment < end
        return moment >= start or moment < end


@dataclass(frozen=True)
class RiskControlConfig:
    """Thresholds of the signal risk controller."""

    daily_loss_limit: Decimal = Decimal("1000")         # Quote units
    max_position_size: Decimal = Decimal("0.1")         # Fraction of quote free balance
    min_confidence: float = 70.0
    max_leverage: float = 5.0
    max_signals_per_hour: int = 3                       # Per symbol
    quote_asset: str = "USDT"
    trading_hours: TradingHours = field(default_factory=TradingHours)

    def validate(self) -> None:
        if self.daily_loss_limit < 0:
            raise ConfigurationError("daily_loss_limit must be >= 0", config_key="daily_loss_limit")
        if not 0 < self.max_position_size <= 1:
            raise ConfigurationError("max_position_size must be in (0, 1]", config_key="max_position_size")
        if not 0 <= self.min_confidence <= 100:
            raise ConfigurationError("min_confidence must be in [0, 100]", config_key="min_confidence")
        if self.max_signals_per_hour < 1:
            raise ConfigurationError("max_signals_per_hour must be >= 1", config_key="max_signals_per_hour")
        # Raises on malformed HH:MM
        self.trading_hours.start_time
        self.trading_hours.end_time

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RiskControlConfig":
        env = os.environ if environ is None else environ
        defaults = cls()
        hours = TradingHours(
            enabled=env.get("RISK_TRADING_HOURS_ENABLED", "false").lower() == "true",
            start=env.get("RISK_TRADING_HOURS_START", defaults.trading_hours.start),
            end=env.get("RISK_TRADING_HOURS_END", defaults.trading_hours.end),
            timezone=env.get("RISK_TRADING_HOURS_TIMEZONE", defaults.trading_hours.timezone),
        )
        try:
            config = cls(
                daily_loss_limit=Decimal(env.get("RISK_DAILY_LOSS_LIMIT", str(defaults.daily_loss_limit))),
                max_position_size=Decimal(env.get("RISK_MAX_POSITION_SIZE", str(defaults.max_position_size))),
                min_confidence=float(env.get("RISK_MIN_CONFIDENCE", defaults.min_confidence)),
                max_leverage=float(env.get("RISK_MAX_LEVERAGE", defaults.max_leverage)),
                max_signals_per_hour=int(env.get("RISK_MAX_SIGNALS_PER_HOUR", defaults.max_signals_per_hour)),
                trading_hours=hours,
            )
        except (ArithmeticError, ValueError) as e:
            raise ConfigurationError(f"Invalid risk setting: {e}", cause=e) from e
        config.validate()
        return config


@dataclass(frozen=True)
class SignalParserConfig:
    """Defaults applied to fields a raw signal leaves out."""

    default_exchange: Optional[str] = None
    default_quantity: Decimal = Decimal("10")
    default_confidence: float = 80.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SignalParserConfig":
        env = os.environ if environ is None else environ
        return cls(
            default_exchange=env.get("SIGNAL_DEFAULT_EXCHANGE") or None,
            default_quantity=Decimal(env.get("SIGNAL_DEFAULT_QUANTITY", "10")),
        )
