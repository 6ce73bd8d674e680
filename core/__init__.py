"""
Core Module Package.

Shared infrastructure every engine package depends on.

Components:
- clock: Unified time abstraction
- exceptions: Error taxonomy
"""

from core.clock import ClockProtocol, MockClock, SystemClock, get_clock, set_clock
from core.exceptions import (
    ArbitrageDisabled,
    ArbitrageExecutionError,
    ArbitrageGuardError,
    ConcurrencyLimitExceeded,
    ConfigurationError,
    CooldownActive,
    DCAError,
    ExchangeError,
    ExchangeRejected,
    ExchangeUnavailable,
    HighRiskBlocked,
    PartialExecutionWarning,
    PositionError,
    RiskRejected,
    Severity,
    SignalExecutionError,
    TradingException,
    ValidationError,
)

__all__ = [
    "ClockProtocol",
    "MockClock",
    "SystemClock",
    "get_clock",
    "set_clock",
    "ArbitrageDisabled",
    "ArbitrageExecutionError",
    "ArbitrageGuardError",
    "ConcurrencyLimitExceeded",
    "ConfigurationError",
    "CooldownActive",
    "DCAError",
    "ExchangeError",
    "ExchangeRejected",
    "ExchangeUnavailable",
    "HighRiskBlocked",
    "PartialExecutionWarning",
    "PositionError",
    "RiskRejected",
    "Severity",
    "SignalExecutionError",
    "TradingException",
    "ValidationError",
]
