"""
Signals Package.

Inbound signal handling: parse -> risk check -> execute -> record.

Components:
- schemas: Pydantic models for raw payloads and alert text
- config: Parser defaults and risk thresholds
- models: TradeSignal, RiskCheckResult, ExecutionResult, SignalRecord
- parser: Raw payload -> TradeSignal
- risk_controller: Accumulating risk rules
- executor: Main, stop-loss and take-profit legs
- pipeline: End-to-end processing and audit records
"""

from .config import RiskControlConfig, SignalParserConfig, TradingHours
from .models import (
    ExecutionResult,
    RiskCategory,
    RiskCheck,
    RiskCheckResult,
    SignalAction,
    SignalRecord,
    SignalStatistics,
    SignalStatus,
    TradeSignal,
)
from .schemas import ALERT_PATTERN, AlertTextSignal, RawSignalPayload
from .parser import SignalParser, normalize_symbol, parse_alert_text
from .risk_controller import RECOMMENDATIONS, RiskController
from .executor import SignalExecutor
from .pipeline import SignalPipeline, SignalProcessingResult

__all__ = [
    "RiskControlConfig",
    "SignalParserConfig",
    "TradingHours",
    "ExecutionResult",
    "RiskCategory",
    "RiskCheck",
    "RiskCheckResult",
    "SignalAction",
    "SignalRecord",
    "SignalStatistics",
    "SignalStatus",
    "TradeSignal",
    "ALERT_PATTERN",
    "AlertTextSignal",
    "RawSignalPayload",
    "SignalParser",
    "normalize_symbol",
    "parse_alert_text",
    "RECOMMENDATIONS",
    "RiskController",
    "SignalExecutor",
    "SignalPipeline",
    "SignalProcessingResult",
]
