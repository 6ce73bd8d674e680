"""
Arbitrage Package.

Cross-venue spread detection and guarded two-legged execution.

Components:
- config: Detection thresholds, risk bands, executor limits
- models: Opportunity, trade, status value objects
- detector: Spread -> opportunities
- guard: Gated executor, trade ledger, emergency stop
"""

from .config import ArbitrageProtectionConfig, RiskBand
from .detector import ArbitrageDetector, classify_risk
from .guard import ArbitrageGuard
from .models import (
    ArbitrageOpportunity,
    ArbitrageStats,
    ArbitrageStatus,
    ArbitrageTrade,
    ArbitrageTradeStatus,
    RiskAssessment,
    RiskLevel,
)

__all__ = [
    "ArbitrageProtectionConfig",
    "RiskBand",
    "ArbitrageDetector",
    "classify_risk",
    "ArbitrageGuard",
    "ArbitrageOpportunity",
    "ArbitrageStats",
    "ArbitrageStatus",
    "ArbitrageTrade",
    "ArbitrageTradeStatus",
    "RiskAssessment",
    "RiskLevel",
]
