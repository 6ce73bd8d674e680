"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines the error taxonomy shared by every engine component.

- Callers branch on exception type, never on message text
- Every exception carries severity and debugging context
- Nothing in an exception ever holds credential material

============================================================
EXCEPTION HIERARCHY
============================================================
TradingException (base)
├── ConfigurationError
├── ValidationError
├── ExchangeError
│   ├── ExchangeUnavailable      (network / HTTP, retryable)
│   └── ExchangeRejected         (venue business error)
├── RiskRejected
├── ArbitrageGuardError
│   ├── ArbitrageDisabled
│   ├── CooldownActive
│   ├── ConcurrencyLimitExceeded
│   └── HighRiskBlocked
├── ArbitrageExecutionError
├── SignalExecutionError
├── DCAError
├── PositionError
└── PartialExecutionWarning      (returned, never raised)

============================================================
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for alerting."""

    LOW = "low"
    """Minor issue, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, may impact operations."""

    CRITICAL = "critical"
    """Critical issue, requires immediate action."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class TradingException(Exception):
    """
    Base exception for all engine errors.

    All exceptions carry:
    - severity: for alerting
    - context: for debugging
    - timestamp: when the error occurred (UTC)
    """

    default_severity: Severity = Severity.MEDIUM
    retryable: bool = False

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause is not None:
            self.context["cause_type"] = type(cause).__name__

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/storage."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


# ============================================================
# CONFIGURATION / VALIDATION
# ============================================================

class ConfigurationError(TradingException):
    """Invalid or inconsistent configuration."""

    default_severity = Severity.HIGH

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if config_key:
            context["config_key"] = config_key
        super().__init__(message, context=context, **kwargs)


class ValidationError(TradingException):
    """Malformed signal or order request. Caller bug, never retried."""

    default_severity = Severity.LOW

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if field:
            context["field"] = field
        self.field = field
        super().__init__(message, context=context, **kwargs)


# ============================================================
# EXCHANGE ERRORS
# ============================================================

class ExchangeError(TradingException):
    """
    Any failure talking to a venue.

    Network failures and venue business errors share this shape so
    that callers can branch on the subclass alone.
    """

    default_severity = Severity.HIGH

    def __init__(
        self,
        venue: str,
        message: str,
        venue_code: Optional[str] = None,
        http_status: Optional[int] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        context["venue"] = venue
        if venue_code is not None:
            context["venue_code"] = venue_code
        if http_status is not None:
            context["http_status"] = http_status

        self.venue = venue
        self.venue_code = venue_code
        self.http_status = http_status
        super().__init__(message, context=context, **kwargs)

    def describe(self) -> str:
        """User-facing text: venue, raw venue message and UTC timestamp."""
        code = f" (code {self.venue_code})" if self.venue_code else ""
        return f"[{self.venue}] {self.message}{code} at {self.timestamp.isoformat()}"

    def __str__(self) -> str:
        return self.describe()


class ExchangeUnavailable(ExchangeError):
    """Network, timeout, rate limit or 5xx failure. Safe to retry reads."""

    retryable = True


class ExchangeRejected(ExchangeError):
    """The venue understood the request and refused it."""

    retryable = False


# ============================================================
# RISK / GUARD ERRORS
# ============================================================

class RiskRejected(TradingException):
    """
    One or more risk rules failed.

    This is an expected outcome. It lists every violated rule and the
    matching remediation hints.
    """

    default_severity = Severity.LOW

    def __init__(
        self,
        reasons: List[str],
        recommendations: Optional[List[str]] = None,
        risk_score: int = 0,
        **kwargs,
    ):
        self.reasons = list(reasons)
        self.recommendations = list(recommendations or [])
        self.risk_score = risk_score
        context = kwargs.pop("context", {})
        context["reasons"] = self.reasons
        context["risk_score"] = risk_score
        super().__init__("Risk check failed: " + "; ".join(self.reasons), context=context, **kwargs)


class ArbitrageGuardError(TradingException):
    """Base for executor gate rejections. No venue call was made."""

    default_severity = Severity.LOW


class ArbitrageDisabled(ArbitrageGuardError):
    """The arbitrage system is disabled (emergency stop)."""


class CooldownActive(ArbitrageGuardError):
    """A trade on this symbol happened inside the cooldown window."""

    def __init__(self, symbol: str, remaining_seconds: float):
        self.symbol = symbol
        self.remaining_seconds = remaining_seconds
        super().__init__(
            f"Cooldown active for {symbol}: {remaining_seconds:.1f}s remaining",
            context={"symbol": symbol, "remaining_seconds": remaining_seconds},
        )


class ConcurrencyLimitExceeded(ArbitrageGuardError):
    """All concurrent arbitrage slots are taken."""

    def __init__(self, active: int, limit: int):
        self.active = active
        self.limit = limit
        super().__init__(
            f"Concurrent arbitrage limit reached ({active}/{limit})",
            context={"active": active, "limit": limit},
        )


class HighRiskBlocked(ArbitrageGuardError):
    """HIGH-tier opportunity while the aggregate system risk is HIGH."""


# ============================================================
# EXECUTION ERRORS
# ============================================================

class ArbitrageExecutionError(TradingException):
    """A leg of an arbitrage trade failed. Carries the FAILED trade."""

    default_severity = Severity.HIGH

    def __init__(self, message: str, trade: Any, **kwargs):
        self.trade = trade
        super().__init__(message, **kwargs)


class SignalExecutionError(TradingException):
    """The main order of a signal failed. Carries the FAILED record."""

    default_severity = Severity.HIGH

    def __init__(self, message: str, record: Any, **kwargs):
        self.record = record
        super().__init__(message, **kwargs)


class DCAError(TradingException):
    """Invalid DCA settings or unknown DCA position."""

    def __init__(self, message: str, symbol: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if symbol:
            context["symbol"] = symbol
        self.symbol = symbol
        super().__init__(message, context=context, **kwargs)


class PositionError(TradingException):
    """Unknown, closed or misconfigured tracked position."""

    def __init__(self, message: str, position_id: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if position_id:
            context["position_id"] = position_id
        self.position_id = position_id
        super().__init__(message, context=context, **kwargs)


# ============================================================
# WARNINGS
# ============================================================

class PartialExecutionWarning(TradingException):
    """
    Main order succeeded but a protective order failed.

    Returned alongside a successful result. Never raised.
    """

    default_severity = Severity.MEDIUM

    def __init__(self, leg: str, error: ExchangeError):
        self.leg = leg
        self.error = error
        super().__init__(
            f"{leg} order failed: {error.describe()}",
            context={"leg": leg, "venue": error.venue},
            cause=error,
        )
