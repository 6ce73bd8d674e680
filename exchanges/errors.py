"""
Exchanges - Error Mapping.

============================================================
PURPOSE
============================================================
Translate venue error bodies and transport failures into the
engine's two exchange error kinds:

- ExchangeUnavailable: network, timeout, rate limit, venue 5xx
- ExchangeRejected:    everything the venue refused on purpose

Each venue has a code table mapping its native codes to an
ErrorCategory. The category decides the kind.

============================================================
"""

import asyncio
import logging
from enum import Enum
from typing import Dict, Optional, Union

import aiohttp

from core.exceptions import ExchangeError, ExchangeRejected, ExchangeUnavailable

logger = logging.getLogger(__name__)


# ============================================================
# ERROR TAXONOMY
# ============================================================

class ErrorCategory(Enum):
    """Normalized venue error categories."""

    NETWORK = "NETWORK"
    TIMEOUT = "TIMEOUT"
    RATE_LIMIT = "RATE_LIMIT"
    EXCHANGE_ERROR = "EXCHANGE_ERROR"
    AUTHENTICATION = "AUTHENTICATION"
    INVALID_ORDER = "INVALID_ORDER"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    SYMBOL_NOT_FOUND = "SYMBOL_NOT_FOUND"
    MIN_NOTIONAL = "MIN_NOTIONAL"
    UNKNOWN = "UNKNOWN"


TRANSIENT_CATEGORIES = frozenset({
    ErrorCategory.NETWORK,
    ErrorCategory.TIMEOUT,
    ErrorCategory.RATE_LIMIT,
    ErrorCategory.EXCHANGE_ERROR,
})


# ============================================================
# VENUE CODE TABLES
# ============================================================

BINANCE_ERROR_MAP: Dict[str, ErrorCategory] = {
    "-1000": ErrorCategory.EXCHANGE_ERROR,
    "-1001": ErrorCategory.EXCHANGE_ERROR,
    "-1003": ErrorCategory.RATE_LIMIT,
    "-1007": ErrorCategory.TIMEOUT,
    "-1015": ErrorCategory.RATE_LIMIT,
    "-1002": ErrorCategory.AUTHENTICATION,
    "-1022": ErrorCategory.AUTHENTICATION,
    "-2014": ErrorCategory.AUTHENTICATION,
    "-2015": ErrorCategory.AUTHENTICATION,
    "-1013": ErrorCategory.INVALID_ORDER,
    "-1100": ErrorCategory.INVALID_ORDER,
    "-1102": ErrorCategory.INVALID_ORDER,
    "-1111": ErrorCategory.INVALID_ORDER,
    "-1121": ErrorCategory.SYMBOL_NOT_FOUND,
    "-2010": ErrorCategory.INSUFFICIENT_FUNDS,
    "-2011": ErrorCategory.ORDER_NOT_FOUND,
    "-2013": ErrorCategory.ORDER_NOT_FOUND,
}

OKX_ERROR_MAP: Dict[str, ErrorCategory] = {
    "50001": ErrorCategory.EXCHANGE_ERROR,
    "50004": ErrorCategory.TIMEOUT,
    "50011": ErrorCategory.RATE_LIMIT,
    "50013": ErrorCategory.EXCHANGE_ERROR,
    "50101": ErrorCategory.AUTHENTICATION,
    "50102": ErrorCategory.AUTHENTICATION,
    "50103": ErrorCategory.AUTHENTICATION,
    "50105": ErrorCategory.AUTHENTICATION,
    "50111": ErrorCategory.AUTHENTICATION,
    "51000": ErrorCategory.INVALID_ORDER,
    "51001": ErrorCategory.SYMBOL_NOT_FOUND,
    "51008": ErrorCategory.INSUFFICIENT_FUNDS,
    "51020": ErrorCategory.MIN_NOTIONAL,
    "51603": ErrorCategory.ORDER_NOT_FOUND,
}

BYBIT_ERROR_MAP: Dict[str, ErrorCategory] = {
    "10000": ErrorCategory.EXCHANGE_ERROR,
    "10002": ErrorCategory.TIMEOUT,
    "10003": ErrorCategory.AUTHENTICATION,
    "10004": ErrorCategory.AUTHENTICATION,
    "10006": ErrorCategory.RATE_LIMIT,
    "10016": ErrorCategory.EXCHANGE_ERROR,
    "10001": ErrorCategory.INVALID_ORDER,
    "170121": ErrorCategory.SYMBOL_NOT_FOUND,
    "170131": ErrorCategory.INSUFFICIENT_FUNDS,
    "170136": ErrorCategory.MIN_NOTIONAL,
    "170213": ErrorCategory.ORDER_NOT_FOUND,
}

GATE_ERROR_MAP: Dict[str, ErrorCategory] = {
    "TOO_MANY_REQUESTS": ErrorCategory.RATE_LIMIT,
    "SERVER_ERROR": ErrorCategory.EXCHANGE_ERROR,
    "INVALID_KEY": ErrorCategory.AUTHENTICATION,
    "INVALID_SIGNATURE": ErrorCategory.AUTHENTICATION,
    "FORBIDDEN": ErrorCategory.AUTHENTICATION,
    "INVALID_CURRENCY_PAIR": ErrorCategory.SYMBOL_NOT_FOUND,
    "INVALID_PARAM_VALUE": ErrorCategory.INVALID_ORDER,
    "BALANCE_NOT_ENOUGH": ErrorCategory.INSUFFICIENT_FUNDS,
    "ORDER_NOT_FOUND": ErrorCategory.ORDER_NOT_FOUND,
    "INVALID_AMOUNT": ErrorCategory.MIN_NOTIONAL,
}

BITGET_ERROR_MAP: Dict[str, ErrorCategory] = {
    "40001": ErrorCategory.AUTHENTICATION,
    "40006": ErrorCategory.AUTHENTICATION,
    "40009": ErrorCategory.AUTHENTICATION,
    "40010": ErrorCategory.TIMEOUT,
    "429": ErrorCategory.RATE_LIMIT,
    "40034": ErrorCategory.SYMBOL_NOT_FOUND,
    "43012": ErrorCategory.INSUFFICIENT_FUNDS,
    "43001": ErrorCategory.ORDER_NOT_FOUND,
    "45110": ErrorCategory.MIN_NOTIONAL,
    "40808": ErrorCategory.INVALID_ORDER,
}

VENUE_ERROR_MAPS: Dict[str, Dict[str, ErrorCategory]] = {
    "binance": BINANCE_ERROR_MAP,
    "okx": OKX_ERROR_MAP,
    "bybit": BYBIT_ERROR_MAP,
    "gate": GATE_ERROR_MAP,
    "bitget": BITGET_ERROR_MAP,
}


# ============================================================
# MAPPING
# ============================================================

def categorize(
    venue: str,
    code: Optional[Union[str, int]],
    http_status: Optional[int] = None,
) -> ErrorCategory:
    """Resolve a venue code (or bare HTTP status) to a category."""
    table = VENUE_ERROR_MAPS.get(venue, {})
    if code is not None and str(code) in table:
        return table[str(code)]
    if http_status in (418, 429):
        return ErrorCategory.RATE_LIMIT
    if http_status in (401, 403):
        return ErrorCategory.AUTHENTICATION
    if http_status is not None and http_status >= 500:
        return ErrorCategory.EXCHANGE_ERROR
    return ErrorCategory.UNKNOWN


def map_venue_error(
    venue: str,
    code: Optional[Union[str, int]],
    message: str,
    http_status: Optional[int] = None,
) -> ExchangeError:
    """
    Build the exception for a venue error body.

    Args:
        venue: Venue name
        code: Native venue error code or label
        message: Native venue error message
        http_status: HTTP status, if any

    Returns:
        ExchangeUnavailable for transient categories,
        ExchangeRejected otherwise
    """
    category = categorize(venue, code, http_status)
    cls = ExchangeUnavailable if category in TRANSIENT_CATEGORIES else ExchangeRejected
    return cls(
        venue=venue,
        message=message or category.value,
        venue_code=str(code) if code is not None else None,
        http_status=http_status,
        context={"category": category.value},
    )


def map_transport_error(venue: str, error: BaseException) -> ExchangeUnavailable:
    """Wrap an aiohttp / timeout failure."""
    if isinstance(error, asyncio.TimeoutError):
        message = "Request timed out"
        category = ErrorCategory.TIMEOUT
    elif isinstance(error, aiohttp.ClientError):
        message = f"Network error: {type(error).__name__}"
        category = ErrorCategory.NETWORK
    else:
        message = f"Transport error: {type(error).__name__}"
        category = ErrorCategory.NETWORK
    return ExchangeUnavailable(
        venue=venue,
        message=message,
        context={"category": category.value},
        cause=error,
    )


def missing_credentials_error(venue: str, operation: str) -> ExchangeRejected:
    """Signed call attempted in public-data-only mode."""
    return ExchangeRejected(
        venue=venue,
        message=f"{operation} requires API credentials (venue is in public-data-only mode)",
        context={"category": ErrorCategory.AUTHENTICATION.value},
    )
