"""
Exchanges Package.

Uniform adapter contract over several spot venues plus the
manager that aggregates them.

Components:
- types: Normalized orders, balances, candles, credentials
- base: Adapter contract and shared REST plumbing
- binance / okx / bybit / gate / bitget: Venue adapters
- mock: In-memory adapter
- config: Credential loading from the environment
- factory: Venue name -> adapter class
- manager: Registry and parallel aggregate queries
"""

from .base import ExchangeAdapter, RestExchangeAdapter
from .binance import BinanceAdapter
from .bitget import BitgetAdapter
from .bybit import BybitAdapter
from .config import ExchangeConfigManager
from .errors import ErrorCategory, map_venue_error
from .factory import AdapterFactory
from .gate import GateAdapter
from .manager import BestPrice, ExchangeManager, ExchangeStatus, PriceSpread, VenuePrice
from .mock import MockConfig, MockExchangeAdapter
from .okx import OKXAdapter
from .types import (
    AccountInfo,
    Balance,
    ExchangeCredential,
    Kline,
    NormalizedOrderRequest,
    NormalizedOrderResult,
    OrderSide,
    OrderStatus,
    OrderType,
    Ticker24h,
    TimeInForce,
    TradeFill,
)

__all__ = [
    "ExchangeAdapter",
    "RestExchangeAdapter",
    "BinanceAdapter",
    "BitgetAdapter",
    "BybitAdapter",
    "GateAdapter",
    "OKXAdapter",
    "MockConfig",
    "MockExchangeAdapter",
    "ExchangeConfigManager",
    "AdapterFactory",
    "ErrorCategory",
    "map_venue_error",
    "BestPrice",
    "ExchangeManager",
    "ExchangeStatus",
    "PriceSpread",
    "VenuePrice",
    "AccountInfo",
    "Balance",
    "ExchangeCredential",
    "Kline",
    "NormalizedOrderRequest",
    "NormalizedOrderResult",
    "OrderSide",
    "OrderStatus",
    "OrderType",
    "Ticker24h",
    "TimeInForce",
    "TradeFill",
]
