"""
Exchanges - Types.

============================================================
PURPOSE
============================================================
Normalized data model shared by every venue adapter.

Symbols are always upper-case and quote-suffixed (``SOLUSDT``).
Adapters translate outbound symbols into their own spelling and
parse every response back into these types.

All prices and quantities are ``Decimal``.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple


# ============================================================
# ENUMS
# ============================================================

class OrderSide(Enum):
    """Order side."""

    BUY = "BUY"
    SELL = "SELL"

    @property
    def opposite(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class OrderType(Enum):
    """Order type."""

    MARKET = "MARKET"
    """Execute at current market price."""

    LIMIT = "LIMIT"
    """Execute at specified price or better."""

    STOP_MARKET = "STOP_MARKET"
    """Market order triggered at stop price."""

    STOP_LIMIT = "STOP_LIMIT"
    """Limit order triggered at stop price."""

    @property
    def is_stop(self) -> bool:
        return self in (OrderType.STOP_MARKET, OrderType.STOP_LIMIT)


class TimeInForce(Enum):
    """Time in force for orders."""

    GTC = "GTC"
    """Good Till Canceled."""

    IOC = "IOC"
    """Immediate Or Cancel."""

    FOK = "FOK"
    """Fill Or Kill."""


class OrderStatus(Enum):
    """Normalized order status. Partially filled orders are PENDING."""

    PENDING = "PENDING"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


KNOWN_QUOTES: Tuple[str, ...] = ("USDT", "USDC", "BUSD", "FDUSD", "BTC", "ETH", "BNB")
"""Quote assets recognised when splitting a canonical symbol."""


def split_symbol(symbol: str) -> Tuple[str, str]:
    """
    Split ``SOLUSDT`` into ``("SOL", "USDT")``.

    Longer quote codes are tried first so that ``FDUSD`` wins over ``USD``.
    """
    symbol = symbol.upper()
    for quote in sorted(KNOWN_QUOTES, key=len, reverse=True):
        if symbol.endswith(quote) and len(symbol) > len(quote):
            return symbol[: -len(quote)], quote
    raise ValueError(f"Cannot determine quote asset of symbol {symbol!r}")


def utc_from_ms(ms: int) -> datetime:
    return datetime.fromtimestamp(int(ms) / 1000, tz=timezone.utc)


# ============================================================
# CREDENTIALS
# ============================================================

@dataclass(frozen=True)
class ExchangeCredential:
    """
    Credential set for one venue.

    Empty key and secret mean public-data-only mode.
    """

    name: str
    api_key: str = ""
    api_secret: str = field(default="", repr=False)
    passphrase: Optional[str] = field(default=None, repr=False)
    sandbox: bool = False
    active: bool = True

    @property
    def has_keys(self) -> bool:
        return bool(self.api_key and self.api_secret)


# ============================================================
# ORDERS
# ============================================================

@dataclass(frozen=True)
class NormalizedOrderRequest:
    """Venue-independent order request."""

    symbol: str
    side: OrderSide
    type: OrderType
    quantity: Decimal
    price: Optional[Decimal] = None
    """Limit price. Required for LIMIT and STOP_LIMIT."""

    stop_price: Optional[Decimal] = None
    """Trigger price. Required for STOP_MARKET and STOP_LIMIT."""

    time_in_force: Optional[TimeInForce] = None
    client_order_id: Optional[str] = None

    def validate(self) -> List[str]:
        """Return a list of problems, empty when the request is well-formed."""
        errors = []
        if not self.symbol or self.symbol != self.symbol.upper():
            errors.append("symbol must be non-empty upper-case")
        if self.quantity is None or self.quantity <= 0:
            errors.append("quantity must be positive")
        if self.type in (OrderType.LIMIT, OrderType.STOP_LIMIT):
            if self.price is None or self.price <= 0:
                errors.append(f"{self.type.value} order requires a positive price")
        if self.type.is_stop:
            if self.stop_price is None or self.stop_price <= 0:
                errors.append(f"{self.type.value} order requires a positive stop price")
        return errors


@dataclass(frozen=True)
class NormalizedOrderResult:
    """
    Point-in-time snapshot of an order as acknowledged by the venue.

    Not a live handle. Query the venue again for later state.
    """

    order_id: str
    symbol: str
    side: OrderSide
    type: OrderType
    status: OrderStatus
    requested_qty: Decimal
    price: Optional[Decimal]
    executed_qty: Decimal
    avg_price: Optional[Decimal]
    timestamp: datetime
    exchange_name: str

    @property
    def fill_price(self) -> Optional[Decimal]:
        """Average fill price, falling back to the order price."""
        if self.avg_price is not None and self.avg_price > 0:
            return self.avg_price
        return self.price

    def to_dict(self) -> Dict:
        return {
            "order_id": self.order_id,
            "symbol": self.symbol,
            "side": self.side.value,
            "type": self.type.value,
            "status": self.status.value,
            "requested_qty": str(self.requested_qty),
            "price": str(self.price) if self.price is not None else None,
            "executed_qty": str(self.executed_qty),
            "avg_price": str(self.avg_price) if self.avg_price is not None else None,
            "timestamp": self.timestamp.isoformat(),
            "exchange_name": self.exchange_name,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "NormalizedOrderResult":
        def optional(key: str) -> Optional[Decimal]:
            return Decimal(data[key]) if data.get(key) is not None else None

        return cls(
            order_id=data["order_id"],
            symbol=data["symbol"],
            side=OrderSide(data["side"]),
            type=OrderType(data["type"]),
            status=OrderStatus(data["status"]),
            requested_qty=Decimal(data["requested_qty"]),
            price=optional("price"),
            executed_qty=Decimal(data["executed_qty"]),
            avg_price=optional("avg_price"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            exchange_name=data["exchange_name"],
        )


# ============================================================
# MARKET DATA
# ============================================================

@dataclass(frozen=True)
class Kline:
    """One candle."""

    open_time: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal
    close_time: Optional[datetime] = None


@dataclass(frozen=True)
class Ticker24h:
    """Rolling 24 hour ticker snapshot."""

    symbol: str
    last_price: Decimal
    high: Decimal
    low: Decimal
    volume: Decimal
    quote_volume: Decimal
    change_percent: Decimal
    exchange_name: str


# ============================================================
# ACCOUNT
# ============================================================

@dataclass(frozen=True)
class Balance:
    """Funds for one asset. Never cached."""

    asset: str
    free: Decimal = Decimal("0")
    locked: Decimal = Decimal("0")

    @property
    def total(self) -> Decimal:
        return self.free + self.locked

    @classmethod
    def zero(cls, asset: str) -> "Balance":
        return cls(asset=asset.upper())


@dataclass(frozen=True)
class AccountInfo:
    """Account summary."""

    exchange_name: str
    balances: Tuple[Balance, ...]
    can_trade: bool = True
    account_type: str = "SPOT"

    def balance(self, asset: str) -> Balance:
        for item in self.balances:
            if item.asset == asset.upper():
                return item
        return Balance.zero(asset)


@dataclass(frozen=True)
class TradeFill:
    """A single execution from the venue's trade history."""

    trade_id: str
    order_id: str
    symbol: str
    side: OrderSide
    price: Decimal
    quantity: Decimal
    fee: Decimal
    fee_asset: str
    timestamp: datetime
    exchange_name: str
