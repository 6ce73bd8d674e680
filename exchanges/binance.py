"""
Exchanges - Binance Spot Adapter.

============================================================
PURPOSE
============================================================
Binance spot REST API (``/api/v3``).

AUTH:
- HMAC-SHA256 hex over the full query string
- ``X-MBX-APIKEY`` header
- ``recvWindow`` 60000 ms

SYMBOL: ``SOLUSDT`` (canonical spelling).

============================================================
"""

import hashlib
import hmac
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from .base import PreparedRequest, RestExchangeAdapter, decimal_str, to_decimal
from .errors import map_venue_error
from .types import (
    Balance,
    Kline,
    NormalizedOrderRequest,
    NormalizedOrderResult,
    OrderSide,
    OrderStatus,
    OrderType,
    Ticker24h,
    TimeInForce,
    TradeFill,
    utc_from_ms,
)


logger = logging.getLogger(__name__)


BINANCE_STATUS_MAP = {
    "NEW": OrderStatus.PENDING,
    "PARTIALLY_FILLED": OrderStatus.PENDING,
    "PENDING_NEW": OrderStatus.PENDING,
    "FILLED": OrderStatus.FILLED,
    "CANCELED": OrderStatus.CANCELLED,
    "PENDING_CANCEL": OrderStatus.CANCELLED,
    "EXPIRED": OrderStatus.CANCELLED,
    "EXPIRED_IN_MATCH": OrderStatus.CANCELLED,
    "REJECTED": OrderStatus.REJECTED,
}

BINANCE_ORDER_TYPES = {
    OrderType.MARKET: "MARKET",
    OrderType.LIMIT: "LIMIT",
    OrderType.STOP_MARKET: "STOP_LOSS",
    OrderType.STOP_LIMIT: "STOP_LOSS_LIMIT",
}

_FROM_BINANCE_TYPE = {
    "MARKET": OrderType.MARKET,
    "LIMIT": OrderType.LIMIT,
    "LIMIT_MAKER": OrderType.LIMIT,
    "STOP_LOSS": OrderType.STOP_MARKET,
    "TAKE_PROFIT": OrderType.STOP_MARKET,
    "STOP_LOSS_LIMIT": OrderType.STOP_LIMIT,
    "TAKE_PROFIT_LIMIT": OrderType.STOP_LIMIT,
}


class BinanceAdapter(RestExchangeAdapter):
    """Binance spot."""

    name = "binance"
    base_url = "https://api.binance.com/api/v3"
    sandbox_url = "https://testnet.binance.vision/api/v3"
    recv_window = 60000

    def to_venue_symbol(self, symbol: str) -> str:
        return symbol.upper()

    # ============================================================
    # REQUEST PLUMBING
    # ============================================================

    def _prepare(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]],
        body: Optional[Dict[str, Any]],
        signed: bool,
    ) -> PreparedRequest:
        # Binance takes write parameters in the query string too.
        merged = dict(params or {})
        merged.update(body or {})
        headers = {}
        if signed:
            merged["recvWindow"] = self.recv_window
            merged["timestamp"] = self._timestamp_ms()
            query = urlencode(merged)
            signature = hmac.new(
                self.credential.api_secret.encode(),
                query.encode(),
                hashlib.sha256,
            ).hexdigest()
            query = f"{query}&signature={signature}"
            headers["X-MBX-APIKEY"] = self.credential.api_key
        else:
            query = urlencode(merged)
        url = f"{self.root_url}{path}"
        if query:
            url = f"{url}?{query}"
        return PreparedRequest(method=method, url=url, headers=headers)

    def _unwrap(self, status: int, data: Any) -> Any:
        if status >= 400 or (isinstance(data, dict) and "code" in data and "msg" in data and data["code"] != 200):
            code = data.get("code") if isinstance(data, dict) else None
            message = data.get("msg", "") if isinstance(data, dict) else ""
            raise map_venue_error(self.name, code, message or f"HTTP {status}", http_status=status)
        return data

    def _parse_order(self, data: Dict[str, Any]) -> NormalizedOrderResult:
        executed = to_decimal(data.get("executedQty"))
        quote = to_decimal(data.get("cummulativeQuoteQty"))
        avg_price = (quote / executed) if executed > 0 and quote > 0 else None
        price = to_decimal(data.get("price"))
        ts = data.get("transactTime") or data.get("updateTime") or data.get("time") or self._timestamp_ms()
        return NormalizedOrderResult(
            order_id=str(data.get("orderId", "")),
            symbol=data.get("symbol", ""),
            side=OrderSide(data.get("side", "BUY")),
            type=_FROM_BINANCE_TYPE.get(data.get("type", "MARKET"), OrderType.MARKET),
            status=BINANCE_STATUS_MAP.get(data.get("status", ""), OrderStatus.PENDING),
            requested_qty=to_decimal(data.get("origQty")),
            price=price if price > 0 else None,
            executed_qty=executed,
            avg_price=avg_price,
            timestamp=utc_from_ms(ts),
            exchange_name=self.name,
        )

    # ============================================================
    # MARKET DATA
    # ============================================================

    async def get_price(self, symbol: str) -> Decimal:
        data = await self._request("GET", "/ticker/price", {"symbol": self.to_venue_symbol(symbol)})
        return to_decimal(data["price"])

    async def get_klines(self, symbol: str, interval: str = "30m", limit: int = 200) -> List[Kline]:
        rows = await self._request(
            "GET", "/klines",
            {"symbol": self.to_venue_symbol(symbol), "interval": interval, "limit": limit},
        )
        return [
            Kline(
                open_time=utc_from_ms(row[0]),
                open=to_decimal(row[1]),
                high=to_decimal(row[2]),
                low=to_decimal(row[3]),
                close=to_decimal(row[4]),
                volume=to_decimal(row[5]),
                close_time=utc_from_ms(row[6]),
            )
            for row in rows[-limit:]
        ]

    async def get_24h_ticker(self, symbol: str) -> Ticker24h:
        data = await self._request("GET", "/ticker/24hr", {"symbol": self.to_venue_symbol(symbol)})
        return Ticker24h(
            symbol=symbol.upper(),
            last_price=to_decimal(data.get("lastPrice")),
            high=to_decimal(data.get("highPrice")),
            low=to_decimal(data.get("lowPrice")),
            volume=to_decimal(data.get("volume")),
            quote_volume=to_decimal(data.get("quoteVolume")),
            change_percent=to_decimal(data.get("priceChangePercent")),
            exchange_name=self.name,
        )

    # ============================================================
    # ACCOUNT
    # ============================================================

    async def get_all_balances(self) -> List[Balance]:
        data = await self._request("GET", "/account", signed=True)
        return [
            Balance(asset=item["asset"], free=to_decimal(item.get("free")), locked=to_decimal(item.get("locked")))
            for item in data.get("balances", [])
        ]

    # ============================================================
    # ORDERS
    # ============================================================

    async def place_order(self, request: NormalizedOrderRequest) -> NormalizedOrderResult:
        self.check_order_request(request)
        body: Dict[str, Any] = {
            "symbol": self.to_venue_symbol(request.symbol),
            "side": request.side.value,
            "type": BINANCE_ORDER_TYPES[request.type],
            "quantity": decimal_str(request.quantity),
            "newOrderRespType": "FULL",
        }
        if request.type in (OrderType.LIMIT, OrderType.STOP_LIMIT):
            body["price"] = decimal_str(request.price)
            body["timeInForce"] = (request.time_in_force or TimeInForce.GTC).value
        if request.type.is_stop:
            body["stopPrice"] = decimal_str(request.stop_price)
        if request.client_order_id:
            body["newClientOrderId"] = request.client_order_id

        data = await self._request("POST", "/order", body=body, signed=True)
        result = self._parse_order(data)
        self._log.log_order("placed", request.symbol, request.side.value, request.quantity, result.order_id)
        return result

    async def cancel_order(self, symbol: str, order_id: str) -> NormalizedOrderResult:
        data = await self._request(
            "DELETE", "/order",
            {"symbol": self.to_venue_symbol(symbol), "orderId": order_id},
            signed=True,
        )
        return self._parse_order(data)

    async def get_order(self, symbol: str, order_id: str) -> NormalizedOrderResult:
        data = await self._request(
            "GET", "/order",
            {"symbol": self.to_venue_symbol(symbol), "orderId": order_id},
            signed=True,
        )
        return self._parse_order(data)

    async def get_open_orders(self, symbol: Optional[str] = None) -> List[NormalizedOrderResult]:
        params = {"symbol": self.to_venue_symbol(symbol)} if symbol else {}
        data = await self._request("GET", "/openOrders", params, signed=True)
        return [self._parse_order(item) for item in data]

    async def get_trade_history(self, symbol: str, limit: int = 50) -> List[TradeFill]:
        data = await self._request(
            "GET", "/myTrades",
            {"symbol": self.to_venue_symbol(symbol), "limit": limit},
            signed=True,
        )
        return [
            TradeFill(
                trade_id=str(item["id"]),
                order_id=str(item["orderId"]),
                symbol=item["symbol"],
                side=OrderSide.BUY if item.get("isBuyer") else OrderSide.SELL,
                price=to_decimal(item.get("price")),
                quantity=to_decimal(item.get("qty")),
                fee=to_decimal(item.get("commission")),
                fee_asset=item.get("commissionAsset", ""),
                timestamp=utc_from_ms(item["time"]),
                exchange_name=self.name,
            )
            for item in data
        ]

    async def get_order_history(self, symbol: str, limit: int = 50) -> List[NormalizedOrderResult]:
        data = await self._request(
            "GET", "/allOrders",
            {"symbol": self.to_venue_symbol(symbol), "limit": limit},
            signed=True,
        )
        return [self._parse_order(item) for item in data]
