"""
Exchanges - Bitget Spot Adapter.

============================================================
PURPOSE
============================================================
Bitget v2 spot REST API.

AUTH:
- BASE64(HMAC-SHA256(timestamp + METHOD + path[?query] + body))
- ACCESS-KEY / ACCESS-SIGN / ACCESS-TIMESTAMP / ACCESS-PASSPHRASE

SYMBOL: ``SOLUSDT``. Responses use ``code == "00000"`` for success.

============================================================
"""

import base64
import hashlib
import hmac
import json
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


BITGET_STATUS_MAP = {
    "init": OrderStatus.PENDING,
    "new": OrderStatus.PENDING,
    "live": OrderStatus.PENDING,
    "partially_filled": OrderStatus.PENDING,
    "partial_fill": OrderStatus.PENDING,
    "filled": OrderStatus.FILLED,
    "full_fill": OrderStatus.FILLED,
    "cancelled": OrderStatus.CANCELLED,
    "canceled": OrderStatus.CANCELLED,
    "rejected": OrderStatus.REJECTED,
}

BITGET_INTERVALS = {
    "1m": "1min", "5m": "5min", "15m": "15min", "30m": "30min",
    "1h": "1h", "4h": "4h", "6h": "6h", "12h": "12h", "1d": "1day", "1w": "1week",
}


class BitgetAdapter(RestExchangeAdapter):
    """Bitget spot."""

    name = "bitget"
    base_url = "https://api.bitget.com"
    api_prefix = "/api/v2/spot"

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
        request_path = f"{self.api_prefix}{path}"
        query = urlencode(params or {})
        body_text = json.dumps(body) if body else ""
        headers = {"Content-Type": "application/json", "locale": "en-US"}
        if signed:
            timestamp = str(self._timestamp_ms())
            target = f"{request_path}?{query}" if query else request_path
            message = f"{timestamp}{method.upper()}{target}{body_text}"
            digest = hmac.new(self.credential.api_secret.encode(), message.encode(), hashlib.sha256).digest()
            headers.update({
                "ACCESS-KEY": self.credential.api_key,
                "ACCESS-SIGN": base64.b64encode(digest).decode(),
                "ACCESS-TIMESTAMP": timestamp,
                "ACCESS-PASSPHRASE": self.credential.passphrase or "",
            })
        url = f"{self.root_url}{request_path}"
        if query:
            url = f"{url}?{query}"
        return PreparedRequest(method=method, url=url, headers=headers, body=body_text or None)

    def _unwrap(self, status: int, data: Any) -> Any:
        if not isinstance(data, dict):
            raise map_venue_error(self.name, None, f"Unexpected response (HTTP {status})", http_status=status)
        code = str(data.get("code", "00000"))
        if status >= 400 or code != "00000":
            raise map_venue_error(self.name, code, data.get("msg") or f"HTTP {status}", http_status=status)
        return data.get("data")

    def _parse_order(self, row: Dict[str, Any]) -> NormalizedOrderResult:
        price = to_decimal(row.get("price"))
        avg_price = to_decimal(row.get("priceAvg"))
        return NormalizedOrderResult(
            order_id=str(row.get("orderId", "")),
            symbol=row.get("symbol", ""),
            side=OrderSide(row.get("side", "buy").upper()),
            type=OrderType.MARKET if row.get("orderType") == "market" else OrderType.LIMIT,
            status=BITGET_STATUS_MAP.get(row.get("status", "live"), OrderStatus.PENDING),
            requested_qty=to_decimal(row.get("size")),
            price=price if price > 0 else None,
            executed_qty=to_decimal(row.get("baseVolume")),
            avg_price=avg_price if avg_price > 0 else None,
            timestamp=utc_from_ms(row.get("uTime") or row.get("cTime") or self._timestamp_ms()),
            exchange_name=self.name,
        )

    def _ack(self, request: NormalizedOrderRequest, order_id: str) -> NormalizedOrderResult:
        return NormalizedOrderResult(
            order_id=order_id,
            symbol=request.symbol,
            side=request.side,
            type=request.type,
            status=OrderStatus.PENDING,
            requested_qty=request.quantity,
            price=request.price,
            executed_qty=Decimal("0"),
            avg_price=None,
            timestamp=utc_from_ms(self._timestamp_ms()),
            exchange_name=self.name,
        )

    # ============================================================
    # MARKET DATA
    # ============================================================

    async def _ticker_row(self, symbol: str) -> Dict[str, Any]:
        rows = await self._request("GET", "/market/tickers", {"symbol": self.to_venue_symbol(symbol)})
        if not rows:
            raise map_venue_error(self.name, "40034", f"No ticker for {symbol}")
        return rows[0]

    async def get_price(self, symbol: str) -> Decimal:
        row = await self._ticker_row(symbol)
        return to_decimal(row["lastPr"])

    async def get_klines(self, symbol: str, interval: str = "30m", limit: int = 200) -> List[Kline]:
        rows = await self._request(
            "GET", "/market/candles",
            {
                "symbol": self.to_venue_symbol(symbol),
                "granularity": BITGET_INTERVALS.get(interval, interval),
                "limit": limit,
            },
        )
        rows = sorted(rows or [], key=lambda row: int(row[0]))
        return [
            Kline(
                open_time=utc_from_ms(row[0]),
                open=to_decimal(row[1]),
                high=to_decimal(row[2]),
                low=to_decimal(row[3]),
                close=to_decimal(row[4]),
                volume=to_decimal(row[5]),
            )
            for row in rows[-limit:]
        ]

    async def get_24h_ticker(self, symbol: str) -> Ticker24h:
        row = await self._ticker_row(symbol)
        return Ticker24h(
            symbol=symbol.upper(),
            last_price=to_decimal(row.get("lastPr")),
            high=to_decimal(row.get("high24h")),
            low=to_decimal(row.get("low24h")),
            volume=to_decimal(row.get("baseVolume")),
            quote_volume=to_decimal(row.get("quoteVolume")),
            change_percent=to_decimal(row.get("change24h")) * 100,
            exchange_name=self.name,
        )

    # ============================================================
    # ACCOUNT
    # ============================================================

    async def get_all_balances(self) -> List[Balance]:
        rows = await self._request("GET", "/account/assets", signed=True)
        return [
            Balance(
                asset=row["coin"].upper(),
                free=to_decimal(row.get("available")),
                locked=to_decimal(row.get("frozen")) + to_decimal(row.get("locked")),
            )
            for row in rows or []
        ]

    # ============================================================
    # ORDERS
    # ============================================================

    async def place_order(self, request: NormalizedOrderRequest) -> NormalizedOrderResult:
        self.check_order_request(request)
        symbol = self.to_venue_symbol(request.symbol)
        side = request.side.value.lower()

        if request.type.is_stop:
            limit_priced = request.type is OrderType.STOP_LIMIT
            body: Dict[str, Any] = {
                "symbol": symbol,
                "side": side,
                "triggerPrice": decimal_str(request.stop_price),
                "orderType": "limit" if limit_priced else "market",
                "size": decimal_str(request.quantity),
                "triggerType": "fill_price",
                "planType": "amount",
            }
            if limit_priced:
                body["executePrice"] = decimal_str(request.price)
            data = await self._request("POST", "/trade/place-plan-order", body=body, signed=True)
        else:
            size = request.quantity
            if request.type is OrderType.MARKET and request.side is OrderSide.BUY:
                # Market buys are sized in quote currency.
                size = request.quantity * await self.get_price(request.symbol)
            body = {
                "symbol": symbol,
                "side": side,
                "orderType": request.type.value.lower(),
                "force": (request.time_in_force or TimeInForce.GTC).value.lower(),
                "size": decimal_str(size),
            }
            if request.type is OrderType.LIMIT:
                body["price"] = decimal_str(request.price)
            if request.client_order_id:
                body["clientOid"] = request.client_order_id
            data = await self._request("POST", "/trade/place-order", body=body, signed=True)

        order_id = str((data or {}).get("orderId", ""))
        self._log.log_order("placed", request.symbol, request.side.value, request.quantity, order_id)
        return self._ack(request, order_id)

    async def cancel_order(self, symbol: str, order_id: str) -> NormalizedOrderResult:
        await self._request(
            "POST", "/trade/cancel-order",
            body={"symbol": self.to_venue_symbol(symbol), "orderId": order_id},
            signed=True,
        )
        return await self.get_order(symbol, order_id)

    async def get_order(self, symbol: str, order_id: str) -> NormalizedOrderResult:
        rows = await self._request("GET", "/trade/orderInfo", {"orderId": order_id}, signed=True)
        if not rows:
            raise map_venue_error(self.name, "43001", f"Order {order_id} not found")
        return self._parse_order(rows[0])

    async def get_open_orders(self, symbol: Optional[str] = None) -> List[NormalizedOrderResult]:
        params = {"symbol": self.to_venue_symbol(symbol)} if symbol else {}
        rows = await self._request("GET", "/trade/unfilled-orders", params, signed=True)
        return [self._parse_order(row) for row in rows or []]

    async def get_trade_history(self, symbol: str, limit: int = 50) -> List[TradeFill]:
        rows = await self._request(
            "GET", "/trade/fills",
            {"symbol": self.to_venue_symbol(symbol), "limit": limit},
            signed=True,
        )
        fills = []
        for row in rows or []:
            fee = row.get("feeDetail") or {}
            fills.append(TradeFill(
                trade_id=str(row.get("tradeId", "")),
                order_id=str(row.get("orderId", "")),
                symbol=row.get("symbol", symbol.upper()),
                side=OrderSide(row.get("side", "buy").upper()),
                price=to_decimal(row.get("priceAvg")),
                quantity=to_decimal(row.get("size")),
                fee=abs(to_decimal(fee.get("totalFee"))),
                fee_asset=fee.get("feeCoin", ""),
                timestamp=utc_from_ms(row.get("cTime") or 0),
                exchange_name=self.name,
            ))
        return fills

    async def get_order_history(self, symbol: str, limit: int = 50) -> List[NormalizedOrderResult]:
        rows = await self._request(
            "GET", "/trade/history-orders",
            {"symbol": self.to_venue_symbol(symbol), "limit": limit},
            signed=True,
        )
        return [self._parse_order(row) for row in rows or []]
