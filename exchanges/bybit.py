"""
Exchanges - Bybit Spot Adapter.

============================================================
PURPOSE
============================================================
Bybit v5 unified REST API, ``category=spot``.

AUTH:
- HEX(HMAC-SHA256(timestamp + api_key + recv_window + payload))
  where payload is the query string (GET) or JSON body (POST)
- X-BAPI-API-KEY / X-BAPI-SIGN / X-BAPI-TIMESTAMP /
  X-BAPI-RECV-WINDOW headers

SYMBOL: ``SOLUSDT``. Responses use ``retCode == 0`` for success.

============================================================
"""

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


BYBIT_STATUS_MAP = {
    "Created": OrderStatus.PENDING,
    "New": OrderStatus.PENDING,
    "PartiallyFilled": OrderStatus.PENDING,
    "Untriggered": OrderStatus.PENDING,
    "Triggered": OrderStatus.PENDING,
    "Filled": OrderStatus.FILLED,
    "Cancelled": OrderStatus.CANCELLED,
    "PartiallyFilledCanceled": OrderStatus.CANCELLED,
    "Deactivated": OrderStatus.CANCELLED,
    "Rejected": OrderStatus.REJECTED,
}

BYBIT_INTERVALS = {
    "1m": "1", "3m": "3", "5m": "5", "15m": "15", "30m": "30",
    "1h": "60", "2h": "120", "4h": "240", "6h": "360", "12h": "720",
    "1d": "D", "1w": "W",
}


def _side(value: str) -> OrderSide:
    return OrderSide.BUY if value.lower() == "buy" else OrderSide.SELL


class BybitAdapter(RestExchangeAdapter):
    """Bybit spot."""

    name = "bybit"
    base_url = "https://api.bybit.com/v5"
    sandbox_url = "https://api-testnet.bybit.com/v5"
    recv_window = "5000"

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
        query = urlencode(params or {})
        body_text = json.dumps(body) if body else ""
        headers = {"Content-Type": "application/json"}
        if signed:
            timestamp = str(self._timestamp_ms())
            payload = body_text if method == "POST" else query
            message = f"{timestamp}{self.credential.api_key}{self.recv_window}{payload}"
            headers.update({
                "X-BAPI-API-KEY": self.credential.api_key,
                "X-BAPI-SIGN": hmac.new(
                    self.credential.api_secret.encode(), message.encode(), hashlib.sha256
                ).hexdigest(),
                "X-BAPI-TIMESTAMP": timestamp,
                "X-BAPI-RECV-WINDOW": self.recv_window,
            })
        url = f"{self.root_url}{path}"
        if query:
            url = f"{url}?{query}"
        return PreparedRequest(method=method, url=url, headers=headers, body=body_text or None)

    def _unwrap(self, status: int, data: Any) -> Any:
        if not isinstance(data, dict):
            raise map_venue_error(self.name, None, f"Unexpected response (HTTP {status})", http_status=status)
        ret_code = data.get("retCode", -1 if status >= 400 else 0)
        if status >= 400 or ret_code != 0:
            raise map_venue_error(self.name, ret_code, data.get("retMsg") or f"HTTP {status}", http_status=status)
        return data.get("result", {})

    def _parse_order(self, row: Dict[str, Any]) -> NormalizedOrderResult:
        price = to_decimal(row.get("price"))
        avg_price = to_decimal(row.get("avgPrice"))
        order_type = OrderType.LIMIT if row.get("orderType") == "Limit" else OrderType.MARKET
        if to_decimal(row.get("triggerPrice")) > 0:
            order_type = OrderType.STOP_LIMIT if order_type is OrderType.LIMIT else OrderType.STOP_MARKET
        return NormalizedOrderResult(
            order_id=str(row.get("orderId", "")),
            symbol=row.get("symbol", ""),
            side=_side(row.get("side", "Buy")),
            type=order_type,
            status=BYBIT_STATUS_MAP.get(row.get("orderStatus", "New"), OrderStatus.PENDING),
            requested_qty=to_decimal(row.get("qty")),
            price=price if price > 0 else None,
            executed_qty=to_decimal(row.get("cumExecQty")),
            avg_price=avg_price if avg_price > 0 else None,
            timestamp=utc_from_ms(row.get("updatedTime") or row.get("createdTime") or self._timestamp_ms()),
            exchange_name=self.name,
        )

    # ============================================================
    # MARKET DATA
    # ============================================================

    async def _ticker_row(self, symbol: str) -> Dict[str, Any]:
        result = await self._request("GET", "/market/tickers", {"category": "spot", "symbol": self.to_venue_symbol(symbol)})
        rows = result.get("list") or []
        if not rows:
            raise map_venue_error(self.name, "170121", f"No ticker for {symbol}")
        return rows[0]

    async def get_price(self, symbol: str) -> Decimal:
        row = await self._ticker_row(symbol)
        return to_decimal(row["lastPrice"])

    async def get_klines(self, symbol: str, interval: str = "30m", limit: int = 200) -> List[Kline]:
        result = await self._request(
            "GET", "/market/kline",
            {
                "category": "spot",
                "symbol": self.to_venue_symbol(symbol),
                "interval": BYBIT_INTERVALS.get(interval, interval),
                "limit": limit,
            },
        )
        rows = result.get("list") or []
        # Newest first on the wire.
        return [
            Kline(
                open_time=utc_from_ms(row[0]),
                open=to_decimal(row[1]),
                high=to_decimal(row[2]),
                low=to_decimal(row[3]),
                close=to_decimal(row[4]),
                volume=to_decimal(row[5]),
            )
            for row in reversed(rows[:limit])
        ]

    async def get_24h_ticker(self, symbol: str) -> Ticker24h:
        row = await self._ticker_row(symbol)
        return Ticker24h(
            symbol=symbol.upper(),
            last_price=to_decimal(row.get("lastPrice")),
            high=to_decimal(row.get("highPrice24h")),
            low=to_decimal(row.get("lowPrice24h")),
            volume=to_decimal(row.get("volume24h")),
            quote_volume=to_decimal(row.get("turnover24h")),
            change_percent=to_decimal(row.get("price24hPcnt")) * 100,
            exchange_name=self.name,
        )

    # ============================================================
    # ACCOUNT
    # ============================================================

    async def get_all_balances(self) -> List[Balance]:
        result = await self._request("GET", "/account/wallet-balance", {"accountType": "UNIFIED"}, signed=True)
        accounts = result.get("list") or []
        coins = accounts[0].get("coin", []) if accounts else []
        balances = []
        for coin in coins:
            total = to_decimal(coin.get("walletBalance"))
            locked = to_decimal(coin.get("locked"))
            balances.append(Balance(asset=coin["coin"], free=total - locked, locked=locked))
        return balances

    # ============================================================
    # ORDERS
    # ============================================================

    async def place_order(self, request: NormalizedOrderRequest) -> NormalizedOrderResult:
        self.check_order_request(request)
        limit_priced = request.type in (OrderType.LIMIT, OrderType.STOP_LIMIT)
        body: Dict[str, Any] = {
            "category": "spot",
            "symbol": self.to_venue_symbol(request.symbol),
            "side": "Buy" if request.side is OrderSide.BUY else "Sell",
            "orderType": "Limit" if limit_priced else "Market",
            "qty": decimal_str(request.quantity),
        }
        if request.type is OrderType.MARKET:
            body["marketUnit"] = "baseCoin"
        if limit_priced:
            body["price"] = decimal_str(request.price)
            body["timeInForce"] = (request.time_in_force or TimeInForce.GTC).value
        if request.type.is_stop:
            body["triggerPrice"] = decimal_str(request.stop_price)
            body["orderFilter"] = "tpslOrder"
        if request.client_order_id:
            body["orderLinkId"] = request.client_order_id

        result = await self._request("POST", "/order/create", body=body, signed=True)
        order_id = str(result.get("orderId", ""))
        self._log.log_order("placed", request.symbol, request.side.value, request.quantity, order_id)
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

    async def cancel_order(self, symbol: str, order_id: str) -> NormalizedOrderResult:
        await self._request(
            "POST", "/order/cancel",
            body={"category": "spot", "symbol": self.to_venue_symbol(symbol), "orderId": order_id},
            signed=True,
        )
        return await self.get_order(symbol, order_id)

    async def get_order(self, symbol: str, order_id: str) -> NormalizedOrderResult:
        params = {"category": "spot", "symbol": self.to_venue_symbol(symbol), "orderId": order_id}
        result = await self._request("GET", "/order/realtime", params, signed=True)
        rows = result.get("list") or []
        if not rows:
            result = await self._request("GET", "/order/history", params, signed=True)
            rows = result.get("list") or []
        if not rows:
            raise map_venue_error(self.name, "170213", f"Order {order_id} not found")
        return self._parse_order(rows[0])

    async def get_open_orders(self, symbol: Optional[str] = None) -> List[NormalizedOrderResult]:
        params: Dict[str, Any] = {"category": "spot", "openOnly": 0}
        if symbol:
            params["symbol"] = self.to_venue_symbol(symbol)
        result = await self._request("GET", "/order/realtime", params, signed=True)
        return [self._parse_order(row) for row in result.get("list") or []]

    async def get_trade_history(self, symbol: str, limit: int = 50) -> List[TradeFill]:
        result = await self._request(
            "GET", "/execution/list",
            {"category": "spot", "symbol": self.to_venue_symbol(symbol), "limit": limit},
            signed=True,
        )
        return [
            TradeFill(
                trade_id=str(row.get("execId", "")),
                order_id=str(row.get("orderId", "")),
                symbol=row.get("symbol", symbol.upper()),
                side=_side(row.get("side", "Buy")),
                price=to_decimal(row.get("execPrice")),
                quantity=to_decimal(row.get("execQty")),
                fee=to_decimal(row.get("execFee")),
                fee_asset=row.get("feeCurrency", ""),
                timestamp=utc_from_ms(row.get("execTime") or 0),
                exchange_name=self.name,
            )
            for row in result.get("list") or []
        ]

    async def get_order_history(self, symbol: str, limit: int = 50) -> List[NormalizedOrderResult]:
        result = await self._request(
            "GET", "/order/history",
            {"category": "spot", "symbol": self.to_venue_symbol(symbol), "limit": limit},
            signed=True,
        )
        return [self._parse_order(row) for row in result.get("list") or []]
