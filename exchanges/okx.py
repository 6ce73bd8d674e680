"""
Exchanges - OKX Spot Adapter.

============================================================
PURPOSE
============================================================
OKX v5 REST API, spot instruments only (``tdMode=cash``).

AUTH:
- BASE64(HMAC-SHA256(timestamp + METHOD + path?query + body))
- OK-ACCESS-KEY / OK-ACCESS-SIGN / OK-ACCESS-TIMESTAMP /
  OK-ACCESS-PASSPHRASE headers
- ``x-simulated-trading: 1`` for the demo environment

SYMBOL: ``SOL-USDT``. Responses use ``code == "0"`` for success.

============================================================
"""

import base64
import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
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
    TradeFill,
    split_symbol,
    utc_from_ms,
)


logger = logging.getLogger(__name__)


OKX_STATUS_MAP = {
    "live": OrderStatus.PENDING,
    "partially_filled": OrderStatus.PENDING,
    "effective": OrderStatus.FILLED,
    "filled": OrderStatus.FILLED,
    "canceled": OrderStatus.CANCELLED,
    "mmp_canceled": OrderStatus.CANCELLED,
    "order_failed": OrderStatus.REJECTED,
}

_FROM_OKX_TYPE = {
    "market": OrderType.MARKET,
    "limit": OrderType.LIMIT,
    "post_only": OrderType.LIMIT,
    "conditional": OrderType.STOP_MARKET,
}

# Interval spellings that differ from the canonical form.
OKX_INTERVALS = {"1h": "1H", "2h": "2H", "4h": "4H", "6h": "6H", "12h": "12H", "1d": "1D", "1w": "1W"}


class OKXAdapter(RestExchangeAdapter):
    """OKX spot."""

    name = "okx"
    base_url = "https://www.okx.com"

    def to_venue_symbol(self, symbol: str) -> str:
        base, quote = split_symbol(symbol)
        return f"{base}-{quote}"

    def _iso_timestamp(self) -> str:
        now = datetime.fromtimestamp(self._timestamp_ms() / 1000, tz=timezone.utc)
        return now.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

    def _sign(self, timestamp: str, method: str, request_path: str, body: str) -> str:
        message = f"{timestamp}{method.upper()}{request_path}{body}"
        digest = hmac.new(self.credential.api_secret.encode(), message.encode(), hashlib.sha256).digest()
        return base64.b64encode(digest).decode()

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
        request_path = f"/api/v5{path}"
        if params:
            request_path = f"{request_path}?{urlencode(params)}"
        body_text = json.dumps(body) if body else ""

        headers = {"Content-Type": "application/json"}
        if signed:
            timestamp = self._iso_timestamp()
            headers.update({
                "OK-ACCESS-KEY": self.credential.api_key,
                "OK-ACCESS-SIGN": self._sign(timestamp, method, request_path, body_text),
                "OK-ACCESS-TIMESTAMP": timestamp,
                "OK-ACCESS-PASSPHRASE": self.credential.passphrase or "",
            })
        if self.sandbox:
            headers["x-simulated-trading"] = "1"
        return PreparedRequest(
            method=method,
            url=f"{self.root_url}{request_path}",
            headers=headers,
            body=body_text or None,
        )

    def _unwrap(self, status: int, data: Any) -> Any:
        if not isinstance(data, dict):
            raise map_venue_error(self.name, None, f"Unexpected response (HTTP {status})", http_status=status)
        code = str(data.get("code", "0"))
        if status >= 400 or code != "0":
            message = data.get("msg") or ""
            rows = data.get("data") or []
            # Order endpoints report the real reason per row.
            if rows and isinstance(rows[0], dict) and rows[0].get("sCode") not in (None, "0"):
                code = str(rows[0]["sCode"])
                message = rows[0].get("sMsg") or message
            raise map_venue_error(self.name, code, message or f"HTTP {status}", http_status=status)
        return data.get("data", [])

    def _parse_order(self, data: Dict[str, Any], symbol: Optional[str] = None) -> NormalizedOrderResult:
        price = to_decimal(data.get("px"))
        avg_price = to_decimal(data.get("avgPx"))
        inst_id = data.get("instId", "")
        return NormalizedOrderResult(
            order_id=str(data.get("ordId") or data.get("algoId") or ""),
            symbol=symbol or inst_id.replace("-", ""),
            side=OrderSide(data.get("side", "buy").upper()),
            type=_FROM_OKX_TYPE.get(data.get("ordType", "market"), OrderType.MARKET),
            status=OKX_STATUS_MAP.get(data.get("state", "live"), OrderStatus.PENDING),
            requested_qty=to_decimal(data.get("sz")),
            price=price if price > 0 else None,
            executed_qty=to_decimal(data.get("accFillSz")),
            avg_price=avg_price if avg_price > 0 else None,
            timestamp=utc_from_ms(data.get("uTime") or data.get("cTime") or self._timestamp_ms()),
            exchange_name=self.name,
        )

    # ============================================================
    # MARKET DATA
    # ============================================================

    async def get_price(self, symbol: str) -> Decimal:
        rows = await self._request("GET", "/market/ticker", {"instId": self.to_venue_symbol(symbol)})
        return to_decimal(rows[0]["last"])

    async def get_klines(self, symbol: str, interval: str = "30m", limit: int = 200) -> List[Kline]:
        rows = await self._request(
            "GET", "/market/candles",
            {"instId": self.to_venue_symbol(symbol), "bar": OKX_INTERVALS.get(interval, interval), "limit": limit},
        )
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
        rows = await self._request("GET", "/market/ticker", {"instId": self.to_venue_symbol(symbol)})
        row = rows[0]
        last = to_decimal(row.get("last"))
        open_24h = to_decimal(row.get("open24h"))
        change = ((last - open_24h) / open_24h * 100) if open_24h > 0 else Decimal("0")
        return Ticker24h(
            symbol=symbol.upper(),
            last_price=last,
            high=to_decimal(row.get("high24h")),
            low=to_decimal(row.get("low24h")),
            volume=to_decimal(row.get("vol24h")),
            quote_volume=to_decimal(row.get("volCcy24h")),
            change_percent=change,
            exchange_name=self.name,
        )

    # ============================================================
    # ACCOUNT
    # ============================================================

    async def get_all_balances(self) -> List[Balance]:
        rows = await self._request("GET", "/account/balance", signed=True)
        details = rows[0].get("details", []) if rows else []
        return [
            Balance(asset=item["ccy"], free=to_decimal(item.get("availBal")), locked=to_decimal(item.get("frozenBal")))
            for item in details
        ]

    # ============================================================
    # ORDERS
    # ============================================================

    async def place_order(self, request: NormalizedOrderRequest) -> NormalizedOrderResult:
        self.check_order_request(request)
        inst_id = self.to_venue_symbol(request.symbol)

        if request.type.is_stop:
            body: Dict[str, Any] = {
                "instId": inst_id,
                "tdMode": "cash",
                "side": request.side.value.lower(),
                "ordType": "conditional",
                "sz": decimal_str(request.quantity),
                "slTriggerPx": decimal_str(request.stop_price),
                "slOrdPx": decimal_str(request.price) if request.type is OrderType.STOP_LIMIT else "-1",
            }
            rows = await self._request("POST", "/trade/order-algo", body=body, signed=True)
        else:
            body = {
                "instId": inst_id,
                "tdMode": "cash",
                "side": request.side.value.lower(),
                "ordType": request.type.value.lower(),
                "sz": decimal_str(request.quantity),
            }
            if request.type is OrderType.MARKET and request.side is OrderSide.BUY:
                body["tgtCcy"] = "base_ccy"
            if request.type is OrderType.LIMIT:
                body["px"] = decimal_str(request.price)
            if request.client_order_id:
                body["clOrdId"] = request.client_order_id
            rows = await self._request("POST", "/trade/order", body=body, signed=True)

        ack = rows[0] if rows else {}
        order_id = str(ack.get("ordId") or ack.get("algoId") or "")
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
            timestamp=utc_from_ms(ack.get("ts") or self._timestamp_ms()),
            exchange_name=self.name,
        )

    async def cancel_order(self, symbol: str, order_id: str) -> NormalizedOrderResult:
        await self._request(
            "POST", "/trade/cancel-order",
            body={"instId": self.to_venue_symbol(symbol), "ordId": order_id},
            signed=True,
        )
        return await self.get_order(symbol, order_id)

    async def get_order(self, symbol: str, order_id: str) -> NormalizedOrderResult:
        rows = await self._request(
            "GET", "/trade/order",
            {"instId": self.to_venue_symbol(symbol), "ordId": order_id},
            signed=True,
        )
        return self._parse_order(rows[0], symbol.upper())

    async def get_open_orders(self, symbol: Optional[str] = None) -> List[NormalizedOrderResult]:
        params: Dict[str, Any] = {"instType": "SPOT"}
        if symbol:
            params["instId"] = self.to_venue_symbol(symbol)
        rows = await self._request("GET", "/trade/orders-pending", params, signed=True)
        return [self._parse_order(row) for row in rows]

    async def get_trade_history(self, symbol: str, limit: int = 50) -> List[TradeFill]:
        rows = await self._request(
            "GET", "/trade/fills",
            {"instType": "SPOT", "instId": self.to_venue_symbol(symbol), "limit": limit},
            signed=True,
        )
        return [
            TradeFill(
                trade_id=str(row.get("tradeId", "")),
                order_id=str(row.get("ordId", "")),
                symbol=symbol.upper(),
                side=OrderSide(row.get("side", "buy").upper()),
                price=to_decimal(row.get("fillPx")),
                quantity=to_decimal(row.get("fillSz")),
                fee=abs(to_decimal(row.get("fee"))),
                fee_asset=row.get("feeCcy", ""),
                timestamp=utc_from_ms(row.get("ts") or 0),
                exchange_name=self.name,
            )
            for row in rows
        ]

    async def get_order_history(self, symbol: str, limit: int = 50) -> List[NormalizedOrderResult]:
        rows = await self._request(
            "GET", "/trade/orders-history",
            {"instType": "SPOT", "instId": self.to_venue_symbol(symbol), "limit": limit},
            signed=True,
        )
        return [self._parse_order(row, symbol.upper()) for row in rows]
