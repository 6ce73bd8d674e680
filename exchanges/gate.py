"""
Exchanges - Gate Spot Adapter.

============================================================
PURPOSE
============================================================
Gate v4 REST API, spot account.

AUTH:
- HEX(HMAC-SHA512(METHOD \\n path \\n query \\n SHA512(body) \\n ts))
- KEY / SIGN / Timestamp (seconds) headers

SYMBOL: ``SOL_USDT``. Errors come back as ``{"label", "message"}``.

NOTE: Gate sizes MARKET BUY orders in quote currency, so the
adapter converts the base quantity using the last price.

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
    split_symbol,
    utc_from_ms,
)


logger = logging.getLogger(__name__)


GATE_STATUS_MAP = {
    "open": OrderStatus.PENDING,
    "closed": OrderStatus.FILLED,
    "cancelled": OrderStatus.CANCELLED,
}

GATE_TIF = {
    TimeInForce.GTC: "gtc",
    TimeInForce.IOC: "ioc",
    TimeInForce.FOK: "fok",
}


class GateAdapter(RestExchangeAdapter):
    """Gate spot."""

    name = "gate"
    base_url = "https://api.gateio.ws/api/v4"
    path_prefix = "/api/v4"

    def to_venue_symbol(self, symbol: str) -> str:
        base, quote = split_symbol(symbol)
        return f"{base}_{quote}"

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
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if signed:
            timestamp = str(self._timestamp_ms() // 1000)
            hashed_body = hashlib.sha512(body_text.encode()).hexdigest()
            message = "\n".join([method, f"{self.path_prefix}{path}", query, hashed_body, timestamp])
            headers.update({
                "KEY": self.credential.api_key,
                "Timestamp": timestamp,
                "SIGN": hmac.new(self.credential.api_secret.encode(), message.encode(), hashlib.sha512).hexdigest(),
            })
        url = f"{self.root_url}{path}"
        if query:
            url = f"{url}?{query}"
        return PreparedRequest(method=method, url=url, headers=headers, body=body_text or None)

    def _unwrap(self, status: int, data: Any) -> Any:
        if status >= 400 or (isinstance(data, dict) and "label" in data):
            label = data.get("label") if isinstance(data, dict) else None
            message = data.get("message", "") if isinstance(data, dict) else ""
            raise map_venue_error(self.name, label, message or f"HTTP {status}", http_status=status)
        return data

    def _parse_order(self, row: Dict[str, Any]) -> NormalizedOrderResult:
        amount = to_decimal(row.get("amount"))
        left = to_decimal(row.get("left"))
        price = to_decimal(row.get("price"))
        avg_price = to_decimal(row.get("avg_deal_price") or row.get("fill_price"))
        status = GATE_STATUS_MAP.get(row.get("status", "open"), OrderStatus.PENDING)
        if status is OrderStatus.FILLED and row.get("finish_as") not in (None, "filled"):
            status = OrderStatus.CANCELLED
        return NormalizedOrderResult(
            order_id=str(row.get("id", "")),
            symbol=row.get("currency_pair", "").replace("_", ""),
            side=OrderSide(row.get("side", "buy").upper()),
            type=OrderType.MARKET if row.get("type") == "market" else OrderType.LIMIT,
            status=status,
            requested_qty=amount,
            price=price if price > 0 else None,
            executed_qty=to_decimal(row.get("filled_amount")) or max(amount - left, Decimal("0")),
            avg_price=avg_price if avg_price > 0 else None,
            timestamp=utc_from_ms(row.get("update_time_ms") or row.get("create_time_ms") or self._timestamp_ms()),
            exchange_name=self.name,
        )

    # ============================================================
    # MARKET DATA
    # ============================================================

    async def _ticker_row(self, symbol: str) -> Dict[str, Any]:
        rows = await self._request("GET", "/spot/tickers", {"currency_pair": self.to_venue_symbol(symbol)})
        if not rows:
            raise map_venue_error(self.name, "INVALID_CURRENCY_PAIR", f"No ticker for {symbol}")
        return rows[0]

    async def get_price(self, symbol: str) -> Decimal:
        row = await self._ticker_row(symbol)
        return to_decimal(row["last"])

    async def get_klines(self, symbol: str, interval: str = "30m", limit: int = 200) -> List[Kline]:
        rows = await self._request(
            "GET", "/spot/candlesticks",
            {"currency_pair": self.to_venue_symbol(symbol), "interval": interval, "limit": limit},
        )
        # [t, quote_volume, close, high, low, open, base_volume, closed], oldest first.
        return [
            Kline(
                open_time=utc_from_ms(int(row[0]) * 1000),
                open=to_decimal(row[5]),
                high=to_decimal(row[3]),
                low=to_decimal(row[4]),
                close=to_decimal(row[2]),
                volume=to_decimal(row[6] if len(row) > 6 else row[1]),
            )
            for row in rows[-limit:]
        ]

    async def get_24h_ticker(self, symbol: str) -> Ticker24h:
        row = await self._ticker_row(symbol)
        return Ticker24h(
            symbol=symbol.upper(),
            last_price=to_decimal(row.get("last")),
            high=to_decimal(row.get("high_24h")),
            low=to_decimal(row.get("low_24h")),
            volume=to_decimal(row.get("base_volume")),
            quote_volume=to_decimal(row.get("quote_volume")),
            change_percent=to_decimal(row.get("change_percentage")),
            exchange_name=self.name,
        )

    # ============================================================
    # ACCOUNT
    # ============================================================

    async def get_all_balances(self) -> List[Balance]:
        rows = await self._request("GET", "/spot/accounts", signed=True)
        return [
            Balance(asset=row["currency"].upper(), free=to_decimal(row.get("available")), locked=to_decimal(row.get("locked")))
            for row in rows
        ]

    # ============================================================
    # ORDERS
    # ============================================================

    async def _place_trigger_order(self, request: NormalizedOrderRequest) -> Dict[str, Any]:
        # Sell stops fire on a fall, buy stops on a rise.
        rule = "<=" if request.side is OrderSide.SELL else ">="
        limit_priced = request.type is OrderType.STOP_LIMIT
        body = {
            "market": self.to_venue_symbol(request.symbol),
            "trigger": {
                "price": decimal_str(request.stop_price),
                "rule": rule,
                "expiration": 86400 * 30,
            },
            "put": {
                "type": "limit" if limit_priced else "market",
                "side": request.side.value.lower(),
                "price": decimal_str(request.price if limit_priced else request.stop_price),
                "amount": decimal_str(request.quantity),
                "account": "normal",
                "time_in_force": "gtc" if limit_priced else "ioc",
            },
        }
        return await self._request("POST", "/spot/price_orders", body=body, signed=True)

    async def place_order(self, request: NormalizedOrderRequest) -> NormalizedOrderResult:
        self.check_order_request(request)
        if request.type.is_stop:
            data = await self._place_trigger_order(request)
            order_id = str(data.get("id", ""))
        else:
            amount = request.quantity
            if request.type is OrderType.MARKET and request.side is OrderSide.BUY:
                amount = request.quantity * await self.get_price(request.symbol)
            body: Dict[str, Any] = {
                "currency_pair": self.to_venue_symbol(request.symbol),
                "side": request.side.value.lower(),
                "type": request.type.value.lower(),
                "amount": decimal_str(amount),
                "account": "spot",
            }
            if request.type is OrderType.LIMIT:
                body["price"] = decimal_str(request.price)
                body["time_in_force"] = GATE_TIF[request.time_in_force or TimeInForce.GTC]
            else:
                body["time_in_force"] = "ioc"
            if request.client_order_id:
                body["text"] = f"t-{request.client_order_id}"[:30]
            data = await self._request("POST", "/spot/orders", body=body, signed=True)
            order_id = str(data.get("id", ""))
            if data.get("status"):
                parsed = self._parse_order(data)
                self._log.log_order("placed", request.symbol, request.side.value, request.quantity, order_id)
                executed = parsed.executed_qty
                if amount is not request.quantity:
                    # Market buys are echoed in quote units.
                    executed = request.quantity if parsed.status is OrderStatus.FILLED else Decimal("0")
                return NormalizedOrderResult(
                    order_id=order_id,
                    symbol=request.symbol,
                    side=request.side,
                    type=request.type,
                    status=parsed.status,
                    requested_qty=request.quantity,
                    price=parsed.price,
                    executed_qty=executed,
                    avg_price=parsed.avg_price,
                    timestamp=parsed.timestamp,
                    exchange_name=self.name,
                )

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
        data = await self._request(
            "DELETE", f"/spot/orders/{order_id}",
            {"currency_pair": self.to_venue_symbol(symbol)},
            signed=True,
        )
        return self._parse_order(data)

    async def get_order(self, symbol: str, order_id: str) -> NormalizedOrderResult:
        data = await self._request(
            "GET", f"/spot/orders/{order_id}",
            {"currency_pair": self.to_venue_symbol(symbol)},
            signed=True,
        )
        return self._parse_order(data)

    async def get_open_orders(self, symbol: Optional[str] = None) -> List[NormalizedOrderResult]:
        if symbol:
            rows = await self._request(
                "GET", "/spot/orders",
                {"currency_pair": self.to_venue_symbol(symbol), "status": "open"},
                signed=True,
            )
            return [self._parse_order(row) for row in rows]
        groups = await self._request("GET", "/spot/open_orders", signed=True)
        return [self._parse_order(row) for group in groups for row in group.get("orders", [])]

    async def get_trade_history(self, symbol: str, limit: int = 50) -> List[TradeFill]:
        rows = await self._request(
            "GET", "/spot/my_trades",
            {"currency_pair": self.to_venue_symbol(symbol), "limit": limit},
            signed=True,
        )
        return [
            TradeFill(
                trade_id=str(row.get("id", "")),
                order_id=str(row.get("order_id", "")),
                symbol=symbol.upper(),
                side=OrderSide(row.get("side", "buy").upper()),
                price=to_decimal(row.get("price")),
                quantity=to_decimal(row.get("amount")),
                fee=to_decimal(row.get("fee")),
                fee_asset=row.get("fee_currency", ""),
                timestamp=utc_from_ms(int(to_decimal(row.get("create_time_ms")))),
                exchange_name=self.name,
            )
            for row in rows
        ]

    async def get_order_history(self, symbol: str, limit: int = 50) -> List[NormalizedOrderResult]:
        rows = await self._request(
            "GET", "/spot/orders",
            {"currency_pair": self.to_venue_symbol(symbol), "status": "finished", "limit": limit},
            signed=True,
        )
        return [self._parse_order(row) for row in rows]
