"""
Signals - Parser.

============================================================
PURPOSE
============================================================
Turns heterogeneous raw signals into a validated TradeSignal.

ACCEPTED SHAPES:
- Alert text: ``BUY SOLUSDT @ 150.5 SL: 145 TP: 160``
- Structured dict (``symbol``/``pair``, ``action``/``side``, ...)
- Structured dict carrying ``alert_text``

Anything malformed raises ValidationError and never reaches the
risk controller.

============================================================
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from core.clock import ClockProtocol, get_clock
from core.exceptions import ValidationError
from exchanges.manager import ExchangeManager
from exchanges.types import KNOWN_QUOTES, OrderType

from .config import SignalParserConfig
from .models import SignalAction, TradeSignal
from .schemas import ALERT_PATTERN, AlertTextSignal, RawSignalPayload


logger = logging.getLogger(__name__)

DEFAULT_QUOTE = "USDT"
ALERT_STRATEGY = "alert"
MANUAL_STRATEGY = "manual"


def normalize_symbol(symbol: str) -> str:
    """``sol/usdt`` -> ``SOLUSDT``; bare base assets get the USDT quote."""
    normalized = symbol.upper()
    for separator in ("/", "-", "_"):
        normalized = normalized.replace(separator, "")
    if any(normalized.endswith(q) and len(normalized) > len(q) for q in KNOWN_QUOTES):
        return normalized
    return normalized + DEFAULT_QUOTE


def parse_alert_text(text: str) -> AlertTextSignal:
    """
    Raises:
        ValidationError: no alert line, or a level that is not a plain number
    """
    line = text.strip()
    match = ALERT_PATTERN.search(line)
    if not match:
        raise ValidationError(f"Unrecognized alert format: {text!r}", field="alert_text")
    # an SL or TP left unconsumed had a malformed value
    rest = line[match.end():]
    if "SL:" in rest or "TP:" in rest:
        raise ValidationError(f"Malformed stop loss or take profit in alert: {text!r}", field="alert_text")
    action, symbol, price, stop_loss, take_profit = match.groups()
    try:
        return AlertTextSignal(
            action=action,
            symbol=symbol,
            price=Decimal(price),
            stop_loss=Decimal(stop_loss) if stop_loss else None,
            take_profit=Decimal(take_profit) if take_profit else None,
        )
    except InvalidOperation as e:
        raise ValidationError(f"Invalid number in alert: {text!r}", field="alert_text") from e


class SignalParser:
    """Raw payload -> TradeSignal."""

    def __init__(
        self,
        manager: ExchangeManager,
        config: Optional[SignalParserConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self.manager = manager
        self.config = config or SignalParserConfig()
        self._clock = clock or get_clock()

    def parse(self, raw: Any) -> TradeSignal:
        """
        Raises:
            ValidationError: unsupported shape, missing or invalid fields
        """
        if isinstance(raw, str):
            payload = RawSignalPayload(alert_text=raw)
        elif isinstance(raw, Mapping):
            try:
                payload = RawSignalPayload.model_validate(dict(raw))
            except PydanticValidationError as e:
                first = e.errors()[0]
                field = ".".join(str(part) for part in first.get("loc", ())) or None
                raise ValidationError(f"Invalid signal payload: {first.get('msg')}", field=field) from e
        else:
            raise ValidationError(f"Unsupported signal payload type {type(raw).__name__}", field="signal")

        if payload.alert_text:
            alert = parse_alert_text(payload.alert_text)
            symbol, action = alert.symbol, alert.action
            price, stop_loss, take_profit = alert.price, alert.stop_loss, alert.take_profit
            strategy = payload.strategy or ALERT_STRATEGY
        else:
            symbol, action = payload.symbol, payload.action
            price, stop_loss, take_profit = payload.price, payload.stop_loss, payload.take_profit
            strategy = payload.strategy or MANUAL_STRATEGY

        if not symbol:
            raise ValidationError("Signal is missing a symbol", field="symbol")
        if not action or action.upper() not in SignalAction.__members__:
            raise ValidationError(f"Invalid signal action {action!r}, expected BUY, SELL or CLOSE", field="action")

        confidence = payload.confidence if payload.confidence is not None else self.config.default_confidence
        if not 0 <= confidence <= 100:
            raise ValidationError(f"Confidence must be between 0 and 100, got {confidence}", field="confidence")

        quantity = self._quantity(payload)
        for name, value in (("price", price), ("stop_loss", stop_loss), ("take_profit", take_profit)):
            if value is not None and value <= 0:
                raise ValidationError(f"{name} must be positive", field=name)
        if payload.leverage is not None and payload.leverage <= 0:
            raise ValidationError("leverage must be positive", field="leverage")

        order_type = self._order_type(payload.order_type, price)
        signal = TradeSignal(
            symbol=normalize_symbol(symbol),
            action=SignalAction(action.upper()),
            exchange=self._exchange(payload.exchange),
            order_type=order_type,
            quantity=quantity,
            price=price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            leverage=payload.leverage,
            confidence=float(confidence),
            strategy=strategy,
            timestamp=self._clock.now(),
        )
        logger.debug("Parsed signal %s", signal.to_dict())
        return signal

    def _quantity(self, payload: RawSignalPayload) -> Decimal:
        if payload.quantity is not None:
            quantity = payload.quantity
        elif payload.position_size is not None:
            quantity = payload.position_size
        else:
            quantity = self.config.default_quantity
        if quantity <= 0:
            raise ValidationError("quantity must be positive", field="quantity")
        return Decimal(quantity)

    def _order_type(self, explicit: Optional[str], price: Optional[Decimal]) -> OrderType:
        if explicit:
            try:
                order_type = OrderType(explicit.upper())
            except ValueError:
                logger.debug("Ignoring unknown order type %r", explicit)
            else:
                if order_type is not OrderType.MARKET and price is None:
                    raise ValidationError(f"{order_type.value} signal requires a price", field="price")
                return order_type
        return OrderType.LIMIT if price is not None else OrderType.MARKET

    def _exchange(self, requested: Optional[str]) -> str:
        if requested:
            name = requested.lower()
            self.manager.require_exchange(name)
            return name
        if self.config.default_exchange:
            return self.config.default_exchange
        active = self.manager.get_active_exchanges()
        if not active:
            raise ValidationError("No active exchange available for signal", field="exchange")
        return active[0]
