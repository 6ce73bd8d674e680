"""
Pydantic schemas for raw inbound signals.

Structured payloads use camelCase keys from charting webhooks;
``pair`` and ``side`` are accepted for ``symbol`` and ``action``.
"""

import re
from decimal import Decimal
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# =============================================================
# ALERT TEXT
# =============================================================

# Plain decimals only: "1.2.3" or "." do not match
NUMBER = r"\d+(?:\.\d+)?(?![\d.])"

# ACTION SYMBOL @ PRICE [SL: x] [TP: y]
ALERT_PATTERN = re.compile(
    rf"(BUY|SELL|CLOSE)\s+(\w+)\s+@\s+({NUMBER})(?:\s+SL:\s+({NUMBER}))?(?:\s+TP:\s+({NUMBER}))?"
)


class AlertTextSignal(BaseModel):
    """Fields recovered from one alert line."""

    action: str
    symbol: str
    price: Decimal
    stop_loss: Optional[Decimal] = None
    take_profit: Optional[Decimal] = None


# =============================================================
# STRUCTURED PAYLOAD
# =============================================================

class RawSignalPayload(BaseModel):
    """Structured webhook payload. Unknown keys are kept for audit."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    symbol: Optional[str] = Field(default=None, validation_alias=AliasChoices("symbol", "pair"))
    action: Optional[str] = Field(default=None, validation_alias=AliasChoices("action", "side"))
    alert_text: Optional[str] = None
    strategy: Optional[str] = None
    exchange: Optional[str] = None
    order_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("orderType", "order_type"))
    price: Optional[Decimal] = None
    stop_loss: Optional[Decimal] = Field(default=None, validation_alias=AliasChoices("stopLoss", "stop_loss"))
    take_profit: Optional[Decimal] = Field(default=None, validation_alias=AliasChoices("takeProfit", "take_profit"))
    quantity: Optional[Decimal] = None
    position_size: Optional[Decimal] = Field(
        default=None, validation_alias=AliasChoices("positionSize", "position_size")
    )
    leverage: Optional[float] = None
    confidence: Optional[float] = None
    timeframe: Optional[str] = None
    message: Optional[str] = None

    @field_validator(
        "price", "stop_loss", "take_profit", "quantity", "position_size", "leverage", "confidence",
        mode="before",
    )
    @classmethod
    def blank_as_missing(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("symbol", "action", "exchange", "order_type", "strategy", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip() or None
        return value
