"""
DCA - Market Snapshot.

============================================================
PURPOSE
============================================================
The immutable indicator set the sizing engine consumes.

Built once per decision cycle from candle history:
- ema89 over closes
- RSI(14), MACD(12, 26, 9), OBV (last and previous)
- Volatility from close-to-close returns
- Price position within the window's high/low range
- Support/resistance from the last 20 closes (-2% / +2%)

============================================================
"""

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Sequence

from core.exceptions import ValidationError
from exchanges.types import Kline

from . import indicators


MIN_CANDLES = 2


@dataclass(frozen=True)
class DCAMarketSnapshot:
    """Indicator values for one symbol at one point in time."""

    current_price: float
    ema89: float
    rsi: float
    volatility: float
    """Percent."""

    price_position: float
    """0 (window low) to 100 (window high)."""

    macd: float
    macd_signal: float
    obv: float
    obv_prev: float
    support: float
    resistance: float

    def validate(self) -> None:
        for name, value in asdict(self).items():
            if not isinstance(value, (int, float)) or not math.isfinite(value):
                raise ValidationError(f"Snapshot field {name} must be a finite number", field=name)
        if self.current_price <= 0:
            raise ValidationError("current_price must be positive", field="current_price")

    @property
    def below_ema(self) -> bool:
        return self.current_price < self.ema89

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_snapshot(
    klines: Sequence[Kline],
    ema_period: int = 89,
    sr_window: int = 20,
) -> DCAMarketSnapshot:
    """
    Compute a snapshot from candles, oldest first.

    Raises:
        ValidationError: fewer than two candles
    """
    if len(klines) < MIN_CANDLES:
        raise ValidationError(
            f"Need at least {MIN_CANDLES} candles to build a snapshot, got {len(klines)}",
            field="klines",
        )

    closes = [float(k.close) for k in klines]
    volumes = [float(k.volume) for k in klines]
    current = closes[-1]

    macd_line, macd_signal = indicators.macd(closes)
    obv_series = indicators.obv(closes, volumes)
    recent = closes[-sr_window:]

    return DCAMarketSnapshot(
        current_price=current,
        ema89=indicators.ema(closes, ema_period),
        rsi=indicators.rsi(closes),
        volatility=indicators.volatility(closes),
        price_position=indicators.price_position(
            current,
            min(float(k.low) for k in klines),
            max(float(k.high) for k in klines),
        ),
        macd=macd_line,
        macd_signal=macd_signal,
        obv=obv_series[-1],
        obv_prev=obv_series[-2],
        support=min(recent) * 0.98,
        resistance=max(recent) * 1.02,
    )
