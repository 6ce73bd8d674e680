"""
DCA - Technical Strategy Score.

Coarse 0-100 score per indicator and an overall BUY / HOLD / SELL
recommendation, shown next to the sizing multiplier.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

from .snapshot import DCAMarketSnapshot


class Recommendation(Enum):
    BUY = "BUY"
    HOLD = "HOLD"
    SELL = "SELL"


@dataclass(frozen=True)
class StrategyScore:
    ema_score: int
    obv_score: int
    rsi_score: int
    macd_score: int
    total_score: int
    recommendation: Recommendation

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ema_score": self.ema_score,
            "obv_score": self.obv_score,
            "rsi_score": self.rsi_score,
            "macd_score": self.macd_score,
            "total_score": self.total_score,
            "recommendation": self.recommendation.value,
        }


def _ema_score(price: float, ema89: float) -> int:
    # Price far below the EMA scores as oversold
    diff = (price - ema89) / ema89 * 100 if ema89 else 0.0
    if diff > 5:
        return 20
    if diff > 2:
        return 35
    if diff > -2:
        return 50
    if diff > -5:
        return 65
    return 80


def _obv_score(obv: float, obv_prev: float) -> int:
    change = (obv - obv_prev) / abs(obv_prev) * 100 if obv_prev else 0.0
    if change > 10:
        return 80
    if change > 5:
        return 65
    if change > -5:
        return 50
    if change > -10:
        return 35
    return 20


def _rsi_score(rsi: float) -> int:
    if rsi > 70:
        return 20
    if rsi > 60:
        return 35
    if rsi > 40:
        return 50
    if rsi > 30:
        return 65
    return 80


def _macd_score(macd: float, signal: float) -> int:
    diff = macd - signal
    if diff > 0.01:
        return 80
    if diff > 0:
        return 65
    if diff > -0.01:
        return 50
    if diff > -0.02:
        return 35
    return 20


def score_strategy(snapshot: DCAMarketSnapshot) -> StrategyScore:
    ema_score = _ema_score(snapshot.current_price, snapshot.ema89)
    obv_score = _obv_score(snapshot.obv, snapshot.obv_prev)
    rsi_score = _rsi_score(snapshot.rsi)
    macd_score = _macd_score(snapshot.macd, snapshot.macd_signal)
    total = round((ema_score + obv_score + rsi_score + macd_score) / 4)

    if total >= 70:
        recommendation = Recommendation.BUY
    elif total <= 30:
        recommendation = Recommendation.SELL
    else:
        recommendation = Recommendation.HOLD

    return StrategyScore(
        ema_score=ema_score,
        obv_score=obv_score,
        rsi_score=rsi_score,
        macd_score=macd_score,
        total_score=total,
        recommendation=recommendation,
    )
