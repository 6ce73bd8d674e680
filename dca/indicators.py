"""
DCA - Technical Indicators.

Plain float series math over closes (oldest first). No I/O.
"""

import math
from typing import List, Sequence, Tuple


def ema_series(values: Sequence[float], period: int) -> List[float]:
    """
    Exponential moving average seeded with the SMA of the first ``period`` values.

    Returns one value per input from index ``period - 1`` onward,
    or an empty list when there is not enough data.
    """
    if period <= 0:
        raise ValueError("period must be positive")
    if len(values) < period:
        return []
    k = 2.0 / (period + 1)
    current = sum(values[:period]) / period
    series = [current]
    for value in values[period:]:
        current = (value - current) * k + current
        series.append(current)
    return series


def ema(values: Sequence[float], period: int) -> float:
    """Latest EMA value. Falls back to the plain mean on short history."""
    series = ema_series(values, period)
    if series:
        return series[-1]
    if not values:
        return 0.0
    return sum(values) / len(values)


def rsi(closes: Sequence[float], period: int = 14) -> float:
    """Relative strength index with Wilder smoothing. Neutral 50 on short history."""
    if len(closes) <= period:
        return 50.0

    gains = []
    losses = []
    for prev, cur in zip(closes, closes[1:]):
        change = cur - prev
        gains.append(max(change, 0.0))
        losses.append(max(-change, 0.0))

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period

    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0
    return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)


def macd(
    closes: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> Tuple[float, float]:
    """Latest (macd line, signal line). (0, 0) when history is too short."""
    fast_series = ema_series(closes, fast)
    slow_series = ema_series(closes, slow)
    if not slow_series:
        return 0.0, 0.0

    # fast_series starts (slow - fast) candles earlier than slow_series
    offset = slow - fast
    line = [fast_series[i + offset] - slow_value for i, slow_value in enumerate(slow_series)]
    signal_series = ema_series(line, signal)
    if not signal_series:
        return line[-1], line[-1]
    return line[-1], signal_series[-1]


def obv(closes: Sequence[float], volumes: Sequence[float]) -> List[float]:
    """On-balance volume series, starting at the first candle's volume."""
    if not closes:
        return []
    series = [volumes[0]]
    for i in range(1, len(closes)):
        if closes[i] > closes[i - 1]:
            series.append(series[-1] + volumes[i])
        elif closes[i] < closes[i - 1]:
            series.append(series[-1] - volumes[i])
        else:
            series.append(series[-1])
    return series


def volatility(closes: Sequence[float]) -> float:
    """Population standard deviation of close-to-close returns, in percent."""
    returns = [
        (cur - prev) / prev
        for prev, cur in zip(closes, closes[1:])
        if prev
    ]
    if len(returns) < 2:
        return 0.0
    mean = sum(returns) / len(returns)
    variance = sum((r - mean) ** 2 for r in returns) / len(returns)
    return math.sqrt(variance) * 100


def price_position(price: float, low: float, high: float) -> float:
    """Where ``price`` sits in [low, high], 0 to 100. 50 for a flat range."""
    if high <= low:
        return 50.0
    position = (price - low) / (high - low) * 100
    return min(100.0, max(0.0, position))
