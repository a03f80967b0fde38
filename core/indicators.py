"""Technical indicator utilities operating on Decimal price series."""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence

from core.interfaces import Candle


def simple_moving_average(series: Sequence[Decimal], period: int) -> Decimal:
    if period <= 0:
        raise ValueError("period must be positive")
    if len(series) < period:
        raise ValueError("Insufficient data for SMA")
    window = series[-period:]
    return sum(window, Decimal(0)) / Decimal(period)


def exponential_moving_average(series: Sequence[Decimal], period: int) -> Decimal:
    """EMA seeded with the SMA of the first ``period`` values."""

    if period <= 0:
        raise ValueError("period must be positive")
    if len(series) < period:
        raise ValueError("Insufficient data for EMA")
    k = Decimal(2) / Decimal(period + 1)
    ema = sum(series[:period], Decimal(0)) / Decimal(period)
    for value in series[period:]:
        ema = (value - ema) * k + ema
    return ema


def closes(candles: Sequence[Candle]) -> list[Decimal]:
    return [candle.close for candle in candles]


def top_high_average(candles: Sequence[Candle], count: int = 10) -> Decimal | None:
    """Average high of the ``count`` highest bullish candles."""

    bullish = [c for c in candles if c.close >= c.open]
    if not bullish:
        return None
    top = sorted(bullish, key=lambda c: c.high, reverse=True)[:count]
    return sum((c.high for c in top), Decimal(0)) / Decimal(len(top))


def bottom_low_average(candles: Sequence[Candle], count: int = 10) -> Decimal | None:
    """Average low of the ``count`` lowest bearish candles."""

    bearish = [c for c in candles if c.close <= c.open]
    if not bearish:
        return None
    bottom = sorted(bearish, key=lambda c: c.low)[:count]
    return sum((c.low for c in bottom), Decimal(0)) / Decimal(len(bottom))
