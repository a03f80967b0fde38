from __future__ import annotations

from decimal import Decimal

import pytest

from core.indicators import (
    bottom_low_average,
    exponential_moving_average,
    simple_moving_average,
    top_high_average,
)
from core.interfaces import Candle


def _candle(o, h, l, c) -> Candle:
    return Candle(ts=0, open=Decimal(o), high=Decimal(h), low=Decimal(l), close=Decimal(c), volume=Decimal(1))


def test_sma_uses_trailing_window() -> None:
    series = [Decimal(v) for v in (1, 2, 3, 4, 5)]
    assert simple_moving_average(series, 3) == Decimal(4)


def test_ema_of_constant_series_is_constant() -> None:
    series = [Decimal("10")] * 30
    assert exponential_moving_average(series, 10) == Decimal("10")


def test_ema_weights_recent_values() -> None:
    series = [Decimal(1)] * 10 + [Decimal(11)]
    ema = exponential_moving_average(series, 10)
    assert Decimal(1) < ema < Decimal(11)
    assert float(ema) == pytest.approx(1 + 10 * 2 / 11)


def test_insufficient_data_raises() -> None:
    with pytest.raises(ValueError):
        simple_moving_average([Decimal(1)], 5)
    with pytest.raises(ValueError):
        exponential_moving_average([Decimal(1)], 5)


def test_top_and_bottom_candle_averages() -> None:
    candles = [
        _candle("10", "12", "9", "11"),  # bullish
        _candle("11", "15", "10", "14"),  # bullish
        _candle("14", "14", "8", "9"),  # bearish
        _candle("9", "10", "6", "7"),  # bearish
    ]
    assert top_high_average(candles, 1) == Decimal("15")
    assert top_high_average(candles, 10) == Decimal("13.5")
    assert bottom_low_average(candles, 1) == Decimal("6")
    assert bottom_low_average(candles, 10) == Decimal("7")


def test_candle_averages_need_matching_direction() -> None:
    assert top_high_average([_candle("10", "11", "8", "9")]) is None
    assert bottom_low_average([_candle("9", "11", "8", "10")]) is None
