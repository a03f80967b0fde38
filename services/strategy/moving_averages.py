"""Moving-average snapshot shared by the MA-based evaluators."""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Sequence

from core.config import SymbolConfig
from core.indicators import closes, exponential_moving_average, simple_moving_average
from core.interfaces import Candle
from core.utils import quantize
from services.strategy.types import IndicatorSnapshot

MA_PERIODS = (21, 55, 144)
MA_KEYS = tuple(f"ma{p}" for p in MA_PERIODS) + tuple(f"ema{p}" for p in MA_PERIODS)


def build_ma_snapshot(config: SymbolConfig, candles: Sequence[Candle]) -> IndicatorSnapshot:
    """SMA/EMA 21/55/144 of closes plus the max/min across all six."""

    if not candles:
        raise ValueError("no candles")
    series = closes(candles)
    values: Dict[str, Decimal] = {}
    for period in MA_PERIODS:
        values[f"ma{period}"] = quantize(simple_moving_average(series, period), config.price_place)
        values[f"ema{period}"] = quantize(exponential_moving_average(series, period), config.price_place)
    averages = [values[key] for key in MA_KEYS]
    values["max_value"] = max(averages)
    values["min_value"] = min(averages)
    return IndicatorSnapshot(symbol=config.symbol, ts=candles[-1].ts, values=values)
