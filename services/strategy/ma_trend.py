"""Trend-following and breakout entries on aligned MA/EMA 21/55/144."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence

from core.config import SymbolConfig
from core.interfaces import Candle
from core.utils import decrease, increase, quantize
from services.execution.types import OrderIntent
from services.policy.sizing import leverage_for_stop, reward_risk_take_profit
from services.strategy.moving_averages import build_ma_snapshot
from services.strategy.types import IndicatorSnapshot

# Entry zone width around the MA midpoint, percent.
MEDIAN_DEVIATION = Decimal("0.5")
TAKE_PROFIT_RATIO = Decimal("0.5")


def _all_gt(value: Decimal, *others: Decimal) -> bool:
    return all(value > other for other in others)


def _all_lt(value: Decimal, *others: Decimal) -> bool:
    return all(value < other for other in others)


def is_long_trend(s: IndicatorSnapshot) -> bool:
    ma21, ma55, ma144 = s["ma21"], s["ma55"], s["ma144"]
    ema21, ema55, ema144 = s["ema21"], s["ema55"], s["ema144"]
    return (
        _all_gt(ma21, ma55, ma144, ema55, ema144)
        and _all_gt(ema21, ema55, ema144, ma55, ma144)
        and (_all_gt(ma55, ma144, ema144) or _all_gt(ema55, ma144, ema144))
    )


def is_short_trend(s: IndicatorSnapshot) -> bool:
    ma21, ma55, ma144 = s["ma21"], s["ma55"], s["ma144"]
    ema21, ema55, ema144 = s["ema21"], s["ema55"], s["ema144"]
    return (
        _all_lt(ma21, ma55, ma144, ema55, ema144)
        and _all_lt(ema21, ema55, ema144, ma55, ma144)
        and (_all_lt(ma55, ma144, ema144) or _all_lt(ema55, ma144, ema144))
    )


def is_breakout_alignment(s: IndicatorSnapshot, price: Decimal) -> bool:
    """Price past both 144 averages, which in turn bound every faster average."""

    ma144, ema144 = s["ma144"], s["ema144"]
    fast = (s["ma55"], s["ema55"], s["ma21"], s["ema21"])
    if _all_gt(price, ma144, ema144) and _all_gt(ma144, *fast) and _all_gt(ema144, *fast):
        return True
    return _all_lt(price, ma144, ema144) and _all_lt(ma144, *fast) and _all_lt(ema144, *fast)


class MovingAverageTrendEvaluator:
    """Buys pullbacks into the MA midpoint in an uptrend (sells mirror), else breakouts."""

    name = "ma_trend"

    def build_indicators(self, config: SymbolConfig, candles: Sequence[Candle]) -> IndicatorSnapshot:
        return build_ma_snapshot(config, candles)

    def evaluate(
        self, config: SymbolConfig, snapshot: IndicatorSnapshot, latest_price: Decimal
    ) -> Optional[OrderIntent]:
        intent = None
        if is_long_trend(snapshot) or is_short_trend(snapshot):
            intent = self._trend_entry(config, snapshot, latest_price)
        if intent is None and is_breakout_alignment(snapshot, latest_price):
            intent = self._breakout_entry(config, snapshot, latest_price)
        return intent

    def _trend_entry(
        self, config: SymbolConfig, s: IndicatorSnapshot, price: Decimal
    ) -> Optional[OrderIntent]:
        high, low = s["max_value"], s["min_value"]
        median = quantize((high + low) / 2, config.price_place)
        if _all_gt(price, s["ma144"], s["ema144"]) and (s["ma21"] > s["ma144"] or s["ema21"] > s["ema144"]):
            if decrease(median, MEDIAN_DEVIATION, config.price_place) <= price < median:
                return self._intent(config, "buy", price, low, "trend")
            return None
        if _all_lt(price, s["ma144"], s["ema144"]) and (s["ma21"] < s["ma144"] or s["ema21"] < s["ema144"]):
            if median < price <= increase(median, MEDIAN_DEVIATION, config.price_place):
                return self._intent(config, "sell", price, high, "trend")
        return None

    def _breakout_entry(
        self, config: SymbolConfig, s: IndicatorSnapshot, price: Decimal
    ) -> Optional[OrderIntent]:
        if price > s["max_value"]:
            return self._intent(config, "buy", price, s["min_value"], "breakout")
        if price < s["min_value"]:
            return self._intent(config, "sell", price, s["max_value"], "breakout")
        return None

    def _intent(
        self, config: SymbolConfig, side: str, price: Decimal, stop: Decimal, source: str
    ) -> OrderIntent:
        stop = quantize(stop, config.price_place)
        return OrderIntent(
            symbol=config.symbol,
            side=side,  # type: ignore[arg-type]
            price=price,
            stop_loss_price=stop,
            leverage=leverage_for_stop(price, stop, config.max_leverage),
            take_profit_price=reward_risk_take_profit(side, price, stop, config.price_place),
            take_profit_ratio=TAKE_PROFIT_RATIO,
            margin_mode=config.margin_mode,
            source=f"{self.name}.{source}",
        )
