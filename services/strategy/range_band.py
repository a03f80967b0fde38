"""Mean-reversion entries at the averaged extremes of a candle range."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence

from core.config import SymbolConfig
from core.indicators import bottom_low_average, top_high_average
from core.interfaces import Candle
from core.utils import quantize
from services.execution.types import OrderIntent
from services.strategy.types import IndicatorSnapshot

PRICE_TOLERANCE = Decimal("0.0005")
STOP_LOSS_UPPER = Decimal("1.001")
STOP_LOSS_LOWER = Decimal("0.999")
MAX_EXTREME_GAP_PCT = Decimal("2")
TOP_CANDLES = 10
TAKE_PROFIT_RATIO = Decimal("0.5")


class RangeBandEvaluator:
    """Sells near the averaged top of the range and buys near the averaged bottom.

    The take-profit target is the range midpoint. Entries are refused when the
    absolute extreme sits more than 2% beyond its averaged level, or when the
    price has already crossed the midpoint.
    """

    name = "range_band"

    def build_indicators(self, config: SymbolConfig, candles: Sequence[Candle]) -> IndicatorSnapshot:
        if not candles:
            raise ValueError("no candles")
        places = config.price_place
        high = quantize(max(c.high for c in candles), places)
        low = quantize(min(c.low for c in candles), places)
        high_avg = top_high_average(candles, TOP_CANDLES)
        low_avg = bottom_low_average(candles, TOP_CANDLES)
        if high_avg is None or low_avg is None:
            raise ValueError("range needs both bullish and bearish candles")
        values = {
            "high": high,
            "low": low,
            "average": quantize((high + low) / 2, places),
            "high_average": quantize(high_avg, places),
            "low_average": quantize(low_avg, places),
        }
        return IndicatorSnapshot(symbol=config.symbol, ts=candles[-1].ts, values=values)

    def evaluate(
        self, config: SymbolConfig, snapshot: IndicatorSnapshot, latest_price: Decimal
    ) -> Optional[OrderIntent]:
        places = config.price_place
        high, low = snapshot["high"], snapshot["low"]
        average = snapshot["average"]
        high_avg, low_avg = snapshot["high_average"], snapshot["low_average"]

        if quantize(high_avg * (1 - PRICE_TOLERANCE), places) <= latest_price <= quantize(
            high_avg * (1 + PRICE_TOLERANCE), places
        ):
            if _gap_pct(high, high_avg) > MAX_EXTREME_GAP_PCT:
                return None
            if latest_price < average or latest_price < low_avg:
                return None
            return self._intent(config, "sell", latest_price, quantize(high * STOP_LOSS_UPPER, places), average)

        if quantize(low_avg * (1 - PRICE_TOLERANCE), places) <= latest_price <= quantize(
            low_avg * (1 + PRICE_TOLERANCE), places
        ):
            if _gap_pct(low, low_avg) > MAX_EXTREME_GAP_PCT:
                return None
            if latest_price > average or latest_price > high_avg:
                return None
            return self._intent(config, "buy", latest_price, quantize(low * STOP_LOSS_LOWER, places), average)
        return None

    def _intent(
        self, config: SymbolConfig, side: str, price: Decimal, stop: Decimal, target: Decimal
    ) -> OrderIntent:
        return OrderIntent(
            symbol=config.symbol,
            side=side,  # type: ignore[arg-type]
            price=price,
            stop_loss_price=stop,
            take_profit_price=target,
            take_profit_ratio=TAKE_PROFIT_RATIO,
            margin_mode=config.margin_mode,
            source=self.name,
        )


def _gap_pct(extreme: Decimal, averaged: Decimal) -> Decimal:
    if averaged == 0:
        return Decimal(0)
    return quantize(abs((extreme - averaged) / averaged * 100), 2)
