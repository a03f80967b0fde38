"""Entries at the edge of a band around the 144-period SMA/EMA average."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence, Tuple

from core.config import SymbolConfig
from core.interfaces import Candle
from core.utils import quantize
from services.execution.types import OrderIntent
from services.strategy.moving_averages import build_ma_snapshot
from services.strategy.types import IndicatorSnapshot

PRICE_TOLERANCE = Decimal("0.0005")


def cluster_band(average: Decimal, price: Decimal, threshold_pct: Decimal) -> Tuple[Decimal, Decimal]:
    """Return ``(high, low)``: the band widens away from the side price sits on."""

    factor = threshold_pct / Decimal(100)
    if price > average:
        return average, average * (1 - factor)
    return average * (1 + factor), average


class MovingAverageClusterEvaluator:
    name = "ma_cluster"

    def build_indicators(self, config: SymbolConfig, candles: Sequence[Candle]) -> IndicatorSnapshot:
        return build_ma_snapshot(config, candles)

    def evaluate(
        self, config: SymbolConfig, snapshot: IndicatorSnapshot, latest_price: Decimal
    ) -> Optional[OrderIntent]:
        average = (snapshot["ma144"] + snapshot["ema144"]) / 2
        high, low = cluster_band(average, latest_price, config.min_percent_threshold)
        places = config.price_place

        up_high = quantize(high * (1 + PRICE_TOLERANCE), places)
        down_high = quantize(high * (1 - PRICE_TOLERANCE), places)
        if down_high <= latest_price <= up_high:
            return self._intent(config, "buy", latest_price, quantize(low, places))

        up_low = quantize(low * (1 + PRICE_TOLERANCE), places)
        down_low = quantize(low * (1 - PRICE_TOLERANCE), places)
        if down_low <= latest_price <= up_low:
            return self._intent(config, "sell", latest_price, quantize(high, places))
        return None

    def _intent(self, config: SymbolConfig, side: str, price: Decimal, stop: Decimal) -> OrderIntent:
        return OrderIntent(
            symbol=config.symbol,
            side=side,  # type: ignore[arg-type]
            price=price,
            stop_loss_price=stop,
            margin_mode=config.margin_mode,
            source=self.name,
        )
