"""Martingale cycles: a small market entry followed by a geometric averaging ladder."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence

from core.config import MartingaleSettings, SymbolConfig
from core.interfaces import Candle
from core.utils import decrease, increase, quantize
from services.execution.types import OrderIntent
from services.strategy.types import IndicatorSnapshot


class MartingaleEvaluator:
    """Opens a new cycle whenever the symbol is flat.

    The entry is ``min_trade_size`` at market in the configured direction. The
    executor rests the averaging ladder around the fill, and the take-profit
    closes the whole position ``take_profit_pct`` past the entry. Symbols
    without a ``martingale`` block use the default settings.
    """

    name = "martingale"

    def build_indicators(self, config: SymbolConfig, candles: Sequence[Candle]) -> IndicatorSnapshot:
        if not candles:
            raise ValueError("no candles")
        last = candles[-1]
        return IndicatorSnapshot(
            symbol=config.symbol,
            ts=last.ts,
            values={"close": quantize(last.close, config.price_place)},
        )

    def evaluate(
        self, config: SymbolConfig, snapshot: IndicatorSnapshot, latest_price: Decimal
    ) -> Optional[OrderIntent]:
        if latest_price <= 0:
            return None
        settings = config.martingale or MartingaleSettings()
        places = config.price_place
        if settings.direction == "long":
            side = "buy"
            take_profit = increase(latest_price, settings.take_profit_pct, places)
            stop_loss = decrease(latest_price, settings.stop_loss_pct, places)
        else:
            side = "sell"
            take_profit = decrease(latest_price, settings.take_profit_pct, places)
            stop_loss = increase(latest_price, settings.stop_loss_pct, places)
        return OrderIntent(
            symbol=config.symbol,
            side=side,  # type: ignore[arg-type]
            price=latest_price,
            stop_loss_price=stop_loss,
            size=settings.min_trade_size,
            take_profit_price=take_profit,
            margin_mode=config.margin_mode,
            required_margin=settings.max_invest_amount,
            ladder=settings,
            source=self.name,
        )
