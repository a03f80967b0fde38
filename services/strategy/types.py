"""Shared data structures for the strategy layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Optional, Protocol, Sequence

from core.config import SymbolConfig
from core.interfaces import Candle
from services.execution.types import OrderIntent


@dataclass(frozen=True, slots=True)
class IndicatorSnapshot:
    """Indicator values computed for one symbol on one refresh cycle."""

    symbol: str
    ts: int
    values: Mapping[str, Decimal] = field(default_factory=dict)

    def get(self, name: str) -> Optional[Decimal]:
        return self.values.get(name)

    def __getitem__(self, name: str) -> Decimal:
        return self.values[name]

    @property
    def max_value(self) -> Optional[Decimal]:
        return self.values.get("max_value")

    @property
    def min_value(self) -> Optional[Decimal]:
        return self.values.get("min_value")


@dataclass(frozen=True, slots=True)
class MarketSnapshot:
    symbol: str
    price: Optional[Decimal]
    indicators: Optional[IndicatorSnapshot]
    updated_at: float


class SignalEvaluator(Protocol):
    """Strategy plug-in: pure indicator builder plus signal rule."""

    name: str

    def build_indicators(
        self, config: SymbolConfig, candles: Sequence[Candle]
    ) -> IndicatorSnapshot:
        ...

    def evaluate(
        self,
        config: SymbolConfig,
        snapshot: IndicatorSnapshot,
        latest_price: Decimal,
    ) -> Optional[OrderIntent]:
        ...
