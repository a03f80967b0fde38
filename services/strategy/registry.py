from __future__ import annotations

from typing import Callable, Dict, List

from services.strategy.ma_cluster import MovingAverageClusterEvaluator
from services.strategy.ma_trend import MovingAverageTrendEvaluator
from services.strategy.martingale import MartingaleEvaluator
from services.strategy.range_band import RangeBandEvaluator
from services.strategy.types import SignalEvaluator

EvaluatorFactory = Callable[[], SignalEvaluator]


class StrategyRegistry:
    def __init__(self):
        self._factories: Dict[str, EvaluatorFactory] = {}

    def register(self, name: str, factory: EvaluatorFactory) -> None:
        self._factories[name] = factory

    def create(self, name: str) -> SignalEvaluator:
        try:
            factory = self._factories[name]
        except KeyError as exc:
            known = ", ".join(sorted(self._factories)) or "none"
            raise KeyError(f"unknown strategy {name!r} (known: {known})") from exc
        return factory()

    def names(self) -> List[str]:
        return sorted(self._factories)


def default_registry() -> StrategyRegistry:
    registry = StrategyRegistry()
    registry.register(MovingAverageTrendEvaluator.name, MovingAverageTrendEvaluator)
    registry.register(MovingAverageClusterEvaluator.name, MovingAverageClusterEvaluator)
    registry.register(RangeBandEvaluator.name, RangeBandEvaluator)
    registry.register(MartingaleEvaluator.name, MartingaleEvaluator)
    return registry
