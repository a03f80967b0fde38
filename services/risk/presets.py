"""Trailing-stop configuration presets."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple


@dataclass(frozen=True)
class CoefficientBand:
    """Coefficient for excess deviation up to ``upper`` (``None`` = unbounded).

    Within the band the coefficient is ``base + (excess - start) * step`` where
    ``start`` is the previous band's upper bound.
    """

    upper: Optional[Decimal]
    base: Decimal
    step: Decimal


@dataclass(frozen=True)
class TrailingPreset:
    bands: Tuple[CoefficientBand, ...]
    max_coefficient: Decimal
    min_profit_pct: Decimal
    break_even_buffer_pct: Decimal


PRESETS = {
    "balanced": TrailingPreset(
        bands=(
            CoefficientBand(Decimal("10"), Decimal("0.75"), Decimal("0.01")),
            CoefficientBand(Decimal("20"), Decimal("0.85"), Decimal("0.01")),
            CoefficientBand(None, Decimal("0.90"), Decimal("0.0035")),
        ),
        max_coefficient=Decimal("0.95"),
        min_profit_pct=Decimal("1.5"),
        break_even_buffer_pct=Decimal("0.5"),
    ),
    "tight": TrailingPreset(
        bands=(
            CoefficientBand(Decimal("5"), Decimal("0.80"), Decimal("0.01")),
            CoefficientBand(Decimal("15"), Decimal("0.85"), Decimal("0.006")),
            CoefficientBand(None, Decimal("0.91"), Decimal("0.002")),
        ),
        max_coefficient=Decimal("0.95"),
        min_profit_pct=Decimal("1.0"),
        break_even_buffer_pct=Decimal("0.5"),
    ),
}
