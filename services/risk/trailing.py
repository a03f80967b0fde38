"""Staged-coefficient trailing stop and the monotonic amendment rule."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from core.utils import change_percent, quantize
from services.risk.presets import PRESETS, TrailingPreset

_ZERO = Decimal(0)
_HUNDRED = Decimal(100)


def staged_coefficient(excess: Decimal, preset: TrailingPreset = PRESETS["balanced"]) -> Decimal:
    """Share of the base-to-price spread the stop trails at.

    ``excess`` is how far (in percent) price has moved beyond the activation
    threshold. Each band adds its own per-percent step on top of its base value
    and the result never exceeds ``preset.max_coefficient``.
    """

    excess = max(excess, _ZERO)
    start = _ZERO
    coefficient = preset.max_coefficient
    for band in preset.bands:
        if band.upper is None or excess <= band.upper:
            coefficient = band.base + (excess - start) * band.step
            break
        start = band.upper
    return min(coefficient, preset.max_coefficient)


def dynamic_stop(
    *,
    is_long: bool,
    latest_price: Decimal,
    break_even: Decimal,
    base: Decimal,
    threshold_pct: Decimal,
    price_place: int,
    preset: TrailingPreset = PRESETS["balanced"],
) -> Optional[Decimal]:
    """Trailing stop between ``base`` (an MA floor/ceiling) and ``latest_price``.

    Returns ``None`` until the position is in profit beyond
    ``preset.min_profit_pct`` and price has moved more than ``threshold_pct``
    away from ``base``. A stop that would land on the losing side of
    break-even is pulled to just past break-even.
    """

    if base <= 0 or break_even <= 0:
        return None
    if is_long and latest_price <= break_even:
        return None
    if not is_long and latest_price >= break_even:
        return None

    profit_pct = abs(change_percent(break_even, latest_price))
    if profit_pct <= preset.min_profit_pct:
        return None

    deviation = abs(change_percent(base, latest_price))
    if deviation <= threshold_pct:
        return None

    coefficient = staged_coefficient(deviation - threshold_pct, preset)
    buffer = preset.break_even_buffer_pct / _HUNDRED
    if is_long:
        stop = base + (latest_price - base) * coefficient
        if stop <= break_even:
            stop = break_even * (1 + buffer)
    else:
        stop = base - (base - latest_price) * coefficient
        if stop >= break_even:
            stop = break_even * (1 - buffer)
    return quantize(stop, price_place)


def is_tighter(is_long: bool, candidate: Decimal, current: Decimal) -> bool:
    return candidate > current if is_long else candidate < current


def beyond_break_even(is_long: bool, candidate: Decimal, break_even: Decimal) -> bool:
    return candidate > break_even if is_long else candidate < break_even


def should_amend(
    *, is_long: bool, candidate: Optional[Decimal], current: Decimal, break_even: Decimal
) -> bool:
    """True only for a strictly tighter stop that also locks in profit."""

    if candidate is None or candidate <= 0:
        return False
    return is_tighter(is_long, candidate, current) and beyond_break_even(is_long, candidate, break_even)
