"""Order sizing, leverage and take-profit schedule helpers."""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from core.interfaces import AccountBalance
from core.utils import change_percent, quantize

# Stop distance (in percent of price) times leverage is held under this budget.
LEVERAGE_RISK_BUDGET_PCT = Decimal("80")

_HUNDRED = Decimal("100")


@dataclass(slots=True)
class TakeProfitOrder:
    trigger_price: Decimal
    size: Decimal


def order_size(open_amount: Decimal, leverage: int, price: Decimal, volume_place: int) -> Decimal:
    """Contract size for ``open_amount`` margin at ``leverage``, HALF_UP to ``volume_place``."""

    if price <= 0:
        raise ValueError("price must be positive")
    return quantize(open_amount * Decimal(leverage) / price, volume_place)


def leverage_for_stop(price: Decimal, stop_loss: Decimal, max_leverage: int) -> int:
    """Largest leverage keeping ``stop distance % x leverage`` within the risk budget."""

    distance = abs(change_percent(stop_loss, price))
    if distance <= 0:
        return 1
    raw = math.floor(LEVERAGE_RISK_BUDGET_PCT / distance)
    return max(1, min(int(raw), max_leverage))


def check_balance(
    balance: Optional[AccountBalance], required: Decimal
) -> Tuple[bool, str]:
    if balance is None:
        return False, "account_missing"
    if balance.available < required:
        return False, "available_below_required"
    if balance.max_available_for_open < required:
        return False, "max_open_below_required"
    return True, "ok"


def reward_risk_take_profit(
    side: str, price: Decimal, stop_loss: Decimal, price_place: int
) -> Optional[Decimal]:
    """Take-profit price at a 1:1 reward/risk ratio, or ``None`` if the stop is on the wrong side."""

    if side == "buy" and price > stop_loss:
        return quantize(price + (price - stop_loss), price_place)
    if side == "sell" and price < stop_loss:
        return quantize(price - (stop_loss - price), price_place)
    return None


def take_profit_schedule(
    side: str,
    avg_price: Decimal,
    filled_size: Decimal,
    legs: Iterable[Tuple[Decimal, Decimal]],
    *,
    price_place: int,
    volume_place: int,
) -> List[TakeProfitOrder]:
    """Split a fill into partial take-profit orders.

    Each leg is ``(price_pct, position_pct)``. Legs resolving to a
    non-positive price or size are skipped.
    """

    orders: List[TakeProfitOrder] = []
    direction = Decimal(1) if side == "buy" else Decimal(-1)
    for price_pct, position_pct in legs:
        if price_pct <= 0 or position_pct <= 0:
            continue
        trigger = quantize(avg_price * (1 + direction * price_pct / _HUNDRED), price_place)
        size = quantize(filled_size * position_pct / _HUNDRED, volume_place)
        if trigger <= 0 or size <= 0:
            continue
        orders.append(TakeProfitOrder(trigger_price=trigger, size=size))
    return orders


@dataclass(slots=True)
class LadderLevel:
    """One averaging order below (long) or above (short) the entry price."""

    index: int
    price: Decimal
    notional: Decimal
    size: Decimal
    cumulative_step_pct: Decimal


def martingale_ladder(
    side: str,
    entry_price: Decimal,
    *,
    levels: int,
    step_pct: Decimal,
    amount_multiple: Decimal,
    price_multiple: Decimal,
    max_margin: Decimal,
    leverage: int,
    price_place: int,
    volume_place: int,
) -> List[LadderLevel]:
    """Geometric averaging ladder spending exactly ``max_margin`` across ``levels`` orders.

    Rung ``i`` gets margin proportional to ``amount_multiple ** i`` and sits a
    further ``step_pct * price_multiple ** i`` percent from entry, so distances
    accumulate. Rungs whose price or size rounds to zero are dropped.
    """

    if levels <= 0 or entry_price <= 0 or max_margin <= 0:
        return []
    weights = [amount_multiple ** i for i in range(levels)]
    scale = max_margin / sum(weights)
    base_step = quantize(step_pct / _HUNDRED, 3)
    direction = Decimal(-1) if side == "buy" else Decimal(1)

    ladder: List[LadderLevel] = []
    cumulative = Decimal(0)
    for index, weight in enumerate(weights):
        cumulative += base_step * price_multiple ** index
        price = quantize(entry_price * (1 + direction * cumulative), price_place)
        if price <= 0:
            break
        notional = quantize(weight * scale * Decimal(leverage), 3)
        size = quantize(notional / price, volume_place)
        if size <= 0:
            continue
        ladder.append(
            LadderLevel(
                index=index,
                price=price,
                notional=notional,
                size=size,
                cumulative_step_pct=quantize(cumulative * _HUNDRED, 2),
            )
        )
    return ladder
