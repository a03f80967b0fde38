from __future__ import annotations

from decimal import Decimal

from core.interfaces import AccountBalance
from services.policy.sizing import (
    check_balance,
    leverage_for_stop,
    martingale_ladder,
    order_size,
    reward_risk_take_profit,
    take_profit_schedule,
)


def test_order_size_rounds_half_up_to_volume_place() -> None:
    # 10 * 20 / 30000 = 0.0066666...
    assert order_size(Decimal("10"), 20, Decimal("30000"), 4) == Decimal("0.0067")
    # 10 * 3 / 8 = 3.75
    assert order_size(Decimal("10"), 3, Decimal("8"), 1) == Decimal("3.8")
    assert order_size(Decimal("10"), 1, Decimal("100000"), 3) == Decimal("0.000")


def test_leverage_for_stop_distance() -> None:
    # 2% stop distance -> floor(80 / 2) = 40
    assert leverage_for_stop(Decimal("102"), Decimal("100"), 100) == 40
    assert leverage_for_stop(Decimal("102"), Decimal("100"), 25) == 25
    # 90% distance still yields at least 1x
    assert leverage_for_stop(Decimal("100"), Decimal("1000"), 100) == 1
    assert leverage_for_stop(Decimal("100"), Decimal("100"), 100) == 1


def test_check_balance_reasons() -> None:
    required = Decimal("10")
    assert check_balance(None, required) == (False, "account_missing")
    low = AccountBalance("USDT", Decimal("5"), Decimal("50"))
    assert check_balance(low, required) == (False, "available_below_required")
    capped = AccountBalance("USDT", Decimal("50"), Decimal("5"))
    assert check_balance(capped, required) == (False, "max_open_below_required")
    ok = AccountBalance("USDT", Decimal("10"), Decimal("10"))
    assert check_balance(ok, required) == (True, "ok")


def test_reward_risk_take_profit() -> None:
    assert reward_risk_take_profit("buy", Decimal("100"), Decimal("95"), 2) == Decimal("105.00")
    assert reward_risk_take_profit("sell", Decimal("100"), Decimal("104"), 2) == Decimal("96.00")
    assert reward_risk_take_profit("buy", Decimal("100"), Decimal("101"), 2) is None


def test_take_profit_schedule_long_and_short() -> None:
    legs = [(Decimal("2"), Decimal("50")), (Decimal("5"), Decimal("50"))]
    long_orders = take_profit_schedule(
        "buy", Decimal("100"), Decimal("3"), legs, price_place=2, volume_place=2
    )
    assert [(o.trigger_price, o.size) for o in long_orders] == [
        (Decimal("102.00"), Decimal("1.50")),
        (Decimal("105.00"), Decimal("1.50")),
    ]
    short_orders = take_profit_schedule(
        "sell", Decimal("100"), Decimal("3"), legs, price_place=2, volume_place=2
    )
    assert [o.trigger_price for o in short_orders] == [Decimal("98.00"), Decimal("95.00")]


def test_take_profit_schedule_skips_non_positive_legs() -> None:
    legs = [(Decimal("0"), Decimal("50")), (Decimal("3"), Decimal("0")), (Decimal("3"), Decimal("0.01"))]
    orders = take_profit_schedule(
        "buy", Decimal("100"), Decimal("1"), legs, price_place=2, volume_place=2
    )
    assert orders == []


def test_martingale_ladder_spends_budget_geometrically() -> None:
    ladder = martingale_ladder(
        "buy",
        Decimal("100"),
        levels=3,
        step_pct=Decimal("1"),
        amount_multiple=Decimal("2"),
        price_multiple=Decimal("2"),
        max_margin=Decimal("70"),
        leverage=10,
        price_place=2,
        volume_place=3,
    )
    assert [level.index for level in ladder] == [0, 1, 2]
    assert [level.price for level in ladder] == [Decimal("99.00"), Decimal("97.00"), Decimal("93.00")]
    assert [level.notional for level in ladder] == [Decimal("100"), Decimal("200"), Decimal("400")]
    assert [level.size for level in ladder] == [Decimal("1.010"), Decimal("2.062"), Decimal("4.301")]
    assert [level.cumulative_step_pct for level in ladder] == [Decimal("1.00"), Decimal("3.00"), Decimal("7.00")]


def test_martingale_ladder_short_steps_up() -> None:
    ladder = martingale_ladder(
        "sell",
        Decimal("100"),
        levels=2,
        step_pct=Decimal("1"),
        amount_multiple=Decimal("1"),
        price_multiple=Decimal("1"),
        max_margin=Decimal("20"),
        leverage=5,
        price_place=1,
        volume_place=2,
    )
    assert [(level.price, level.size) for level in ladder] == [
        (Decimal("101.0"), Decimal("0.50")),
        (Decimal("102.0"), Decimal("0.49")),
    ]


def test_martingale_ladder_stops_before_non_positive_prices() -> None:
    ladder = martingale_ladder(
        "buy",
        Decimal("100"),
        levels=10,
        step_pct=Decimal("40"),
        amount_multiple=Decimal("1"),
        price_multiple=Decimal("1"),
        max_margin=Decimal("100"),
        leverage=1,
        price_place=2,
        volume_place=3,
    )
    assert [level.price for level in ladder] == [Decimal("60.00"), Decimal("20.00")]
    assert martingale_ladder(
        "buy",
        Decimal("100"),
        levels=0,
        step_pct=Decimal("1"),
        amount_multiple=Decimal("1"),
        price_multiple=Decimal("1"),
        max_margin=Decimal("100"),
        leverage=1,
        price_place=2,
        volume_place=3,
    ) == []
