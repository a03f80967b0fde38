from __future__ import annotations

from decimal import Decimal

import pytest

from services.risk.presets import PRESETS
from services.risk.trailing import dynamic_stop, should_amend, staged_coefficient


@pytest.mark.parametrize(
    "excess, expected",
    [
        ("-3", "0.75"),
        ("0", "0.75"),
        ("5", "0.80"),
        ("10", "0.85"),
        ("15", "0.90"),
        ("20", "0.95"),
        ("30", "0.935"),
    ],
)
def test_staged_coefficient_bands(excess: str, expected: str) -> None:
    assert staged_coefficient(Decimal(excess)) == Decimal(expected)


def test_staged_coefficient_is_capped() -> None:
    assert staged_coefficient(Decimal("100")) == PRESETS["balanced"].max_coefficient
    assert staged_coefficient(Decimal("1000"), PRESETS["tight"]) == Decimal("0.95")


def test_dynamic_stop_long_trails_between_base_and_price() -> None:
    stop = dynamic_stop(
        is_long=True,
        latest_price=Decimal("130"),
        break_even=Decimal("100"),
        base=Decimal("110"),
        threshold_pct=Decimal("10"),
        price_place=2,
    )
    # deviation 18.18%, excess 8.18 -> coefficient 0.8318
    assert stop == Decimal("126.64")


def test_dynamic_stop_short_mirrors_long() -> None:
    stop = dynamic_stop(
        is_long=False,
        latest_price=Decimal("70"),
        break_even=Decimal("100"),
        base=Decimal("90"),
        threshold_pct=Decimal("10"),
        price_place=2,
    )
    # deviation 22.22%, excess 12.22 -> coefficient 0.8722
    assert stop == Decimal("72.56")


def test_dynamic_stop_requires_minimum_profit() -> None:
    assert (
        dynamic_stop(
            is_long=True,
            latest_price=Decimal("101"),
            break_even=Decimal("100"),
            base=Decimal("80"),
            threshold_pct=Decimal("10"),
            price_place=2,
        )
        is None
    )


def test_dynamic_stop_requires_deviation_beyond_threshold() -> None:
    assert (
        dynamic_stop(
            is_long=True,
            latest_price=Decimal("130"),
            break_even=Decimal("100"),
            base=Decimal("125"),
            threshold_pct=Decimal("10"),
            price_place=2,
        )
        is None
    )


def test_dynamic_stop_pulled_past_break_even() -> None:
    stop = dynamic_stop(
        is_long=True,
        latest_price=Decimal("126.5"),
        break_even=Decimal("124.5"),
        base=Decimal("100"),
        threshold_pct=Decimal("10"),
        price_place=2,
    )
    # raw stop 124.25 is below break-even, so 124.5 * 1.005
    assert stop == Decimal("125.12")


def test_dynamic_stop_short_pulled_past_break_even() -> None:
    stop = dynamic_stop(
        is_long=False,
        latest_price=Decimal("97"),
        break_even=Decimal("100"),
        base=Decimal("130"),
        threshold_pct=Decimal("10"),
        price_place=2,
    )
    # raw stop 100.17 is above break-even, so 100 * 0.995
    assert stop == Decimal("99.50")


def test_dynamic_stop_losing_position_returns_none() -> None:
    assert (
        dynamic_stop(
            is_long=False,
            latest_price=Decimal("105"),
            break_even=Decimal("100"),
            base=Decimal("120"),
            threshold_pct=Decimal("1"),
            price_place=2,
        )
        is None
    )


def test_should_amend_only_when_strictly_tighter_and_past_break_even() -> None:
    be = Decimal("100")
    assert should_amend(is_long=True, candidate=Decimal("105"), current=Decimal("95"), break_even=be)
    assert not should_amend(is_long=True, candidate=Decimal("105"), current=Decimal("105"), break_even=be)
    assert not should_amend(is_long=True, candidate=Decimal("104"), current=Decimal("105"), break_even=be)
    assert not should_amend(is_long=True, candidate=Decimal("99"), current=Decimal("95"), break_even=be)
    assert not should_amend(is_long=True, candidate=None, current=Decimal("95"), break_even=be)

    assert should_amend(is_long=False, candidate=Decimal("95"), current=Decimal("105"), break_even=be)
    assert not should_amend(is_long=False, candidate=Decimal("96"), current=Decimal("95"), break_even=be)
    assert not should_amend(is_long=False, candidate=Decimal("101"), current=Decimal("105"), break_even=be)
