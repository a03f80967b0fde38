from __future__ import annotations

import logging
from decimal import Decimal

from core.config import EngineSettings, MartingaleSettings
from core.interfaces import VenueError
from services.market.cache import MarketDataCache
from services.policy.gates import SymbolGate
from services.risk.engine import RiskManager
from services.risk.presets import PRESETS
from services.telemetry import metrics
from tests.fakes.clock import FakeClock
from tests.fakes.configs import make_config, make_symbol
from tests.fakes.evaluators import StaticEvaluator, flat_candles


def _manager(venue, *, price: str, min_value: str = "110", max_value: str = "140", config=None):
    config = config or make_config()
    venue.candles["BTCUSDT"] = flat_candles(10)
    venue.prices["BTCUSDT"] = Decimal(price)
    evaluator = StaticEvaluator({"min_value": Decimal(min_value), "max_value": Decimal(max_value)})
    cache = MarketDataCache(
        venue, evaluator, config, settings=EngineSettings(min_candles=5), clock=FakeClock()
    )
    assert cache.refresh("BTCUSDT")
    gate = SymbolGate(lambda _s: 3600.0, clock=FakeClock())
    return RiskManager(venue, gate, cache, config, preset=PRESETS["balanced"]), gate


def test_sweep_reconciles_gate_for_all_symbols(venue) -> None:
    config = make_config(make_symbol("BTCUSDT"), make_symbol("ETHUSDT"))
    manager, gate = _manager(venue, price="100", config=config)
    venue.open_position("ETHUSDT")

    report = manager.sweep()
    assert sorted(report.reconciled) == ["BTCUSDT", "ETHUSDT"]
    assert gate.can_open("BTCUSDT") is True
    assert gate.can_open("ETHUSDT") is False

    venue.positions.clear()
    manager.sweep()
    assert gate.can_open("ETHUSDT") is True


def test_positions_failure_leaves_gate_untouched(venue) -> None:
    manager, gate = _manager(venue, price="100")
    venue.fail_positions = VenueError("down", code="timeout")
    report = manager.sweep()
    assert report.failures == 1
    assert gate.can_open("BTCUSDT") is False


def test_amends_long_stop_when_tighter(venue) -> None:
    manager, _ = _manager(venue, price="130")
    venue.open_position("BTCUSDT", side="long", entry="100")
    plan_id = venue.add_plan("BTCUSDT", "pos_loss", Decimal("95"), "long")

    report = manager.sweep()
    assert report.amended == [("BTCUSDT", plan_id, Decimal("126.64"))]
    assert venue.plans[plan_id].trigger_price == Decimal("126.64")
    assert metrics.counter("stop_amended") == 1


def test_no_amend_when_candidate_less_favourable(venue) -> None:
    manager, _ = _manager(venue, price="130")
    venue.open_position("BTCUSDT", side="long", entry="100")
    venue.add_plan("BTCUSDT", "pos_loss", Decimal("127"), "long")

    report = manager.sweep()
    assert report.amended == []
    assert report.unchanged == 1
    assert venue.amends == []


def test_no_amend_below_break_even(venue) -> None:
    # price barely in profit: only the MA floor is available and it sits below break-even
    manager, _ = _manager(venue, price="116")
    venue.open_position("BTCUSDT", side="long", entry="115")
    venue.add_plan("BTCUSDT", "pos_loss", Decimal("95"), "long")

    manager.sweep()
    assert venue.amends == []


def test_short_stop_moves_down(venue) -> None:
    manager, _ = _manager(venue, price="70", min_value="60", max_value="90")
    venue.open_position("BTCUSDT", side="short", entry="100")
    plan_id = venue.add_plan("BTCUSDT", "pos_loss", Decimal("105"), "short")

    report = manager.sweep()
    assert report.amended == [("BTCUSDT", plan_id, Decimal("72.56"))]


def test_ignores_take_profit_and_other_side_plans(venue) -> None:
    manager, _ = _manager(venue, price="130")
    venue.open_position("BTCUSDT", side="long", entry="100")
    venue.add_plan("BTCUSDT", "profit_plan", Decimal("150"), "long")
    venue.add_plan("BTCUSDT", "pos_loss", Decimal("95"), "short")

    manager.sweep()
    assert venue.amends == []


def test_amend_failure_is_logged_and_retried(venue, caplog) -> None:
    manager, _ = _manager(venue, price="130")
    venue.open_position("BTCUSDT", side="long", entry="100")
    plan_id = venue.add_plan("BTCUSDT", "pos_loss", Decimal("95"), "long")
    venue.fail_amend = VenueError("rejected", code="40001")

    with caplog.at_level(logging.WARNING, logger="sigexec.risk"):
        report = manager.sweep()
    assert report.failures == 1
    assert venue.plans[plan_id].trigger_price == Decimal("95")
    assert any(r.getMessage() == "risk.amend_failed" for r in caplog.records)

    venue.fail_amend = None
    report = manager.sweep()
    assert report.amended == [("BTCUSDT", plan_id, Decimal("126.64"))]


def test_stop_left_alone_without_market_snapshot(venue) -> None:
    config = make_config()
    cache = MarketDataCache(
        venue, StaticEvaluator({}), config, settings=EngineSettings(min_candles=5), clock=FakeClock()
    )
    gate = SymbolGate(lambda _s: 3600.0, clock=FakeClock())
    manager = RiskManager(venue, gate, cache, config, preset=PRESETS["balanced"])
    venue.open_position("BTCUSDT", side="long", entry="100")
    venue.add_plan("BTCUSDT", "pos_loss", Decimal("95"), "long")

    report = manager.sweep()
    assert report.amended == []
    assert report.unchanged == 1
    assert venue.amends == []


def test_martingale_target_follows_break_even(venue) -> None:
    cfg = make_symbol(martingale=MartingaleSettings(take_profit_pct=Decimal("2")))
    manager, _ = _manager(venue, price="95", min_value="90", config=make_config(cfg))
    venue.open_position("BTCUSDT", side="long", entry="95", break_even="96")
    tp_id = venue.add_plan("BTCUSDT", "pos_profit", Decimal("102"), "long")
    sl_id = venue.add_plan("BTCUSDT", "pos_loss", Decimal("50"), "long")

    report = manager.sweep()
    assert report.retargeted == [("BTCUSDT", tp_id, Decimal("97.92"))]
    assert venue.plans[tp_id].trigger_price == Decimal("97.92")
    assert venue.plans[sl_id].trigger_price == Decimal("50")
    assert metrics.counter("take_profit_amended") == 1

    assert manager.sweep().retargeted == []


def test_martingale_short_target_and_plain_config_untouched(venue) -> None:
    cfg = make_symbol(martingale=MartingaleSettings(direction="short", take_profit_pct=Decimal("2")))
    manager, _ = _manager(venue, price="101", config=make_config(cfg))
    venue.open_position("BTCUSDT", side="short", entry="100")
    tp_id = venue.add_plan("BTCUSDT", "pos_profit", Decimal("97"), "short")

    assert manager.sweep().retargeted == [("BTCUSDT", tp_id, Decimal("98.00"))]

    plain, _ = _manager(venue, price="101")
    venue.plans[tp_id].trigger_price = Decimal("97")
    assert plain.sweep().retargeted == []
    assert venue.plans[tp_id].trigger_price == Decimal("97")
