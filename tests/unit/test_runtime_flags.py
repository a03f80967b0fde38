from __future__ import annotations

from core.runtime_flags import (
    get_runtime_flags,
    parse_bool,
    refresh_runtime_flags,
    runtime_flags_from_env,
)


def test_parse_bool_truthy_cases():
    truthy = ["1", "true", "TRUE", "Yes", "on", "Y", "t"]
    for value in truthy:
        assert parse_bool(value) is True


def test_parse_bool_falsey_cases():
    falsey = ["", "0", "false", "False", "no", "off", "n"]
    for value in falsey:
        assert parse_bool(value, default=True) is False


def test_parse_bool_none_uses_default():
    assert parse_bool(None, default=True) is True
    assert parse_bool(None, default=False) is False


def test_runtime_flags_from_env(monkeypatch):
    monkeypatch.setenv("DRY_RUN", "yes")
    monkeypatch.setenv("STRATEGY", "range_band")
    monkeypatch.setenv("QUEUE_CAPACITY", "5")
    monkeypatch.setenv("RISK_INTERVAL_SEC", "0.25")
    flags = runtime_flags_from_env()
    assert flags.dry_run is True
    assert flags.trading_mode == "dry_run"
    assert flags.strategy == "range_band"
    assert flags.queue_capacity == 5
    assert flags.risk_interval_sec == 0.25


def test_runtime_flags_fall_back_on_bad_values(monkeypatch):
    monkeypatch.setenv("QUEUE_CAPACITY", "-3")
    monkeypatch.setenv("MARKET_INTERVAL_SEC", "soon")
    flags = runtime_flags_from_env()
    assert flags.queue_capacity == 1000
    assert flags.market_interval_sec == 2.0


def test_runtime_flags_cache_tracks_env(monkeypatch):
    monkeypatch.setenv("STRATEGY", "ma_cluster")
    first = get_runtime_flags()
    assert get_runtime_flags() is first
    monkeypatch.setenv("STRATEGY", "ma_trend")
    second = get_runtime_flags()
    assert second.strategy == "ma_trend"
    assert refresh_runtime_flags().strategy == "ma_trend"


def test_runtime_flags_defaults_poll_prices_faster_than_signals(monkeypatch):
    for name in ("PRICE_INTERVAL_SEC", "MARKET_INTERVAL_SEC", "RISK_INTERVAL_SEC", "VENUE", "ALERTS_ENABLED"):
        monkeypatch.delenv(name, raising=False)
    flags = runtime_flags_from_env()
    assert flags.price_interval_sec == 0.5
    assert flags.market_interval_sec == 2.0
    assert flags.price_interval_sec < flags.market_interval_sec
    assert flags.venue == "paper"
    assert flags.alerts_enabled is True
