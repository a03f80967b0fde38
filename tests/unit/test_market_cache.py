from __future__ import annotations

from decimal import Decimal

from core.config import EngineSettings
from core.interfaces import Ticker
from services.market.cache import MarketDataCache
from services.telemetry import metrics
from tests.fakes.clock import FakeClock
from tests.fakes.configs import make_config, make_symbol
from tests.fakes.evaluators import StaticEvaluator, flat_candles

VALUES = {"min_value": Decimal("90"), "max_value": Decimal("110")}


def _cache(venue, config=None, **settings):
    params = {"min_candles": 5, "candle_limit": 50}
    params.update(settings)
    return MarketDataCache(
        venue,
        StaticEvaluator(VALUES),
        config or make_config(),
        settings=EngineSettings(**params),
        clock=FakeClock(),
    )


def test_snapshot_empty_until_refreshed(venue) -> None:
    cache = _cache(venue)
    assert cache.snapshot("BTCUSDT") is None
    assert cache.price("BTCUSDT") is None


def test_refresh_replaces_entry(venue) -> None:
    venue.candles["BTCUSDT"] = flat_candles(10)
    venue.prices["BTCUSDT"] = Decimal("101")
    cache = _cache(venue)

    assert cache.refresh("BTCUSDT") is True
    snap = cache.snapshot("BTCUSDT")
    assert snap is not None
    assert snap.price == Decimal("101")
    assert snap.indicators is not None
    assert snap.indicators.min_value == Decimal("90")


def test_failed_refresh_keeps_previous_entry(venue) -> None:
    venue.candles["BTCUSDT"] = flat_candles(10)
    venue.prices["BTCUSDT"] = Decimal("101")
    cache = _cache(venue)
    assert cache.refresh("BTCUSDT")

    venue.fail_candles.add("BTCUSDT")
    assert cache.refresh("BTCUSDT") is False
    assert cache.price("BTCUSDT") == Decimal("101")
    assert metrics.snapshot()["refresh_failures_total"]["by_symbol"] == {"BTCUSDT": 1}


def test_too_few_candles_is_a_refresh_failure(venue) -> None:
    venue.candles["BTCUSDT"] = flat_candles(3)
    venue.prices["BTCUSDT"] = Decimal("101")
    cache = _cache(venue)
    assert cache.refresh("BTCUSDT") is False
    assert cache.snapshot("BTCUSDT") is None


def test_refresh_unknown_symbol_fails(venue) -> None:
    cache = _cache(venue)
    assert cache.refresh("XRPUSDT") is False


def test_price_updates_keep_indicators(venue) -> None:
    venue.candles["BTCUSDT"] = flat_candles(10)
    venue.prices["BTCUSDT"] = Decimal("101")
    cache = _cache(venue)
    cache.refresh("BTCUSDT")

    cache.on_ticker(Ticker(symbol="BTCUSDT", last_price=Decimal("102.5"), ts=1))
    assert cache.price("BTCUSDT") == Decimal("102.5")
    assert cache.indicators("BTCUSDT") is not None

    venue.prices["BTCUSDT"] = Decimal("103")
    assert cache.refresh_price("BTCUSDT") is True
    assert cache.price("BTCUSDT") == Decimal("103")


def test_refresh_all_returns_successful_symbols(venue) -> None:
    config = make_config(make_symbol("BTCUSDT"), make_symbol("ETHUSDT"), make_symbol("SOLUSDT"))
    for symbol in ("BTCUSDT", "ETHUSDT", "SOLUSDT"):
        venue.candles[symbol] = flat_candles(10)
        venue.prices[symbol] = Decimal("100")
    venue.fail_candles.add("ETHUSDT")
    cache = _cache(venue, config)
    try:
        refreshed = cache.refresh_all(["BTCUSDT", "ETHUSDT", "SOLUSDT"])
    finally:
        cache.close()
    assert sorted(refreshed) == ["BTCUSDT", "SOLUSDT"]
    assert cache.snapshot("ETHUSDT") is None


def test_refresh_all_prices_only(venue) -> None:
    venue.prices["BTCUSDT"] = Decimal("100")
    cache = _cache(venue)
    try:
        assert cache.refresh_all(["BTCUSDT"], prices_only=True) == ["BTCUSDT"]
    finally:
        cache.close()
    snap = cache.snapshot("BTCUSDT")
    assert snap is not None and snap.indicators is None
