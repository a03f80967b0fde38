"""Thread-safe cache of the latest price and indicator snapshot per symbol."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import replace
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from core.clock import MonotonicFn, monotonic
from core.config import EngineSettings, StrategyConfig
from core.interfaces import Ticker, TradingVenue
from services.strategy.types import IndicatorSnapshot, MarketSnapshot, SignalEvaluator
from services.telemetry import TelemetryMetrics, metrics as default_metrics

log = logging.getLogger("sigexec.market")


class _Slot:
    __slots__ = ("lock", "snapshot")

    def __init__(self, symbol: str) -> None:
        self.lock = threading.Lock()
        self.snapshot = MarketSnapshot(symbol=symbol, price=None, indicators=None, updated_at=0.0)


class MarketDataCache:
    """Latest price and indicators per symbol.

    A refresh replaces the cached entry wholesale; a failed refresh keeps the
    previous entry and only logs. Retrying is left to the next tick.
    """

    def __init__(
        self,
        venue: TradingVenue,
        evaluator: SignalEvaluator,
        config: StrategyConfig,
        *,
        settings: Optional[EngineSettings] = None,
        clock: MonotonicFn = monotonic,
        telemetry: Optional[TelemetryMetrics] = None,
    ) -> None:
        self.venue = venue
        self.evaluator = evaluator
        self.config = config
        self.settings = settings or EngineSettings()
        self._clock = clock
        self._metrics = telemetry or default_metrics
        self._slots: Dict[str, _Slot] = {}
        self._registry_lock = threading.Lock()
        self._pool: Optional[ThreadPoolExecutor] = None
        self._pool_lock = threading.Lock()

    def _slot(self, symbol: str) -> _Slot:
        slot = self._slots.get(symbol)
        if slot is None:
            with self._registry_lock:
                slot = self._slots.setdefault(symbol, _Slot(symbol))
        return slot

    # ------------------------------------------------------------------
    # reads
    def snapshot(self, symbol: str) -> Optional[MarketSnapshot]:
        slot = self._slots.get(symbol)
        if slot is None:
            return None
        with slot.lock:
            snap = slot.snapshot
        if snap.price is None and snap.indicators is None:
            return None
        return snap

    def price(self, symbol: str) -> Optional[Decimal]:
        snap = self.snapshot(symbol)
        return snap.price if snap else None

    def indicators(self, symbol: str) -> Optional[IndicatorSnapshot]:
        snap = self.snapshot(symbol)
        return snap.indicators if snap else None

    # ------------------------------------------------------------------
    # writes
    def update_price(self, symbol: str, price: Decimal) -> None:
        slot = self._slot(symbol)
        with slot.lock:
            slot.snapshot = replace(slot.snapshot, price=price, updated_at=self._clock())

    def on_ticker(self, ticker: Ticker) -> None:
        """Callback for pushed ticker updates."""

        self.update_price(ticker.symbol, ticker.last_price)

    def refresh_price(self, symbol: str) -> bool:
        try:
            ticker = self.venue.get_ticker(symbol)
        except Exception as exc:  # noqa: BLE001 - stale beats unavailable
            self._refresh_failed(symbol, "ticker", exc)
            return False
        self.update_price(symbol, ticker.last_price)
        return True

    def refresh(self, symbol: str) -> bool:
        """Fetch candles and ticker for ``symbol`` and replace its entry."""

        cfg = self.config.get(symbol)
        if cfg is None:
            log.error("market.missing_config", extra={"symbol": symbol})
            return False
        try:
            candles = self.venue.get_candles(symbol, cfg.timeframe, self.settings.candle_limit)
            if len(candles) < self.settings.min_candles:
                raise ValueError(f"only {len(candles)} candles, need {self.settings.min_candles}")
            indicators = self.evaluator.build_indicators(cfg, candles)
            ticker = self.venue.get_ticker(symbol)
        except Exception as exc:  # noqa: BLE001 - stale beats unavailable
            self._refresh_failed(symbol, "candles", exc)
            return False

        slot = self._slot(symbol)
        with slot.lock:
            slot.snapshot = MarketSnapshot(
                symbol=symbol,
                price=ticker.last_price,
                indicators=indicators,
                updated_at=self._clock(),
            )
        log.debug("market.refreshed", extra={"symbol": symbol, "price": ticker.last_price})
        return True

    def refresh_all(self, symbols: Iterable[str], *, prices_only: bool = False) -> List[str]:
        """Refresh ``symbols`` concurrently; returns the ones that succeeded."""

        targets = list(symbols)
        if not targets:
            return []
        fn = self.refresh_price if prices_only else self.refresh
        pool = self._executor()
        futures = {pool.submit(fn, symbol): symbol for symbol in targets}
        done, pending = wait(futures, timeout=self.settings.refresh_timeout_sec)
        for future in pending:
            log.warning("market.refresh_timeout", extra={"symbol": futures[future]})
        return [futures[f] for f in done if not f.cancelled() and f.exception() is None and f.result()]

    def close(self) -> None:
        with self._pool_lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    def _executor(self) -> ThreadPoolExecutor:
        with self._pool_lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self.settings.refresh_workers,
                    thread_name_prefix="sigexec-refresh",
                )
            return self._pool

    def _refresh_failed(self, symbol: str, what: str, exc: BaseException) -> None:
        self._metrics.inc_refresh_failure(symbol)
        log.warning(
            "market.refresh_failed",
            extra={"symbol": symbol, "what": what, "error": str(exc)},
        )
