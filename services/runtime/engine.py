"""Engine facade: owns the cache, gate, queue, executor and risk manager."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from core.clock import MonotonicFn, cooldown_for, monotonic
from core.config import EngineSettings, StrategyConfig, load_config
from core.interfaces import TradingVenue
from core.logging import with_trace
from core.runtime_flags import RuntimeFlags
from services.execution.engine import Notifier, OrderExecutor
from services.execution.queue import OrderQueue
from services.market.cache import MarketDataCache
from services.policy.gates import SymbolGate
from services.risk.engine import RiskManager, SweepReport
from services.risk.presets import TrailingPreset
from services.strategy.registry import StrategyRegistry, default_registry
from services.strategy.types import SignalEvaluator
from services.telemetry import TelemetryMetrics, metrics as default_metrics


def _alerts_disabled(**_: object) -> bool:
    return False


@dataclass(slots=True)
class TickReport:
    refreshed: List[str] = field(default_factory=list)
    signals: List[str] = field(default_factory=list)
    enqueued: List[str] = field(default_factory=list)
    dropped: Dict[str, str] = field(default_factory=dict)


class TradingEngine:
    """One strategy instance against one venue account.

    The scheduler drives it through :meth:`on_price_tick`,
    :meth:`on_market_tick` and :meth:`on_risk_tick`; :meth:`start` and
    :meth:`stop` manage the order consumer thread.
    """

    def __init__(
        self,
        venue: TradingVenue,
        evaluator: SignalEvaluator,
        config: StrategyConfig,
        *,
        settings: Optional[EngineSettings] = None,
        queue_capacity: int = 1000,
        clock: MonotonicFn = monotonic,
        telemetry: Optional[TelemetryMetrics] = None,
        notifier: Optional[Notifier] = None,
        preset: Optional[TrailingPreset] = None,
        dry_run: bool = False,
    ) -> None:
        self.log = logging.getLogger("sigexec.engine")
        self.venue = venue
        self.evaluator = evaluator
        self.config = config
        self.settings = settings or EngineSettings()
        self.metrics = telemetry or default_metrics
        self.gate = SymbolGate(self._cooldown_seconds, clock=clock)
        self.cache = MarketDataCache(
            venue, evaluator, config, settings=self.settings, clock=clock, telemetry=self.metrics
        )
        self.queue = OrderQueue(queue_capacity)
        self.executor = OrderExecutor(
            venue,
            self.queue,
            config,
            settings=self.settings,
            telemetry=self.metrics,
            notifier=notifier,
            dry_run=dry_run,
        )
        self.risk = RiskManager(venue, self.gate, self.cache, config, preset=preset, telemetry=self.metrics)
        self._account_ready = False
        self._lifecycle_lock = threading.Lock()

    @classmethod
    def from_flags(
        cls,
        flags: RuntimeFlags,
        venue: TradingVenue,
        *,
        registry: Optional[StrategyRegistry] = None,
        **kwargs,
    ) -> "TradingEngine":
        config = load_config(flags.strategy_config)
        name = flags.strategy or config.strategy
        evaluator = (registry or default_registry()).create(name)
        if not flags.alerts_enabled:
            kwargs.setdefault("notifier", _alerts_disabled)
        return cls(
            venue,
            evaluator,
            config,
            queue_capacity=flags.queue_capacity,
            dry_run=flags.dry_run,
            **kwargs,
        )

    @property
    def symbols(self) -> List[str]:
        return self.config.enabled_symbols()

    def _cooldown_seconds(self, symbol: str) -> float:
        cfg = self.config.get(symbol)
        if cfg is None:
            return cooldown_for("").total_seconds()
        if cfg.cooldown_sec is not None:
            return cfg.cooldown_sec
        return cooldown_for(cfg.timeframe).total_seconds()

    # ------------------------------------------------------------------
    # lifecycle
    def start(self) -> None:
        with self._lifecycle_lock:
            if not self._account_ready:
                self.initialize_account()
                self._subscribe_prices()
                self._account_ready = True
        self.executor.start()
        self.log.info("engine.started", extra=with_trace({"symbols": self.symbols}))

    def stop(self) -> None:
        self.queue.close()
        self.executor.stop()
        self.cache.close()
        self.log.info("engine.stopped")

    def initialize_account(self) -> None:
        """Apply margin mode and default leverage for every enabled symbol."""

        for symbol in self.symbols:
            cfg = self.config.symbols[symbol]
            try:
                self.venue.set_margin_mode(symbol, cfg.margin_mode, self.config.margin_coin)
                self.venue.set_leverage(symbol, cfg.leverage, self.config.margin_coin)
            except Exception as exc:  # noqa: BLE001 - retried when orders set leverage
                self.log.warning("engine.account_setup_failed", extra={"symbol": symbol, "error": str(exc)})

    def _subscribe_prices(self) -> None:
        try:
            self.venue.subscribe_ticker(self.symbols, self.cache.on_ticker)
        except NotImplementedError:
            self.log.info("engine.ticker_stream_unavailable")

    # ------------------------------------------------------------------
    # ticks
    def on_price_tick(self) -> List[str]:
        return self.cache.refresh_all(self.symbols, prices_only=True)

    def on_market_tick(self) -> TickReport:
        """Refresh market data, evaluate signals and enqueue admitted intents."""

        report = TickReport()
        try:
            report.refreshed = self.cache.refresh_all(self.symbols)
        except Exception:  # noqa: BLE001 - evaluate on whatever is cached
            self.log.exception("engine.refresh_error")
        self.evaluate_signals(report)
        return report

    def evaluate_signals(self, report: Optional[TickReport] = None) -> TickReport:
        report = report or TickReport()
        for symbol in self.symbols:
            try:
                self._evaluate(symbol, report)
            except Exception:  # noqa: BLE001 - skip this symbol's cycle only
                self.log.exception("engine.evaluate_error", extra={"symbol": symbol})
        return report

    def on_risk_tick(self) -> SweepReport:
        try:
            return self.risk.sweep()
        except Exception:  # noqa: BLE001 - next tick retries
            self.log.exception("engine.risk_error")
            return SweepReport(failures=1)

    # ------------------------------------------------------------------
    def _evaluate(self, symbol: str, report: TickReport) -> None:
        cfg = self.config.get(symbol)
        if cfg is None:
            self.log.error("engine.missing_config", extra={"symbol": symbol})
            return
        snap = self.cache.snapshot(symbol)
        if snap is None or snap.price is None or snap.indicators is None:
            return

        intent = self.evaluator.evaluate(cfg, snap.indicators, snap.price)
        if intent is None:
            return
        report.signals.append(symbol)
        self.metrics.inc("signals")

        decision = self.gate.admit(symbol)
        if not decision.allow:
            report.dropped[symbol] = decision.reason
            self.metrics.inc_dropped(decision.reason)
            self.log.debug("engine.signal_gated", extra={"symbol": symbol, "reason": decision.reason})
            return

        if self.queue.offer(intent):
            self.gate.block(symbol)
            report.enqueued.append(symbol)
            self.metrics.inc("intents_enqueued")
            self.log.info("engine.intent_enqueued", extra=intent.context())
            return

        self.gate.release(symbol)
        report.dropped[symbol] = "queue_full"
        self.metrics.inc_dropped("queue_full")
        self.log.warning("engine.queue_full", extra={"symbol": symbol, "capacity": self.queue.capacity})
