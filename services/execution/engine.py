"""Single-consumer execution loop: validate, size, submit, install the risk plan."""

from __future__ import annotations

import logging
import queue
import threading
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from core.config import EngineSettings, StrategyConfig, SymbolConfig
from core.interfaces import OrderAck, TradingVenue, VenueError
from core.utils import quantize
from services.execution.queue import OrderQueue, QueueClosed
from services.execution.types import (
    ERROR,
    INSUFFICIENT_BALANCE,
    MISSING_CONFIG,
    POSITION_EXISTS,
    SIZE_ZERO,
    SUBMIT_FAILED,
    SUBMITTED,
    ExecOutcome,
    OrderIntent,
)
from services.ops import alerts
from services.policy.sizing import check_balance, martingale_ladder, order_size, take_profit_schedule
from services.telemetry import TelemetryMetrics, metrics as default_metrics, record_order_latency

DRY_RUN = "dry_run"

STOP_LOSS_PLAN = "pos_loss"
TAKE_PROFIT_PLAN = "profit_plan"
POSITION_TAKE_PROFIT_PLAN = "pos_profit"

Notifier = Callable[..., bool]


class OrderExecutor:
    """Drains the order queue on one dedicated thread.

    Every intent is resolved to an :class:`ExecOutcome`; validation failures
    are ordinary outcomes and unexpected errors are logged. Nothing raised
    while handling one intent stops the loop.
    """

    def __init__(
        self,
        venue: TradingVenue,
        order_queue: OrderQueue,
        config: StrategyConfig,
        *,
        settings: Optional[EngineSettings] = None,
        telemetry: Optional[TelemetryMetrics] = None,
        notifier: Optional[Notifier] = None,
        dry_run: bool = False,
        on_outcome: Optional[Callable[[OrderIntent, ExecOutcome], None]] = None,
    ) -> None:
        self.log = logging.getLogger("sigexec.execution")
        self.venue = venue
        self.queue = order_queue
        self.config = config
        self.settings = settings or EngineSettings()
        self.metrics = telemetry or default_metrics
        self.notifier = notifier if notifier is not None else alerts.notify_order_opened
        self.dry_run = dry_run
        self.on_outcome = on_outcome
        self._stop = threading.Event()
        self._start_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # lifecycle
    def start(self) -> bool:
        """Start the consumer thread; repeated calls while running are no-ops."""

        with self._start_lock:
            if self._thread is not None and self._thread.is_alive():
                return False
            self._stop.clear()
            self._thread = threading.Thread(target=self._run, name="sigexec-executor", daemon=True)
            self._thread.start()
        self.log.info("execution.consumer_started")
        return True

    def stop(self, timeout: float = 5.0) -> None:
        with self._start_lock:
            thread = self._thread
            self._stop.set()
        if thread is not None:
            thread.join(timeout)
            if thread.is_alive():
                self.log.warning("execution.consumer_stop_timeout", extra={"timeout": timeout})
        self.log.info("execution.consumer_stopped")

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                intent = self.queue.take(timeout=self.settings.executor_poll_sec)
            except queue.Empty:
                continue
            except QueueClosed:
                break
            try:
                outcome = self.process(intent)
                if self.on_outcome is not None:
                    self.on_outcome(intent, outcome)
            except Exception:  # noqa: BLE001 - the loop must survive any single intent
                self.log.exception("execution.unhandled_error", extra=intent.context())

    # ------------------------------------------------------------------
    def process(self, intent: OrderIntent) -> ExecOutcome:
        """Validate and submit one intent."""

        context = intent.context()
        cfg = self.config.get(intent.symbol)
        if cfg is None:
            self.log.error("execution.missing_config", extra=context)
            return self._outcome(intent, MISSING_CONFIG, "symbol not configured")
        try:
            return self._execute(intent, cfg, context)
        except Exception as exc:  # noqa: BLE001 - reported as an outcome
            self.log.exception("execution.error", extra=context)
            return self._outcome(intent, ERROR, str(exc))

    def _execute(self, intent: OrderIntent, cfg: SymbolConfig, context: dict) -> ExecOutcome:
        positions = self.venue.get_positions()
        if any(p.symbol == intent.symbol and p.size > 0 for p in positions):
            self.log.info("execution.skip_position_exists", extra=context)
            return self._outcome(intent, POSITION_EXISTS, "position already open")

        required = intent.required_margin or cfg.open_amount
        balance = self.venue.get_account_balance(self.config.margin_coin)
        ok, reason = check_balance(balance, required)
        if not ok:
            self.log.warning(
                "execution.skip_insufficient_balance",
                extra={
                    **context,
                    "reason": reason,
                    "required": required,
                    "available": balance.available if balance else None,
                },
            )
            return self._outcome(intent, INSUFFICIENT_BALANCE, reason)

        leverage = min(intent.leverage or cfg.leverage, cfg.max_leverage)
        size = intent.size or order_size(cfg.open_amount, leverage, intent.price, cfg.volume_place)
        if size <= 0:
            self.log.warning("execution.skip_size_zero", extra={**context, "leverage": leverage})
            return self._outcome(intent, SIZE_ZERO, "size rounds to zero")
        context = {**context, "size": size, "leverage": leverage}

        if self.dry_run:
            self.log.info("execution.dry_run", extra=context)
            return ExecOutcome(DRY_RUN, "dry run", intent.client_order_id, size=size, leverage=leverage)

        try:
            if intent.ladder is not None:
                # a new ladder replaces whatever rungs the last cycle left behind
                cancelled = self.venue.cancel_open_orders(intent.symbol)
                self.log.info("execution.open_orders_cancelled", extra={**context, "cancelled": cancelled})
            self.venue.set_leverage(intent.symbol, leverage, self.config.margin_coin)
            with record_order_latency(self.metrics):
                ack = self.venue.place_order(
                    client_order_id=intent.client_order_id,
                    symbol=intent.symbol,
                    size=size,
                    side=intent.side,
                    order_type=intent.order_kind,
                    margin_mode=intent.margin_mode or cfg.margin_mode,
                    price=intent.price if intent.order_kind == "limit" else None,
                )
        except VenueError as exc:
            self.metrics.inc_order_reject(exc.code or "venue_error")
            self.log.error("execution.submit_failed", extra={**context, "error": str(exc), "code": exc.code})
            return self._outcome(intent, SUBMIT_FAILED, str(exc))

        self.metrics.inc("orders_submitted")
        self.log.info("execution.submit_success", extra={**context, "order_id": ack.order_id})

        stop_id = self._install_stop_loss(intent, context)
        tp_ids = self._install_take_profit(intent, cfg, ack, size, context)
        ladder_ids = self._place_ladder(intent, cfg, ack, leverage, context)
        self._notify(intent, ack, size)
        alerts.audit_log(
            {
                "event": "order_opened",
                "symbol": intent.symbol,
                "side": intent.side,
                "size": str(size),
                "leverage": leverage,
                "price": str(intent.price),
                "stop_loss": str(intent.stop_loss_price),
                "client_order_id": intent.client_order_id,
                "order_id": ack.order_id,
                "source": intent.source,
            }
        )
        return ExecOutcome(
            SUBMITTED,
            "ok",
            client_order_id=ack.client_order_id,
            order_id=ack.order_id,
            size=size,
            leverage=leverage,
            stop_loss_plan_id=stop_id,
            take_profit_plan_ids=tp_ids,
            ladder_order_ids=ladder_ids,
        )

    # ------------------------------------------------------------------
    # risk plan
    def _install_stop_loss(self, intent: OrderIntent, context: dict) -> Optional[str]:
        try:
            plan_id = self.venue.place_trigger_plan(
                symbol=intent.symbol,
                plan_type=STOP_LOSS_PLAN,
                trigger_price=intent.stop_loss_price,
                hold_side=intent.hold_side,
            )
        except VenueError as exc:
            self.log.error("execution.stop_loss_failed", extra={**context, "error": str(exc)})
            return None
        self.log.info("execution.stop_loss_installed", extra={**context, "plan_id": plan_id})
        return plan_id

    def _install_take_profit(
        self,
        intent: OrderIntent,
        cfg: SymbolConfig,
        ack: OrderAck,
        size: Decimal,
        context: dict,
    ) -> List[str]:
        try:
            legs = self._take_profit_legs(intent, cfg, ack, size)
        except VenueError as exc:
            self.log.error("execution.take_profit_failed", extra={**context, "error": str(exc)})
            return []
        plan_ids: List[str] = []
        for plan_type, trigger, leg_size in legs:
            try:
                plan_id = self.venue.place_trigger_plan(
                    symbol=intent.symbol,
                    plan_type=plan_type,
                    trigger_price=trigger,
                    hold_side=intent.hold_side,
                    size=leg_size,
                )
            except VenueError as exc:
                self.log.error(
                    "execution.take_profit_failed",
                    extra={**context, "trigger": trigger, "leg_size": leg_size, "error": str(exc)},
                )
                continue
            plan_ids.append(plan_id)
        if plan_ids:
            self.log.info("execution.take_profit_installed", extra={**context, "plan_ids": plan_ids})
        return plan_ids

    def _take_profit_legs(
        self, intent: OrderIntent, cfg: SymbolConfig, ack: OrderAck, size: Decimal
    ) -> List[Tuple[str, Decimal, Optional[Decimal]]]:
        if intent.ladder is not None:
            # ladder fills grow the position, so the target closes all of it
            if intent.take_profit_price is not None and intent.take_profit_price > 0:
                return [(POSITION_TAKE_PROFIT_PLAN, intent.take_profit_price, None)]
            return []
        if cfg.take_profit_legs:
            detail = self.venue.get_order_detail(intent.symbol, ack.order_id)
            schedule = take_profit_schedule(
                intent.side,
                detail.price_avg,
                detail.base_volume,
                [(leg.price_pct, leg.position_pct) for leg in cfg.take_profit_legs],
                price_place=cfg.price_place,
                volume_place=cfg.volume_place,
            )
            return [(TAKE_PROFIT_PLAN, order.trigger_price, order.size) for order in schedule]
        if intent.take_profit_price is not None and intent.take_profit_ratio:
            leg_size = quantize(size * intent.take_profit_ratio, cfg.volume_place)
            if intent.take_profit_price > 0 and leg_size > 0:
                return [(TAKE_PROFIT_PLAN, intent.take_profit_price, leg_size)]
        return []

    def _place_ladder(
        self,
        intent: OrderIntent,
        cfg: SymbolConfig,
        ack: OrderAck,
        leverage: int,
        context: dict,
    ) -> List[str]:
        """Rest the averaging limit orders around the actual entry fill."""

        settings = intent.ladder
        if settings is None or settings.max_open_times <= 0:
            return []
        try:
            detail = self.venue.get_order_detail(intent.symbol, ack.order_id)
        except VenueError as exc:
            self.log.error("execution.ladder_failed", extra={**context, "error": str(exc)})
            return []
        levels = martingale_ladder(
            intent.side,
            detail.price_avg,
            levels=settings.max_open_times,
            step_pct=settings.add_position_pct,
            amount_multiple=settings.amount_multiple,
            price_multiple=settings.price_multiple,
            max_margin=settings.max_invest_amount,
            leverage=leverage,
            price_place=cfg.price_place,
            volume_place=cfg.volume_place,
        )
        order_ids: List[str] = []
        for level in levels:
            try:
                level_ack = self.venue.place_order(
                    client_order_id=f"{intent.client_order_id}-{level.index}",
                    symbol=intent.symbol,
                    size=level.size,
                    side=intent.side,
                    order_type="limit",
                    margin_mode=intent.margin_mode or cfg.margin_mode,
                    price=level.price,
                )
            except VenueError as exc:
                self.log.error(
                    "execution.ladder_order_failed",
                    extra={**context, "index": level.index, "price": level.price, "error": str(exc)},
                )
                continue
            order_ids.append(level_ack.order_id)
        if order_ids:
            self.log.info(
                "execution.ladder_installed",
                extra={**context, "orders": len(order_ids), "entry": detail.price_avg},
            )
        return order_ids

    def _notify(self, intent: OrderIntent, ack: OrderAck, size: Decimal) -> None:
        try:
            self.notifier(
                symbol=intent.symbol,
                side=intent.side,
                size=size,
                price=intent.price,
                stop_loss=intent.stop_loss_price,
                order_id=ack.order_id,
                source=intent.source,
            )
        except Exception:  # noqa: BLE001 - notification is best effort
            self.log.exception("execution.notify_failed", extra=intent.context())

    def _outcome(self, intent: OrderIntent, status: str, reason: str) -> ExecOutcome:
        self.metrics.inc_dropped(status)
        return ExecOutcome(status, reason, client_order_id=intent.client_order_id)
