"""Post-trade risk sweep: gate reconciliation, trailing stops and martingale targets."""

from __future__ import annotations

import logging
import os
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from core.config import MartingaleSettings, StrategyConfig, SymbolConfig
from core.interfaces import Position, TradingVenue, TriggerPlan
from core.utils import decrease, increase
from services.market.cache import MarketDataCache
from services.policy.gates import SymbolGate
from services.risk.presets import PRESETS, TrailingPreset
from services.risk.trailing import dynamic_stop, should_amend
from services.telemetry import TelemetryMetrics, metrics as default_metrics

STOP_PLAN_TYPES = frozenset({"pos_loss", "loss_plan"})
POSITION_PROFIT_PLAN = "pos_profit"


@dataclass(slots=True)
class SweepReport:
    """Summary of one risk tick."""

    positions: int = 0
    reconciled: List[str] = field(default_factory=list)
    amended: List[Tuple[str, str, Decimal]] = field(default_factory=list)
    retargeted: List[Tuple[str, str, Decimal]] = field(default_factory=list)
    unchanged: int = 0
    failures: int = 0


def _preset_from_env() -> TrailingPreset:
    profile = os.getenv("TRAILING_PROFILE", "balanced").strip().lower()
    return PRESETS.get(profile, PRESETS["balanced"])


def _trail_base(values: Dict[str, Decimal], is_long: bool) -> Optional[Decimal]:
    if is_long:
        return values.get("min_value", values.get("low"))
    return values.get("max_value", values.get("high"))


class RiskManager:
    """Runs once per risk tick on the caller's thread.

    Plan orders are fetched fresh from the venue every sweep; nothing is kept
    locally between ticks. A failed amendment leaves the live trigger in place
    and is recomputed on the next tick.
    """

    def __init__(
        self,
        venue: TradingVenue,
        gate: SymbolGate,
        cache: MarketDataCache,
        config: StrategyConfig,
        *,
        preset: Optional[TrailingPreset] = None,
        telemetry: Optional[TelemetryMetrics] = None,
    ) -> None:
        self.log = logging.getLogger("sigexec.risk")
        self.venue = venue
        self.gate = gate
        self.cache = cache
        self.config = config
        self.preset = preset or _preset_from_env()
        self.metrics = telemetry or default_metrics

    def sweep(self) -> SweepReport:
        report = SweepReport()
        try:
            positions = self.venue.get_positions()
        except Exception as exc:  # noqa: BLE001 - retried next tick
            report.failures += 1
            self.log.warning("risk.positions_failed", extra={"error": str(exc)})
            return report

        by_symbol: Dict[str, List[Position]] = defaultdict(list)
        for position in positions:
            if position.size > 0:
                by_symbol[position.symbol].append(position)
        report.positions = sum(len(items) for items in by_symbol.values())

        for symbol in self.config.symbols:
            self.gate.reconcile(symbol, symbol in by_symbol)
            report.reconciled.append(symbol)

        for symbol, held in by_symbol.items():
            cfg = self.config.get(symbol)
            if cfg is None:
                self.log.debug("risk.unmanaged_position", extra={"symbol": symbol})
                continue
            try:
                plans = self.venue.get_pending_trigger_plans(symbol)
            except Exception as exc:  # noqa: BLE001
                report.failures += 1
                self.log.warning("risk.plans_failed", extra={"symbol": symbol, "error": str(exc)})
                continue
            for position in held:
                self._manage(position, plans, cfg, report)
        return report

    def candidate_stop(self, position: Position, cfg: SymbolConfig) -> Optional[Decimal]:
        """Most protective of the MA floor/ceiling and the trailing stop."""

        snap = self.cache.snapshot(position.symbol)
        if snap is None or snap.price is None or snap.indicators is None:
            return None
        is_long = position.is_long
        base = _trail_base(dict(snap.indicators.values), is_long)
        if base is None:
            return None
        trailing = dynamic_stop(
            is_long=is_long,
            latest_price=snap.price,
            break_even=position.break_even_price,
            base=base,
            threshold_pct=cfg.deviation_from_ma,
            price_place=cfg.price_place,
            preset=self.preset,
        )
        if trailing is None:
            return base
        return max(base, trailing) if is_long else min(base, trailing)

    def _manage(
        self,
        position: Position,
        plans: List[TriggerPlan],
        cfg: SymbolConfig,
        report: SweepReport,
    ) -> None:
        self._trail_stops(position, plans, cfg, report)
        if cfg.martingale is not None:
            self._retarget_take_profit(position, plans, cfg.martingale, cfg.price_place, report)

    def _trail_stops(
        self,
        position: Position,
        plans: List[TriggerPlan],
        cfg: SymbolConfig,
        report: SweepReport,
    ) -> None:
        stops = [
            plan
            for plan in plans
            if plan.plan_type in STOP_PLAN_TYPES and plan.side == position.hold_side
        ]
        if not stops:
            return
        candidate = self.candidate_stop(position, cfg)
        for plan in stops:
            if candidate is None or not should_amend(
                is_long=position.is_long,
                candidate=candidate,
                current=plan.trigger_price,
                break_even=position.break_even_price,
            ):
                report.unchanged += 1
                continue
            if self._amend("stop", position, plan, candidate, report):
                report.amended.append((position.symbol, plan.order_id, candidate))

    def _retarget_take_profit(
        self,
        position: Position,
        plans: List[TriggerPlan],
        settings: MartingaleSettings,
        price_place: int,
        report: SweepReport,
    ) -> None:
        """Keep a martingale target ``take_profit_pct`` past the current break-even.

        Ladder fills move break-even, so the whole-position target follows it
        in either direction.
        """

        be = position.break_even_price
        if position.is_long:
            target = increase(be, settings.take_profit_pct, price_place)
        else:
            target = decrease(be, settings.take_profit_pct, price_place)
        for plan in plans:
            if plan.plan_type != POSITION_PROFIT_PLAN or plan.side != position.hold_side:
                continue
            if plan.trigger_price == target:
                report.unchanged += 1
                continue
            if self._amend("take_profit", position, plan, target, report):
                report.retargeted.append((position.symbol, plan.order_id, target))

    def _amend(
        self, kind: str, position: Position, plan: TriggerPlan, trigger: Decimal, report: SweepReport
    ) -> bool:
        context = {
            "symbol": position.symbol,
            "hold_side": position.hold_side,
            "order_id": plan.order_id,
            "plan_type": plan.plan_type,
            "current": plan.trigger_price,
            "candidate": trigger,
            "break_even": position.break_even_price,
        }
        try:
            self.venue.amend_trigger_plan(
                order_id=plan.order_id,
                symbol=position.symbol,
                trigger_price=trigger,
                size=plan.size,
            )
        except Exception as exc:  # noqa: BLE001 - previous trigger stays live
            report.failures += 1
            self.metrics.inc(f"{kind}_amend_failed")
            self.log.warning("risk.amend_failed", extra={**context, "error": str(exc)})
            return False
        self.metrics.inc(f"{kind}_amended")
        self.log.info(f"risk.{kind}_amended", extra=context)
        return True
