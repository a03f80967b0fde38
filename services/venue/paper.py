"""In-memory paper trading venue.

Fills market orders at the last price, tracks one-way positions per symbol,
and fires stop-loss / take-profit plans when :meth:`PaperVenue.set_price`
crosses their trigger. Limit orders away from the market rest until the price
reaches them and then add to the same-side position, re-averaging its entry.
Submitting an already-seen client order id returns the original
acknowledgement instead of opening a second order.
"""

from __future__ import annotations

import itertools
import logging
import random
import threading
import time
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from core.clock import granularity
from core.interfaces import (
    AccountBalance,
    Candle,
    OrderAck,
    OrderDetail,
    Position,
    Ticker,
    TickerCallback,
    TradingVenue,
    TriggerPlan,
    VenueError,
)
from core.utils import quantize

log = logging.getLogger("sigexec.venue.paper")

DEFAULT_FEE_RATE = Decimal("0.0006")
_STOP_TYPES = {"pos_loss", "loss_plan"}


@dataclass(slots=True)
class _Order:
    ack: OrderAck
    detail: OrderDetail


class PaperVenue(TradingVenue):
    def __init__(
        self,
        *,
        balance: Decimal = Decimal("1000"),
        margin_coin: str = "USDT",
        fee_rate: Decimal = DEFAULT_FEE_RATE,
    ) -> None:
        self.margin_coin = margin_coin
        self.fee_rate = fee_rate
        self._lock = threading.RLock()
        self._available = balance
        self._prices: Dict[str, Decimal] = {}
        self._candles: Dict[str, List[Candle]] = {}
        self._positions: Dict[str, Position] = {}
        self._margin: Dict[str, Decimal] = {}
        self._orders: Dict[str, _Order] = {}
        self._resting: Dict[str, _Order] = {}
        self._plans: Dict[str, TriggerPlan] = {}
        self._leverage: Dict[str, int] = {}
        self._margin_mode: Dict[str, str] = {}
        self._callbacks: List[TickerCallback] = []
        self._ids = itertools.count(1)
        self.submitted: List[str] = []

    # ------------------------------------------------------------------
    # market simulation
    def set_candles(self, symbol: str, candles: Iterable[Candle]) -> None:
        with self._lock:
            self._candles[symbol] = list(candles)
            if self._candles[symbol] and symbol not in self._prices:
                self._prices[symbol] = self._candles[symbol][-1].close

    def set_price(self, symbol: str, price: Decimal) -> None:
        """Move the last price and fire any crossed trigger plans."""

        with self._lock:
            self._prices[symbol] = price
            self._fill_resting(symbol, price)
            self._fire_triggers(symbol, price)
            callbacks = list(self._callbacks)
        ticker = Ticker(symbol=symbol, last_price=price, ts=int(time.time() * 1000))
        for callback in callbacks:
            callback(ticker)

    def random_walk(self, symbol: str, rng: random.Random, volatility: float = 0.002) -> Decimal:
        with self._lock:
            last = self._prices.get(symbol)
        if last is None:
            raise VenueError(f"no price for {symbol}", code="unknown_symbol")
        move = Decimal(str(round(rng.gauss(0.0, volatility), 6)))
        price = quantize(last * (1 + move), 8)
        self.set_price(symbol, price)
        return price

    # ------------------------------------------------------------------
    # market data
    def get_candles(self, symbol: str, granularity: str, limit: int) -> List[Candle]:
        with self._lock:
            candles = self._candles.get(symbol)
            if candles is None:
                raise VenueError(f"no candles for {symbol}", code="unknown_symbol")
            return list(candles[-limit:])

    def get_ticker(self, symbol: str) -> Ticker:
        with self._lock:
            price = self._prices.get(symbol)
        if price is None:
            raise VenueError(f"no price for {symbol}", code="unknown_symbol")
        return Ticker(symbol=symbol, last_price=price, ts=int(time.time() * 1000))

    def subscribe_ticker(self, symbols: Iterable[str], callback: TickerCallback) -> None:
        wanted = set(symbols)

        def _filtered(ticker: Ticker) -> None:
            if ticker.symbol in wanted:
                callback(ticker)

        with self._lock:
            self._callbacks.append(_filtered)

    # ------------------------------------------------------------------
    # account
    def get_positions(self) -> List[Position]:
        with self._lock:
            return [replace(p) for p in self._positions.values()]

    def get_account_balance(self, margin_coin: str = "USDT") -> Optional[AccountBalance]:
        if margin_coin != self.margin_coin:
            return None
        with self._lock:
            return AccountBalance(margin_coin, self._available, self._available)

    def set_leverage(self, symbol: str, leverage: int, margin_coin: str = "USDT") -> None:
        if leverage < 1:
            raise VenueError("leverage must be >= 1", code="bad_leverage")
        with self._lock:
            self._leverage[symbol] = leverage

    def set_margin_mode(self, symbol: str, margin_mode: str, margin_coin: str = "USDT") -> None:
        with self._lock:
            self._margin_mode[symbol] = margin_mode

    # ------------------------------------------------------------------
    # orders
    def place_order(
        self,
        *,
        client_order_id: str,
        symbol: str,
        size: Decimal,
        side: str,
        order_type: str,
        margin_mode: str,
        price: Optional[Decimal] = None,
    ) -> OrderAck:
        with self._lock:
            existing = self._orders.get(client_order_id)
            if existing is not None:
                log.info("paper.duplicate_client_order_id", extra={"client_order_id": client_order_id})
                return existing.ack
            if size <= 0:
                raise VenueError("size must be positive", code="bad_size")
            last = self._prices.get(symbol)
            if last is None:
                raise VenueError(f"no price for {symbol}", code="unknown_symbol")
            if order_type == "limit":
                if price is None or price <= 0:
                    raise VenueError("limit order needs a positive price", code="bad_price")
                marketable = price >= last if side == "buy" else price <= last
                if not marketable:
                    return self._rest(client_order_id, symbol, size, side, price)
                fill = price
            else:
                if symbol in self._positions:
                    raise VenueError(f"position already open for {symbol}", code="position_exists")
                fill = last
            self._fill(symbol, side, size, fill)
            return self._record(client_order_id, symbol, side, fill, size)

    def cancel_open_orders(self, symbol: str) -> int:
        with self._lock:
            resting = [cid for cid, order in self._resting.items() if order.detail.symbol == symbol]
            for cid in resting:
                order = self._resting.pop(cid)
                order.detail.state = "cancelled"
        if resting:
            log.info("paper.orders_cancelled", extra={"symbol": symbol, "count": len(resting)})
        return len(resting)

    def open_orders(self, symbol: Optional[str] = None) -> List[OrderDetail]:
        with self._lock:
            return [
                replace(order.detail)
                for order in self._resting.values()
                if symbol is None or order.detail.symbol == symbol
            ]

    def get_order_detail(self, symbol: str, order_id: str) -> OrderDetail:
        with self._lock:
            for order in self._orders.values():
                if order.ack.order_id == order_id:
                    return order.detail
        raise VenueError(f"unknown order {order_id}", code="unknown_order")

    def _record(
        self,
        client_order_id: str,
        symbol: str,
        side: str,
        price: Decimal,
        size: Decimal,
        state: str = "filled",
    ) -> OrderAck:
        order_id = f"paper-{next(self._ids)}"
        ack = OrderAck(order_id=order_id, client_order_id=client_order_id)
        self._orders[client_order_id] = _Order(
            ack=ack,
            detail=OrderDetail(
                order_id=order_id,
                client_order_id=client_order_id,
                symbol=symbol,
                side=side,
                price_avg=price,
                base_volume=size,
                state=state,
            ),
        )
        self.submitted.append(client_order_id)
        return ack

    def _rest(self, client_order_id: str, symbol: str, size: Decimal, side: str, price: Decimal) -> OrderAck:
        ack = self._record(client_order_id, symbol, side, price, size, state="live")
        self._resting[client_order_id] = self._orders[client_order_id]
        return ack

    def _fill(self, symbol: str, side: str, size: Decimal, fill: Decimal) -> None:
        """Open a position or add to the same-side one; caller holds the lock."""

        hold_side = "long" if side == "buy" else "short"
        position = self._positions.get(symbol)
        if position is not None and position.hold_side != hold_side:
            raise VenueError(f"{position.hold_side} position open for {symbol}", code="position_exists")
        leverage = self._leverage.get(symbol, 1)
        margin = fill * size / Decimal(leverage)
        fee = fill * size * self.fee_rate
        if margin + fee > self._available:
            raise VenueError("insufficient margin", code="insufficient_balance")

        self._available -= margin + fee
        self._margin[symbol] = self._margin.get(symbol, Decimal(0)) + margin
        if position is None:
            total, avg = size, fill
        else:
            total = position.size + size
            avg = (position.avg_entry_price * position.size + fill * size) / total
        cost = 2 * self.fee_rate
        break_even = avg * (1 + cost) if hold_side == "long" else avg * (1 - cost)
        self._positions[symbol] = Position(
            symbol=symbol,
            hold_side=hold_side,
            avg_entry_price=quantize(avg, 8),
            break_even_price=quantize(break_even, 8),
            size=total,
        )

    def _fill_resting(self, symbol: str, price: Decimal) -> None:
        for cid, order in list(self._resting.items()):
            detail = order.detail
            if detail.symbol != symbol:
                continue
            crossed = price <= detail.price_avg if detail.side == "buy" else price >= detail.price_avg
            if not crossed:
                continue
            self._resting.pop(cid, None)
            try:
                self._fill(symbol, detail.side, detail.base_volume, detail.price_avg)
            except VenueError as exc:
                detail.state = "cancelled"
                log.warning("paper.resting_order_rejected", extra={"client_order_id": cid, "error": str(exc)})
                continue
            detail.state = "filled"
            log.info("paper.resting_order_filled", extra={"client_order_id": cid, "price": detail.price_avg})

    # ------------------------------------------------------------------
    # trigger plans
    def place_trigger_plan(
        self,
        *,
        symbol: str,
        plan_type: str,
        trigger_price: Decimal,
        hold_side: str,
        size: Optional[Decimal] = None,
        execute_price: Optional[Decimal] = None,
    ) -> str:
        if trigger_price <= 0:
            raise VenueError("trigger price must be positive", code="bad_trigger")
        with self._lock:
            position = self._positions.get(symbol)
            if position is None or position.hold_side != hold_side:
                raise VenueError(f"no {hold_side} position for {symbol}", code="no_position")
            plan_id = f"plan-{next(self._ids)}"
            self._plans[plan_id] = TriggerPlan(
                order_id=plan_id,
                symbol=symbol,
                plan_type=plan_type,
                trigger_price=trigger_price,
                side=hold_side,
                size=size,
                execute_price=execute_price,
            )
            return plan_id

    def amend_trigger_plan(
        self,
        *,
        order_id: str,
        symbol: str,
        trigger_price: Decimal,
        execute_price: Optional[Decimal] = None,
        size: Optional[Decimal] = None,
    ) -> None:
        with self._lock:
            plan = self._plans.get(order_id)
            if plan is None or plan.symbol != symbol:
                raise VenueError(f"unknown plan {order_id}", code="unknown_plan")
            plan.trigger_price = trigger_price
            if execute_price is not None:
                plan.execute_price = execute_price
            if size is not None:
                plan.size = size

    def get_pending_trigger_plans(self, symbol: Optional[str] = None) -> List[TriggerPlan]:
        with self._lock:
            return [
                replace(plan)
                for plan in self._plans.values()
                if symbol is None or plan.symbol == symbol
            ]

    # ------------------------------------------------------------------
    def _fire_triggers(self, symbol: str, price: Decimal) -> None:
        for plan in [p for p in self._plans.values() if p.symbol == symbol]:
            position = self._positions.get(symbol)
            if position is None:
                break
            is_long = position.is_long
            is_stop = plan.plan_type in _STOP_TYPES
            if is_stop:
                crossed = price <= plan.trigger_price if is_long else price >= plan.trigger_price
            else:
                crossed = price >= plan.trigger_price if is_long else price <= plan.trigger_price
            if not crossed:
                continue
            self._plans.pop(plan.order_id, None)
            close_size = position.size if is_stop or plan.size is None else min(plan.size, position.size)
            self._close(position, close_size, plan.trigger_price)
            log.info(
                "paper.trigger_fired",
                extra={"symbol": symbol, "plan_id": plan.order_id, "plan_type": plan.plan_type},
            )

    def _close(self, position: Position, size: Decimal, price: Decimal) -> None:
        direction = Decimal(1) if position.is_long else Decimal(-1)
        pnl = (price - position.avg_entry_price) * size * direction
        fee = price * size * self.fee_rate
        share = size / position.size
        margin = self._margin.get(position.symbol, Decimal(0))
        released = margin * share
        self._available += released + pnl - fee
        remaining = position.size - size
        if remaining <= 0:
            self._positions.pop(position.symbol, None)
            self._margin.pop(position.symbol, None)
            for plan_id in [pid for pid, p in self._plans.items() if p.symbol == position.symbol]:
                self._plans.pop(plan_id, None)
        else:
            position.size = remaining
            self._margin[position.symbol] = margin - released


def synthetic_candles(
    start_price: Decimal,
    count: int,
    timeframe: str = "1H",
    *,
    seed: int = 7,
    drift: float = 0.0,
    volatility: float = 0.01,
) -> List[Candle]:
    """Deterministic random-walk candles for demos and tests."""

    rng = random.Random(seed)
    step_ms = int(granularity(timeframe).duration.total_seconds() * 1000)
    ts = int(time.time() * 1000) - step_ms * count
    price = start_price
    candles: List[Candle] = []
    for _ in range(count):
        move = Decimal(str(round(rng.gauss(drift, volatility), 6)))
        close = quantize(price * (1 + move), 8)
        wick = Decimal(str(round(abs(rng.gauss(0.0, volatility / 2)), 6)))
        high = quantize(max(price, close) * (1 + wick), 8)
        low = quantize(min(price, close) * (1 - wick), 8)
        candles.append(Candle(ts=ts, open=price, high=high, low=low, close=close, volume=Decimal("1")))
        price = close
        ts += step_ms
    return candles
