"""Core interfaces defining the trading venue contract used by the engine."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable, List, Optional


class VenueError(RuntimeError):
    """Raised by venue clients when an exchange call fails or is rejected."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


@dataclass(slots=True)
class Candle:
    ts: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal


@dataclass(slots=True)
class Ticker:
    symbol: str
    last_price: Decimal
    ts: int


@dataclass(slots=True)
class Position:
    """Open position as reported by the venue."""

    symbol: str
    hold_side: str  # "long" or "short"
    avg_entry_price: Decimal
    break_even_price: Decimal
    size: Decimal

    @property
    def is_long(self) -> bool:
        return self.hold_side == "long"


@dataclass(slots=True)
class AccountBalance:
    margin_coin: str
    available: Decimal
    max_available_for_open: Decimal


@dataclass(slots=True)
class OrderAck:
    order_id: str
    client_order_id: str


@dataclass(slots=True)
class OrderDetail:
    order_id: str
    client_order_id: str
    symbol: str
    side: str
    price_avg: Decimal
    base_volume: Decimal
    state: str = "filled"


@dataclass(slots=True)
class TriggerPlan:
    """Pending take-profit / stop-loss trigger order."""

    order_id: str
    symbol: str
    plan_type: str
    trigger_price: Decimal
    side: str  # hold side of the position it protects
    size: Optional[Decimal] = None
    execute_price: Optional[Decimal] = None


TickerCallback = Callable[[Ticker], None]


class TradingVenue(ABC):
    """Interface for the exchange client the engine trades through."""

    @abstractmethod
    def get_candles(self, symbol: str, granularity: str, limit: int) -> List[Candle]:
        """Return candles for ``symbol`` ordered oldest first."""

    @abstractmethod
    def get_ticker(self, symbol: str) -> Ticker:
        """Return the latest traded price for ``symbol``."""

    def subscribe_ticker(self, symbols: Iterable[str], callback: TickerCallback) -> None:
        """Register ``callback`` for pushed ticker updates.

        Venues without a streaming feed leave this unimplemented and the engine
        falls back to polling :meth:`get_ticker`.
        """

        raise NotImplementedError

    @abstractmethod
    def get_positions(self) -> List[Position]:
        """Return all open positions."""

    @abstractmethod
    def get_account_balance(self, margin_coin: str = "USDT") -> Optional[AccountBalance]:
        """Return balance details for ``margin_coin`` or ``None`` when absent."""

    @abstractmethod
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
        """Submit an order; duplicate ``client_order_id`` values must not create a second order."""

    @abstractmethod
    def cancel_open_orders(self, symbol: str) -> int:
        """Cancel resting (unfilled) orders for ``symbol`` and return how many were cancelled."""

    @abstractmethod
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
        """Install a TP/SL trigger plan and return its order id."""

    @abstractmethod
    def amend_trigger_plan(
        self,
        *,
        order_id: str,
        symbol: str,
        trigger_price: Decimal,
        execute_price: Optional[Decimal] = None,
        size: Optional[Decimal] = None,
    ) -> None:
        """Move the trigger price of an existing plan."""

    @abstractmethod
    def get_pending_trigger_plans(self, symbol: Optional[str] = None) -> List[TriggerPlan]:
        """Return pending trigger plans, optionally filtered by ``symbol``."""

    @abstractmethod
    def get_order_detail(self, symbol: str, order_id: str) -> OrderDetail:
        """Return fill details for a submitted order."""

    @abstractmethod
    def set_leverage(self, symbol: str, leverage: int, margin_coin: str = "USDT") -> None:
        """Set the leverage used for new orders on ``symbol``."""

    @abstractmethod
    def set_margin_mode(self, symbol: str, margin_mode: str, margin_coin: str = "USDT") -> None:
        """Set isolated/crossed margin for ``symbol``."""
