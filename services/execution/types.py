"""Execution intent/outcome dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Literal, Optional

from core.config import MartingaleSettings
from core.utils import new_client_order_id

Side = Literal["buy", "sell"]
OrderKind = Literal["market", "limit"]

# Outcome statuses reported by the executor.
SUBMITTED = "submitted"
POSITION_EXISTS = "position_exists"
INSUFFICIENT_BALANCE = "insufficient_balance"
SIZE_ZERO = "size_zero"
SUBMIT_FAILED = "submit_failed"
MISSING_CONFIG = "missing_config"
ERROR = "error"


@dataclass(slots=True)
class OrderIntent:
    """Order request produced by a signal evaluator and consumed once by the executor."""

    symbol: str
    side: Side
    price: Decimal
    stop_loss_price: Decimal
    order_kind: OrderKind = "market"
    size: Optional[Decimal] = None
    leverage: Optional[int] = None
    take_profit_price: Optional[Decimal] = None
    take_profit_ratio: Optional[Decimal] = None
    margin_mode: str = "isolated"
    required_margin: Optional[Decimal] = None
    ladder: Optional[MartingaleSettings] = None
    client_order_id: str = field(default_factory=new_client_order_id)
    source: str = ""
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def hold_side(self) -> str:
        return "long" if self.side == "buy" else "short"

    def context(self) -> Dict[str, Any]:
        """Compact mapping used as structured log context."""

        return {
            "symbol": self.symbol,
            "side": self.side,
            "price": str(self.price),
            "stop_loss": str(self.stop_loss_price),
            "client_order_id": self.client_order_id,
            "source": self.source,
        }


@dataclass(slots=True)
class ExecOutcome:
    """Result of processing one intent."""

    status: str
    reason: str = ""
    client_order_id: Optional[str] = None
    order_id: Optional[str] = None
    size: Optional[Decimal] = None
    leverage: Optional[int] = None
    stop_loss_plan_id: Optional[str] = None
    take_profit_plan_ids: list[str] = field(default_factory=list)
    ladder_order_ids: list[str] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.status == SUBMITTED
