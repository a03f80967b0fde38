"""Policy helpers for execution gating and sizing."""

from .gates import GateDecision, GateState, SymbolGate  # noqa: F401
from .sizing import check_balance, leverage_for_stop, order_size, take_profit_schedule  # noqa: F401

__all__ = [
    "GateDecision",
    "GateState",
    "SymbolGate",
    "check_balance",
    "leverage_for_stop",
    "order_size",
    "take_profit_schedule",
]
