"""Order queue and single-consumer execution loop."""

from .engine import OrderExecutor
from .queue import OrderQueue, QueueClosed
from .types import ExecOutcome, OrderIntent

__all__ = [
    "OrderExecutor",
    "OrderQueue",
    "QueueClosed",
    "ExecOutcome",
    "OrderIntent",
]
