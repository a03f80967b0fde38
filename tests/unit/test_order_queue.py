from __future__ import annotations

import queue
import threading
import time
from decimal import Decimal

import pytest

from services.execution.queue import OrderQueue, QueueClosed
from services.execution.types import OrderIntent


def _intent(symbol: str = "BTCUSDT") -> OrderIntent:
    return OrderIntent(symbol=symbol, side="buy", price=Decimal("100"), stop_loss_price=Decimal("95"))


def test_offer_returns_false_when_full() -> None:
    q = OrderQueue(capacity=2)
    assert q.offer(_intent("A"))
    assert q.offer(_intent("B"))
    assert q.offer(_intent("C")) is False
    assert q.size() == 2


def test_take_is_fifo() -> None:
    q = OrderQueue(capacity=5)
    for symbol in ("A", "B", "C"):
        q.offer(_intent(symbol))
    assert [q.take().symbol for _ in range(3)] == ["A", "B", "C"]


def test_take_times_out_when_empty() -> None:
    q = OrderQueue(capacity=1)
    with pytest.raises(queue.Empty):
        q.take(timeout=0.01)


def test_take_blocks_until_offer() -> None:
    q = OrderQueue(capacity=1)
    received: list[str] = []

    def consumer() -> None:
        received.append(q.take(timeout=2.0).symbol)

    thread = threading.Thread(target=consumer)
    thread.start()
    time.sleep(0.05)
    assert received == []
    q.offer(_intent("LATE"))
    thread.join(2.0)
    assert received == ["LATE"]


def test_close_wakes_blocked_consumer() -> None:
    q = OrderQueue(capacity=1)
    errors: list[BaseException] = []

    def consumer() -> None:
        try:
            q.take()
        except QueueClosed as exc:
            errors.append(exc)

    thread = threading.Thread(target=consumer)
    thread.start()
    time.sleep(0.05)
    q.close()
    thread.join(2.0)
    assert not thread.is_alive()
    assert len(errors) == 1
    assert q.offer(_intent()) is False


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        OrderQueue(capacity=0)
