"""Bounded multi-producer / single-consumer queue of order intents."""

from __future__ import annotations

import queue
import threading
from typing import Optional

from services.execution.types import OrderIntent

DEFAULT_CAPACITY = 1000


class QueueClosed(Exception):
    """Raised by :meth:`OrderQueue.take` once the queue has been closed."""


_CLOSED = object()


class OrderQueue:
    """FIFO with non-blocking ``offer`` and blocking ``take``."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        # One spare slot so close() can always post its wake-up marker.
        self._q: "queue.Queue[object]" = queue.Queue(maxsize=capacity + 1)
        self._lock = threading.Lock()
        self._closed = False

    @property
    def capacity(self) -> int:
        return self._capacity

    def offer(self, intent: OrderIntent) -> bool:
        """Enqueue ``intent`` unless the queue is full or closed."""

        with self._lock:
            if self._closed or self._q.qsize() >= self._capacity:
                return False
            self._q.put_nowait(intent)
            return True

    def take(self, timeout: Optional[float] = None) -> OrderIntent:
        """Block until an intent is available.

        Raises ``queue.Empty`` when ``timeout`` elapses and :class:`QueueClosed`
        after :meth:`close`.
        """

        item = self._q.get(timeout=timeout)
        if item is _CLOSED:
            # Leave the marker for any other waiter.
            self._q.put_nowait(_CLOSED)
            raise QueueClosed()
        return item  # type: ignore[return-value]

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._q.put_nowait(_CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed

    def size(self) -> int:
        with self._lock:
            n = self._q.qsize()
            return n - 1 if self._closed and n > 0 else n


__all__ = ["DEFAULT_CAPACITY", "OrderQueue", "QueueClosed"]
