"""In-process telemetry helpers for the execution engine."""

from __future__ import annotations

import math
import threading
import time
from collections import defaultdict, deque
from contextlib import contextmanager
from typing import Any, Deque, Dict, Iterator, Optional


def _percentile(sorted_values: Deque[float] | list[float], quantile: float) -> Optional[float]:
    """Return the ``quantile`` (0-1) for ``sorted_values`` using linear interpolation."""

    if not sorted_values:
        return None
    values = list(sorted_values)
    if len(values) == 1:
        return float(values[0])
    q = min(max(quantile, 0.0), 1.0)
    pos = (len(values) - 1) * q
    lower = math.floor(pos)
    upper = math.ceil(pos)
    if lower == upper:
        return float(values[int(pos)])
    weight = pos - lower
    return float(values[lower]) + (float(values[upper]) - float(values[lower])) * weight


def _normalize_code(code: Any) -> str:
    if code is None:
        return "unknown"
    text = str(code).strip().lower().replace(" ", "_")
    return text or "unknown"


class TelemetryMetrics:
    """Thread-safe counters for signals, orders and stop amendments."""

    def __init__(self, *, max_latency_samples: int = 512) -> None:
        self._lock = threading.Lock()
        self._latency_samples: Deque[float] = deque(maxlen=max_latency_samples)
        self._latency_count = 0
        self._counters: Dict[str, int] = defaultdict(int)
        self._drops: Dict[str, int] = defaultdict(int)
        self._order_rejects: Dict[str, int] = defaultdict(int)
        self._refresh_failures: Dict[str, int] = defaultdict(int)

    # ------------------------------------------------------------------
    # Counters
    def inc(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[name] += amount

    def inc_dropped(self, reason: Any) -> None:
        key = _normalize_code(reason)
        with self._lock:
            self._drops[key] += 1

    def inc_order_reject(self, code: Any) -> None:
        key = _normalize_code(code)
        with self._lock:
            self._order_rejects[key] += 1

    def inc_refresh_failure(self, symbol: str) -> None:
        with self._lock:
            self._refresh_failures[symbol] += 1

    def observe_order_latency(self, latency_ms: float) -> None:
        latency = max(float(latency_ms), 0.0)
        with self._lock:
            self._latency_samples.append(latency)
            self._latency_count += 1

    def counter(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def reset(self) -> None:
        with self._lock:
            self._latency_samples.clear()
            self._latency_count = 0
            self._counters.clear()
            self._drops.clear()
            self._order_rejects.clear()
            self._refresh_failures.clear()

    # ------------------------------------------------------------------
    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            latencies = list(self._latency_samples)
            latency_count = self._latency_count
            counters = dict(self._counters)
            drops = dict(self._drops)
            rejects = dict(self._order_rejects)
            refresh_failures = dict(self._refresh_failures)

        latencies_sorted = sorted(latencies)
        return {
            "order_latency_ms": {
                "p50": _percentile(latencies_sorted, 0.5),
                "p95": _percentile(latencies_sorted, 0.95),
                "count": latency_count,
                "latest": latencies[-1] if latencies else None,
            },
            "counters": counters,
            "signals_dropped_total": {"total": sum(drops.values()), "by_reason": drops},
            "order_rejects_total": {"total": sum(rejects.values()), "by_code": rejects},
            "refresh_failures_total": {"total": sum(refresh_failures.values()), "by_symbol": refresh_failures},
        }


metrics = TelemetryMetrics()


@contextmanager
def record_order_latency(sink: Optional[TelemetryMetrics] = None) -> Iterator[None]:
    """Context manager to time synchronous venue calls."""

    target = sink or metrics
    start = time.perf_counter()
    try:
        yield
    finally:
        target.observe_order_latency((time.perf_counter() - start) * 1000.0)
