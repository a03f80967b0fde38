"""Telemetry helpers for runtime metrics."""

from .metrics import metrics, TelemetryMetrics, record_order_latency

__all__ = [
    "metrics",
    "TelemetryMetrics",
    "record_order_latency",
]
