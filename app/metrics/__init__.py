"""Metrics instrumentation: registry, instruments and request timing.

Instruments are created through a registry instance, never globally:

    registry = MetricRegistry()
    requests = registry.counter("my_requests_total", "Total requests", ["kind"])
    requests.increment({"kind": "read"})

The registry is a prometheus_client collector and renders everything it owns
with ``snapshot()``.
"""

from app.metrics.descriptor import DEFAULT_BUCKETS, MetricDescriptor, MetricKind
from app.metrics.instruments import Counter, Histogram, HistogramSnapshot, Timer
from app.metrics.registry import MetricRegistry

__all__ = [
    "Counter",
    "DEFAULT_BUCKETS",
    "Histogram",
    "HistogramSnapshot",
    "MetricDescriptor",
    "MetricKind",
    "MetricRegistry",
    "Timer",
]
