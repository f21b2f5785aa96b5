"""Metric registry owning every instrument of the service.

The registry is a prometheus_client collector: ``collect()`` yields
``CounterMetricFamily`` / ``HistogramMetricFamily`` objects built from
point-in-time copies of every series, so it can be registered on a
``CollectorRegistry`` and serialized with ``generate_latest``.
"""

import logging
import threading
from collections.abc import Iterable, Iterator
from typing import cast

from prometheus_client import generate_latest
from prometheus_client.core import CounterMetricFamily, HistogramMetricFamily, Metric
from prometheus_client.utils import floatToGoString

from app.exceptions import DuplicateMetricError
from app.metrics.descriptor import DEFAULT_BUCKETS, MetricDescriptor, MetricKind
from app.metrics.instruments import (
    Counter,
    Histogram,
    HistogramSnapshot,
    LabelValues,
    MetricFamily,
)

logger = logging.getLogger(__name__)

Instrument = Counter | Histogram


class MetricRegistry:
    """Named collection of counters and histograms.

    The registry is created once by the service container and handed to
    whoever records metrics. Metrics are never removed or reset.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._metrics: dict[str, Instrument] = {}

    def register(self, descriptor: MetricDescriptor) -> Instrument:
        """Register a metric and return its instrument.

        Registering an identical descriptor again returns the existing
        instrument.

        Raises:
            DuplicateMetricError: the name is taken by a metric of another shape
            ValueError: the descriptor kind has no instrument
        """
        with self._lock:
            existing = self._metrics.get(descriptor.name)
            if existing is not None:
                if existing.descriptor == descriptor:
                    return existing
                raise DuplicateMetricError(
                    descriptor.name,
                    existing.descriptor.describe(),
                    descriptor.describe(),
                )

            instrument: Instrument
            if descriptor.kind == MetricKind.COUNTER:
                instrument = Counter(descriptor)
            elif descriptor.kind == MetricKind.HISTOGRAM:
                instrument = Histogram(descriptor)
            else:
                raise ValueError(f"Unsupported metric kind: {descriptor.kind.value}")

            self._metrics[descriptor.name] = instrument

        logger.debug(f"Registered {descriptor.kind.value} {descriptor.name}")
        return instrument

    def counter(
        self, name: str, help: str, label_names: Iterable[str] = ()
    ) -> Counter:
        return cast(
            Counter, self.register(MetricDescriptor.counter(name, help, label_names))
        )

    def histogram(
        self,
        name: str,
        help: str,
        label_names: Iterable[str] = (),
        buckets: Iterable[float] = DEFAULT_BUCKETS,
    ) -> Histogram:
        return cast(
            Histogram,
            self.register(MetricDescriptor.histogram(name, help, label_names, buckets)),
        )

    def get(self, name: str) -> Instrument | None:
        with self._lock:
            return self._metrics.get(name)

    def names(self) -> list[str]:
        with self._lock:
            return list(self._metrics)

    def families(self) -> list[MetricFamily]:
        """Copy the current state of every metric.

        Each series is copied under its own lock, so the result is consistent
        per series but not across metrics.
        """
        with self._lock:
            instruments = list(self._metrics.values())
        return [instrument.collect() for instrument in instruments]

    def collect(self) -> Iterator[Metric]:
        """Collector interface used by ``CollectorRegistry`` and ``generate_latest``."""
        for family in self.families():
            yield to_metric_family(family)

    def snapshot(self) -> str:
        """Render all metrics in the Prometheus text exposition format."""
        return generate_latest(self).decode("utf-8")


def to_metric_family(family: MetricFamily) -> Metric:
    """Convert a series copy into a prometheus_client metric family.

    A series that cannot be converted is logged and left out; the rest of the
    family is still exported so a single bad entry never fails a scrape.
    """
    descriptor = family.descriptor
    metric: Metric
    if descriptor.kind == MetricKind.HISTOGRAM:
        metric = HistogramMetricFamily(
            descriptor.name, descriptor.help, labels=descriptor.label_names
        )
    else:
        metric = CounterMetricFamily(
            descriptor.name, descriptor.help, labels=descriptor.label_names
        )

    for label_values, value in family.samples:
        try:
            _add_series(metric, descriptor, label_values, value)
        except (TypeError, ValueError) as e:
            logger.error(
                f"Omitting malformed series {label_values!r} of {descriptor.name}: {e}"
            )

    return metric


def _add_series(
    metric: Metric,
    descriptor: MetricDescriptor,
    label_values: LabelValues,
    value: float | HistogramSnapshot,
) -> None:
    if len(label_values) != len(descriptor.label_names):
        raise ValueError(
            f"expected {len(descriptor.label_names)} label values, got {len(label_values)}"
        )

    if isinstance(metric, HistogramMetricFamily):
        if not isinstance(value, HistogramSnapshot):
            raise TypeError(f"histogram sample must be a snapshot, got {type(value).__name__}")
        metric.add_metric(
            list(label_values),
            [(floatToGoString(bound), count) for bound, count in value.buckets],
            value.sum,
        )
    elif isinstance(metric, CounterMetricFamily):
        if isinstance(value, HistogramSnapshot):
            raise TypeError(f"{descriptor.kind.value} sample cannot be a histogram snapshot")
        metric.add_metric(list(label_values), value)
