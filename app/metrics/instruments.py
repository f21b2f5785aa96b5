"""Counter and histogram instruments with per-series locking.

Every distinct label combination (a series) owns its own lock, so writers on
different series never contend. Creating a series takes the instrument lock
once; afterwards the series is looked up without it.
"""

import math
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Generic, TypeVar

from app.exceptions import InvalidAmountError, InvalidLabelError, TimerReuseError
from app.metrics.descriptor import MetricDescriptor, MetricKind

LabelValues = tuple[str, ...]
Labels = Mapping[str, object]


@dataclass(frozen=True)
class HistogramSnapshot:
    """Point-in-time copy of one histogram series."""

    buckets: tuple[tuple[float, int], ...]
    sum: float
    count: int


@dataclass(frozen=True)
class MetricFamily:
    """Point-in-time copy of one metric and all of its observed series."""

    descriptor: MetricDescriptor
    samples: tuple[tuple[LabelValues, float | HistogramSnapshot], ...]


class _CounterSeries:
    __slots__ = ("lock", "value")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.value = 0.0


class _HistogramSeries:
    __slots__ = ("lock", "bucket_counts", "sum", "count")

    def __init__(self, bucket_count: int) -> None:
        self.lock = threading.Lock()
        self.bucket_counts = [0] * bucket_count
        self.sum = 0.0
        self.count = 0


_S = TypeVar("_S", _CounterSeries, _HistogramSeries)


class _Instrument(Generic[_S]):
    """Shared label handling and lazy series creation."""

    def __init__(self, descriptor: MetricDescriptor):
        self.descriptor = descriptor
        self._lock = threading.Lock()
        self._series: dict[LabelValues, _S] = {}

    @property
    def name(self) -> str:
        return self.descriptor.name

    def _label_values(self, labels: Labels | None) -> LabelValues:
        """Order label values by the declared names, rejecting any mismatch."""
        labels = labels or {}
        expected = self.descriptor.label_names
        if set(labels) != set(expected) or len(labels) != len(expected):
            raise InvalidLabelError(self.name, expected, tuple(sorted(labels)))
        return tuple(str(labels[name]) for name in expected)

    def _get_or_create(self, key: LabelValues) -> _S:
        series = self._series.get(key)
        if series is None:
            with self._lock:
                series = self._series.get(key)
                if series is None:
                    series = self._new_series()
                    self._series[key] = series
        return series

    def _new_series(self) -> _S:
        raise NotImplementedError

    def _items(self) -> list[tuple[LabelValues, _S]]:
        with self._lock:
            return list(self._series.items())


class Counter(_Instrument[_CounterSeries]):
    """Monotonically increasing labeled counter."""

    def __init__(self, descriptor: MetricDescriptor):
        if descriptor.kind != MetricKind.COUNTER:
            raise ValueError(f"{descriptor.name} is not a counter descriptor")
        super().__init__(descriptor)

    def _new_series(self) -> _CounterSeries:
        return _CounterSeries()

    def increment(self, labels: Labels | None = None, amount: float = 1) -> None:
        """Add ``amount`` to the series identified by ``labels``.

        Raises:
            InvalidLabelError: label keys differ from the declared label names
            InvalidAmountError: amount is negative or not a finite number
        """
        key = self._label_values(labels)
        try:
            amount = float(amount)
        except (TypeError, ValueError):
            raise InvalidAmountError(self.name, amount, "it is not a number") from None
        if math.isnan(amount) or math.isinf(amount):
            raise InvalidAmountError(self.name, amount, "it is not a finite number")
        if amount < 0:
            raise InvalidAmountError(self.name, amount, "counters can only increase")

        series = self._get_or_create(key)
        with series.lock:
            series.value += amount

    def value(self, labels: Labels | None = None) -> float:
        """Current total for a series, 0.0 if it was never incremented."""
        series = self._series.get(self._label_values(labels))
        if series is None:
            return 0.0
        with series.lock:
            return series.value

    def collect(self) -> MetricFamily:
        samples = []
        for key, series in self._items():
            with series.lock:
                samples.append((key, series.value))
        return MetricFamily(self.descriptor, tuple(samples))


class Histogram(_Instrument[_HistogramSeries]):
    """Labeled histogram with fixed cumulative (``le``) buckets."""

    def __init__(self, descriptor: MetricDescriptor):
        if descriptor.kind != MetricKind.HISTOGRAM:
            raise ValueError(f"{descriptor.name} is not a histogram descriptor")
        super().__init__(descriptor)
        self._upper_bounds = descriptor.buckets

    def _new_series(self) -> _HistogramSeries:
        return _HistogramSeries(len(self._upper_bounds))

    def observe(self, labels: Labels | None, value: float) -> None:
        """Record one observation, in seconds for duration histograms.

        Raises:
            InvalidLabelError: label keys differ from the declared label names
            InvalidAmountError: value is negative or not a finite number
        """
        key = self._label_values(labels)
        try:
            value = float(value)
        except (TypeError, ValueError):
            raise InvalidAmountError(self.name, value, "it is not a number") from None
        if math.isnan(value) or math.isinf(value):
            raise InvalidAmountError(self.name, value, "it is not a finite number")
        if value < 0:
            raise InvalidAmountError(self.name, value, "observations cannot be negative")

        series = self._get_or_create(key)
        with series.lock:
            counts = series.bucket_counts
            for i, bound in enumerate(self._upper_bounds):
                if value <= bound:
                    counts[i] += 1
            series.sum += value
            series.count += 1

    def get(self, labels: Labels | None = None) -> HistogramSnapshot:
        """Copy of one series; empty buckets if it was never observed."""
        series = self._series.get(self._label_values(labels))
        if series is None:
            return HistogramSnapshot(
                buckets=tuple((b, 0) for b in self._upper_bounds), sum=0.0, count=0
            )
        return self._snapshot(series)

    def start_timer(self) -> "Timer":
        """Start timing a duration to be observed once it completes."""
        return Timer(self)

    def collect(self) -> MetricFamily:
        samples = [(key, self._snapshot(series)) for key, series in self._items()]
        return MetricFamily(self.descriptor, tuple(samples))

    def _snapshot(self, series: _HistogramSeries) -> HistogramSnapshot:
        with series.lock:
            counts = list(series.bucket_counts)
            total = series.sum
            count = series.count
        return HistogramSnapshot(
            buckets=tuple(zip(self._upper_bounds, counts)), sum=total, count=count
        )


class Timer:
    """One-shot duration handle returned by ``Histogram.start_timer()``.

    ``observe()`` records the elapsed monotonic time. The handle can be
    consumed once, either by ``observe()`` or by ``discard()``; later calls
    raise ``TimerReuseError`` without recording anything.
    """

    def __init__(self, histogram: Histogram):
        self._histogram = histogram
        self._start = time.perf_counter()
        self._lock = threading.Lock()
        self._consumed = False

    def elapsed(self) -> float:
        return time.perf_counter() - self._start

    def observe(self, labels: Labels | None = None) -> float:
        """Record the elapsed time under ``labels`` and return it."""
        duration = self.elapsed()
        self._consume()
        self._histogram.observe(labels, duration)
        return duration

    def discard(self) -> None:
        """Consume the timer without recording an observation."""
        self._consume()

    def _consume(self) -> None:
        with self._lock:
            if self._consumed:
                raise TimerReuseError(self._histogram.name)
            self._consumed = True
