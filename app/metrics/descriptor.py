"""Metric identity: name, help text, label names, kind and bucket layout."""

import math
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

_METRIC_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")
_LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

INF = float("inf")

# Request latency buckets in seconds
DEFAULT_BUCKETS: tuple[float, ...] = (0.1, 0.5, 1.0, 2.0, 5.0)


class MetricKind(str, Enum):
    """Kind tag exported on the TYPE line."""

    COUNTER = "counter"
    HISTOGRAM = "histogram"
    GAUGE = "gauge"


@dataclass(frozen=True)
class MetricDescriptor:
    """Immutable identity of a registered metric.

    For histograms ``buckets`` holds the ascending finite boundaries followed
    by the implicit ``+Inf`` boundary. Other kinds carry no buckets.
    """

    name: str
    help: str
    kind: MetricKind
    label_names: tuple[str, ...] = ()
    buckets: tuple[float, ...] = field(default=())

    def __post_init__(self) -> None:
        if not _METRIC_NAME_RE.match(self.name):
            raise ValueError(f"Invalid metric name: {self.name!r}")

        label_names = tuple(self.label_names)
        for label_name in label_names:
            if not _LABEL_NAME_RE.match(label_name) or label_name.startswith("__"):
                raise ValueError(
                    f"Invalid label name {label_name!r} for metric {self.name}"
                )
        if len(set(label_names)) != len(label_names):
            raise ValueError(f"Duplicate label names for metric {self.name}")

        if self.kind == MetricKind.HISTOGRAM:
            if "le" in label_names:
                raise ValueError(
                    f"Histogram {self.name} cannot use the reserved label 'le'"
                )
            buckets = _normalize_buckets(self.name, self.buckets or DEFAULT_BUCKETS)
        elif self.buckets:
            raise ValueError(f"Only histograms take buckets, {self.name} is a {self.kind.value}")
        else:
            buckets = ()

        # Frozen dataclass: normalized values are written through object.__setattr__
        object.__setattr__(self, "label_names", label_names)
        object.__setattr__(self, "buckets", buckets)

    @classmethod
    def counter(
        cls, name: str, help: str, label_names: Iterable[str] = ()
    ) -> "MetricDescriptor":
        return cls(name=name, help=help, kind=MetricKind.COUNTER,
                   label_names=tuple(label_names))

    @classmethod
    def histogram(
        cls,
        name: str,
        help: str,
        label_names: Iterable[str] = (),
        buckets: Iterable[float] = DEFAULT_BUCKETS,
    ) -> "MetricDescriptor":
        return cls(name=name, help=help, kind=MetricKind.HISTOGRAM,
                   label_names=tuple(label_names), buckets=tuple(buckets))

    def describe(self) -> str:
        """Short shape description used in error messages."""
        text = f"{self.kind.value}{list(self.label_names)}"
        if self.buckets:
            text += f" buckets={list(self.buckets)}"
        return text


def _normalize_buckets(name: str, buckets: Iterable[float]) -> tuple[float, ...]:
    """Validate ascending finite boundaries and append the +Inf bucket."""
    bounds = [float(b) for b in buckets]
    if bounds and bounds[-1] == INF:
        bounds.pop()

    if not bounds:
        raise ValueError(f"Histogram {name} needs at least one finite bucket")

    for bound in bounds:
        if math.isnan(bound) or math.isinf(bound):
            raise ValueError(f"Histogram {name} has a non-finite bucket {bound}")

    if any(b >= nxt for b, nxt in zip(bounds, bounds[1:])):
        raise ValueError(f"Buckets of histogram {name} must be strictly ascending")

    return tuple(bounds) + (INF,)
