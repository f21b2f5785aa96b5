"""Tests for the registry's prometheus_client collector output."""

import logging

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, HistogramMetricFamily

from app.metrics.descriptor import MetricDescriptor
from app.metrics.instruments import HistogramSnapshot, MetricFamily
from app.metrics.registry import MetricRegistry, to_metric_family


def _render(collector) -> str:
    return generate_latest(collector).decode("utf-8")


class TestToMetricFamily:
    """Conversion of series copies into prometheus_client families."""

    def test_counter_family(self):
        family = MetricFamily(
            MetricDescriptor.counter("jobs_total", "Jobs done", ["kind"]),
            ((("a",), 2.0), (("b",), 1.0)),
        )

        metric = to_metric_family(family)

        assert isinstance(metric, CounterMetricFamily)
        assert metric.name == "jobs"
        assert [(s.name, s.labels, s.value) for s in metric.samples] == [
            ("jobs_total", {"kind": "a"}, 2.0),
            ("jobs_total", {"kind": "b"}, 1.0),
        ]

    def test_histogram_family(self):
        family = MetricFamily(
            MetricDescriptor.histogram("latency_seconds", "Latency", ["route"], [0.5]),
            (
                (
                    ("/x",),
                    HistogramSnapshot(buckets=((0.5, 1), (float("inf"), 2)), sum=1.25, count=2),
                ),
            ),
        )

        metric = to_metric_family(family)

        assert isinstance(metric, HistogramMetricFamily)
        assert [(s.name, s.labels, s.value) for s in metric.samples] == [
            ("latency_seconds_bucket", {"route": "/x", "le": "0.5"}, 1),
            ("latency_seconds_bucket", {"route": "/x", "le": "+Inf"}, 2),
            ("latency_seconds_count", {"route": "/x"}, 2),
            ("latency_seconds_sum", {"route": "/x"}, 1.25),
        ]

    def test_malformed_series_is_omitted(self, caplog):
        family = MetricFamily(
            MetricDescriptor.counter("jobs_total", "Jobs", ["kind"]),
            (
                (("a", "unexpected"), 1.0),
                (("b",), 2.0),
            ),
        )

        with caplog.at_level(logging.ERROR):
            metric = to_metric_family(family)

        assert [s.labels for s in metric.samples] == [{"kind": "b"}]
        assert "Omitting malformed series" in caplog.text

    def test_sample_type_checked(self, caplog):
        histogram = MetricFamily(
            MetricDescriptor.histogram("latency_seconds", "Latency", buckets=[1]),
            (((), 1.0),),
        )
        counter_with_snapshot = MetricFamily(
            MetricDescriptor.counter("jobs_total", "Jobs"),
            (((), HistogramSnapshot(buckets=(), sum=0.0, count=0)),),
        )

        with caplog.at_level(logging.ERROR):
            assert to_metric_family(histogram).samples == []
            assert to_metric_family(counter_with_snapshot).samples == []

        assert caplog.text.count("Omitting malformed series") == 2


class TestCollectorOutput:
    """Text produced by generate_latest over a registry."""

    def test_empty_registry(self, registry: MetricRegistry):
        assert _render(registry) == ""

    def test_label_values_and_help_are_escaped(self, registry: MetricRegistry):
        counter = registry.counter("jobs_total", "line\\one\nline two", ["kind"])
        counter.increment({"kind": 'say "hi"\n'})

        text = _render(registry)

        assert "# HELP jobs_total line\\\\one\\nline two\n" in text
        assert 'jobs_total{kind="say \\"hi\\"\\n"} 1.0\n' in text

    def test_unlabeled_counter(self, registry: MetricRegistry):
        registry.counter("jobs_total", "Jobs").increment(amount=5)

        assert _render(registry).splitlines()[-1] == "jobs_total 5.0"

    def test_registered_next_to_other_collectors(self, registry: MetricRegistry):
        registry.counter("jobs_total", "Jobs").increment()
        collector_registry = CollectorRegistry()
        collector_registry.register(registry)

        text = _render(collector_registry)

        assert "# TYPE jobs_total counter" in text
        assert "jobs_total 1.0" in text

    def test_bad_series_does_not_fail_scrape(self, registry: MetricRegistry, caplog):
        counter = registry.counter("jobs_total", "Jobs", ["kind"])
        counter.increment({"kind": "a"})
        # Corrupt one series key so it no longer matches the declared labels.
        counter._series[("a", "b")] = counter._series[("a",)]

        with caplog.at_level(logging.ERROR):
            text = _render(registry)

        assert 'jobs_total{kind="a"} 1.0' in text
        assert '"b"' not in text
        assert "Omitting malformed series" in caplog.text
