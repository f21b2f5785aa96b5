"""Metrics service owning the service's instruments and the scrape output.

Business and request metrics live in the injected ``MetricRegistry``, which
is registered as a collector on a private ``prometheus_client`` registry next
to the process-level collectors (CPU, memory, GC, shutdown state). The scrape
output is a single ``generate_latest`` over that registry.

Recording never raises: a bad observation is logged and dropped so that
instrumentation cannot fail the request it describes.
"""

import logging
import time
from typing import TYPE_CHECKING

from prometheus_client import (
    CollectorRegistry,
    GCCollector,
    Gauge,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)
from prometheus_client import Histogram as PrometheusHistogram

from app.exceptions import MetricsException
from app.metrics import Timer
from app.metrics.registry import MetricRegistry
from app.utils.shutdown_coordinator import LifetimeEvent

if TYPE_CHECKING:
    from app.utils.shutdown_coordinator import ShutdownCoordinatorProtocol

logger = logging.getLogger(__name__)

REQUEST_DURATION_BUCKETS = (0.1, 0.5, 1.0, 2.0, 5.0)


class MetricsService:
    """Request and business metrics plus infrastructure metrics.

    This service handles:
    - The request-duration histogram fed by the timing middleware
    - The completed-tasks counter fed by the workload service
    - Runtime and shutdown metrics
    - Generating the Prometheus text for the scrape endpoint
    """

    def __init__(
        self,
        registry: MetricRegistry,
        shutdown_coordinator: "ShutdownCoordinatorProtocol",
        runtime_metrics_enabled: bool = True,
    ):
        """Initialize metrics service.

        Args:
            registry: Registry owning the request and business metrics
            shutdown_coordinator: Coordinator for graceful shutdown
            runtime_metrics_enabled: Export process, platform and GC metrics

        Raises:
            DuplicateMetricError: the registry already holds one of the
                metrics with a different shape
        """
        self.registry = registry
        self.shutdown_coordinator = shutdown_coordinator
        self._shutdown_start_time: float | None = None

        self.shutdown_coordinator.register_lifetime_notification(
            self._on_lifetime_event
        )

        self._initialize_metrics()
        self._initialize_runtime_metrics(runtime_metrics_enabled)

    def _initialize_metrics(self) -> None:
        """Register the request and business metrics."""
        self.request_duration_seconds = self.registry.histogram(
            "http_request_duration_seconds",
            "Duration of HTTP requests in seconds",
            ["method", "route", "status_code"],
            buckets=REQUEST_DURATION_BUCKETS,
        )

        self.tasks_completed_total = self.registry.counter(
            "app_tasks_completed_total",
            "Total number of successful business tasks completed",
            ["task_type"],
        )

    def _initialize_runtime_metrics(self, enabled: bool) -> None:
        """Build the collector registry behind the scrape output."""
        self.collector_registry = CollectorRegistry()
        self.collector_registry.register(self.registry)

        if enabled:
            ProcessCollector(registry=self.collector_registry)
            PlatformCollector(registry=self.collector_registry)
            GCCollector(registry=self.collector_registry)

        self.application_shutting_down = Gauge(
            "application_shutting_down",
            "Whether application is shutting down (1=yes, 0=no)",
            registry=self.collector_registry,
        )

        self.graceful_shutdown_duration_seconds = PrometheusHistogram(
            "graceful_shutdown_duration_seconds",
            "Duration of graceful shutdowns",
            registry=self.collector_registry,
        )

        self.http_requests_in_flight = Gauge(
            "http_requests_in_flight",
            "Number of HTTP requests currently being processed",
            registry=self.collector_registry,
        )

    def start_request_timer(self) -> Timer:
        return self.request_duration_seconds.start_timer()

    def record_request(
        self, timer: Timer, method: str, route: str, status_code: int | str
    ) -> None:
        """Complete a request timer with its final labels."""
        try:
            timer.observe(
                {"method": method, "route": route, "status_code": status_code}
            )
        except MetricsException as e:
            logger.error(f"Dropped request duration observation: {e}")

    def discard_request_timer(self, timer: Timer) -> None:
        """Consume a request timer without recording it."""
        try:
            timer.discard()
        except MetricsException as e:
            logger.error(f"Error discarding request timer: {e}")

    def record_task_completed(self, task_type: str, amount: float = 1) -> None:
        """Count a successfully completed business task."""
        try:
            self.tasks_completed_total.increment({"task_type": task_type}, amount)
        except MetricsException as e:
            logger.error(f"Dropped task completion metric: {e}")

    def set_requests_in_flight(self, count: int) -> None:
        try:
            self.http_requests_in_flight.set(count)
        except Exception as e:
            logger.error(f"Error setting in-flight requests: {e}")

    def get_metrics_text(self) -> str:
        """Generate metrics in Prometheus text format."""
        return generate_latest(self.collector_registry).decode("utf-8")

    def set_shutdown_state(self, is_shutting_down: bool) -> None:
        """Set the shutdown state metric.

        Args:
            is_shutting_down: Whether the application is shutting down.
        """
        try:
            self.application_shutting_down.set(1 if is_shutting_down else 0)
            if is_shutting_down:
                self._shutdown_start_time = time.perf_counter()
        except Exception as e:
            logger.error(f"Error setting shutdown state: {e}")

    def _on_lifetime_event(self, event: LifetimeEvent) -> None:
        """Callback for shutdown lifecycle events."""
        match event:
            case LifetimeEvent.PREPARE_SHUTDOWN:
                self.set_shutdown_state(True)
            case LifetimeEvent.SHUTDOWN:
                self._record_shutdown_duration()

    def _record_shutdown_duration(self) -> None:
        """Record the shutdown duration metric."""
        if self._shutdown_start_time:
            duration = time.perf_counter() - self._shutdown_start_time
            try:
                self.graceful_shutdown_duration_seconds.observe(duration)
            except Exception as e:
                logger.error(f"Error recording shutdown duration: {e}")
