"""Dependency injection container for the service."""

from dependency_injector import containers, providers

from app.config import Settings
from app.metrics.registry import MetricRegistry
from app.services.metrics_service import MetricsService
from app.services.workload_service import WorkloadService
from app.utils.shutdown_coordinator import ShutdownCoordinator


class ServiceContainer(containers.DeclarativeContainer):
    """Container for service dependency injection.

    The container is the only owner of the metric registry; components get
    it, or the services built on it, through their providers.
    """

    # Configuration - must be overridden by create_app()
    config = providers.Dependency(instance_of=Settings)

    # Shutdown coordinator - drains requests before the process exits
    shutdown_coordinator = providers.Singleton(
        ShutdownCoordinator,
        graceful_shutdown_timeout=config.provided.graceful_shutdown_timeout,
    )

    metric_registry = providers.Singleton(MetricRegistry)

    metrics_service = providers.Singleton(
        MetricsService,
        registry=metric_registry,
        shutdown_coordinator=shutdown_coordinator,
        runtime_metrics_enabled=config.provided.runtime_metrics_enabled,
    )

    workload_service = providers.Singleton(
        WorkloadService,
        metrics_service=metrics_service,
        shutdown_coordinator=shutdown_coordinator,
        max_workers=config.provided.workload_max_workers,
        cpu_iterations=config.provided.cpu_workload_iterations,
        latency_min_ms=config.provided.latency_min_ms,
        latency_max_ms=config.provided.latency_max_ms,
    )
