"""Pytest fixtures for the service tests.

The application is created per test with its own container, so every test
starts from a fresh metric registry.
"""

from collections.abc import Generator

import pytest
from flask.testing import FlaskClient

from app import create_app
from app.app import App
from app.config import Settings
from app.metrics.registry import MetricRegistry
from app.services.container import ServiceContainer
from app.services.metrics_service import MetricsService
from tests.testing_utils import StubShutdownCoordinator


def _build_test_settings() -> Settings:
    """Construct base Settings object for tests."""
    return Settings(
        port=8080,
        flask_env="testing",
        debug=False,
        graceful_shutdown_timeout=10,
        waitress_threads=4,
        runtime_metrics_enabled=False,
        workload_max_workers=2,
        cpu_workload_iterations=10_000,
        latency_min_ms=500,
        latency_max_ms=600,
    )


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return _build_test_settings()


@pytest.fixture
def app(test_settings: Settings) -> Generator[App, None, None]:
    """Create Flask app for testing."""
    application = create_app(test_settings)

    try:
        yield application
    finally:
        try:
            application.container.shutdown_coordinator().shutdown()
        except Exception:
            pass


@pytest.fixture
def client(app: App) -> FlaskClient:
    """Create test client."""
    return app.test_client()


@pytest.fixture
def container(app: App) -> ServiceContainer:
    """Access to the DI container for testing."""
    return app.container


@pytest.fixture
def registry() -> MetricRegistry:
    """Standalone metric registry."""
    return MetricRegistry()


@pytest.fixture
def stub_coordinator() -> StubShutdownCoordinator:
    return StubShutdownCoordinator()


@pytest.fixture
def metrics_service(
    registry: MetricRegistry, stub_coordinator: StubShutdownCoordinator
) -> MetricsService:
    """Metrics service on a standalone registry, runtime collectors off."""
    return MetricsService(
        registry=registry,
        shutdown_coordinator=stub_coordinator,
        runtime_metrics_enabled=False,
    )
