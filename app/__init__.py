"""Flask application factory."""

from app.app import App
from app.config import Settings


def create_app(settings: "Settings | None" = None) -> App:
    """Create and configure Flask application.

    The service container is built here, once, before any request can be
    served. Metric registration happens eagerly so a conflicting metric
    definition fails startup instead of the first request.

    Raises:
        ConfigurationError: the settings are invalid
        DuplicateMetricError: two metrics were defined with the same name
    """
    app = App(__name__)

    # Load configuration
    if settings is None:
        settings = Settings.load()

    # Validate configuration before proceeding
    settings.validate_config()

    app.config.from_object(settings.to_flask_config())

    from app.services.container import ServiceContainer

    container = ServiceContainer()
    container.config.override(settings)

    # Wire container to all API modules via package scanning
    container.wire(packages=["app.api"])

    app.container = container

    from app.utils.flask_error_handlers import register_core_error_handlers

    register_core_error_handlers(app)

    from app.api.health import health_bp
    from app.api.metrics import metrics_bp
    from app.api.tasks import tasks_bp

    app.register_blueprint(tasks_bp)
    app.register_blueprint(health_bp)
    app.register_blueprint(metrics_bp)

    metrics_service = container.metrics_service()
    container.workload_service()

    from app.metrics.middleware import RequestTimingMiddleware

    timing_middleware = RequestTimingMiddleware(
        app.wsgi_app,
        metrics_service=metrics_service,
        url_map=app.url_map,
        shutdown_coordinator=container.shutdown_coordinator(),
        metrics_path=settings.metrics_path,
    )
    app.wsgi_app = timing_middleware  # type: ignore[method-assign]
    app.timing_middleware = timing_middleware

    app.logger.info("Request timing middleware installed")

    return app
