"""Custom Flask application class with container reference."""

from typing import TYPE_CHECKING

from flask import Flask

if TYPE_CHECKING:
    from app.metrics.middleware import RequestTimingMiddleware
    from app.services.container import ServiceContainer


class App(Flask):
    """Custom Flask application with typed container attribute.

    This class extends Flask to provide type-safe access to the
    dependency injection container and the request timing middleware.
    """

    container: "ServiceContainer"
    timing_middleware: "RequestTimingMiddleware"
