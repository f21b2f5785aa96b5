"""Kubernetes liveness and readiness probes."""

from typing import Any

from dependency_injector.wiring import Provide, inject
from flask import Blueprint, Response

from app.services.container import ServiceContainer
from app.utils.shutdown_coordinator import ShutdownCoordinatorProtocol

health_bp = Blueprint("health", __name__)


@health_bp.route("/healthz", methods=["GET"])
def healthz() -> Any:
    """Liveness probe, healthy for as long as the process is serving."""
    return Response("OK", status=200, content_type="text/plain; charset=utf-8")


@health_bp.route("/ready", methods=["GET"])
@inject
def ready(
    shutdown_coordinator: ShutdownCoordinatorProtocol = Provide[
        ServiceContainer.shutdown_coordinator
    ],
) -> Any:
    """Readiness probe; fails once draining starts so traffic is routed away."""
    if shutdown_coordinator.is_shutting_down():
        return Response("Draining", status=503, content_type="text/plain; charset=utf-8")

    return Response("Ready", status=200, content_type="text/plain; charset=utf-8")
