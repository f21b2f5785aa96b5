"""Metrics API endpoint for Prometheus scraping."""

from typing import Any

from dependency_injector.wiring import Provide, inject
from flask import Blueprint, Response
from prometheus_client import CONTENT_TYPE_LATEST

from app.config import METRICS_PATH
from app.services.container import ServiceContainer
from app.services.metrics_service import MetricsService

metrics_bp = Blueprint("metrics", __name__, url_prefix=METRICS_PATH)


@metrics_bp.route("", methods=["GET"])
@inject
def get_metrics(
    metrics_service: MetricsService = Provide[ServiceContainer.metrics_service],
) -> Any:
    """Return metrics in Prometheus text format.

    Returns:
        Response with metrics data in Prometheus exposition format
    """
    metrics_text = metrics_service.get_metrics_text()

    return Response(metrics_text, content_type=CONTENT_TYPE_LATEST)
