"""Business task endpoints."""

from typing import Any

from dependency_injector.wiring import Provide, inject
from flask import Blueprint, jsonify

from app.services.container import ServiceContainer
from app.services.workload_service import WorkloadService

tasks_bp = Blueprint("tasks", __name__)


@tasks_bp.route("/hello", methods=["GET"])
@inject
def hello(
    workload_service: WorkloadService = Provide[ServiceContainer.workload_service],
) -> Any:
    """Return a greeting."""
    return jsonify({"message": workload_service.greet()})


@tasks_bp.route("/addCpuUsage", methods=["GET"])
@inject
def add_cpu_usage(
    workload_service: WorkloadService = Provide[ServiceContainer.workload_service],
) -> Any:
    """Run a CPU-bound computation on the worker pool."""
    total = workload_service.compute()
    return jsonify({"result": "Calculated!", "total": total})


@tasks_bp.route("/addLatency", methods=["GET"])
@inject
def add_latency(
    workload_service: WorkloadService = Provide[ServiceContainer.workload_service],
) -> Any:
    """Respond after an artificial random delay."""
    result = workload_service.add_latency()
    return jsonify(
        {
            "message": "This request was intentionally slowed down.",
            "delay_ms": result.delay_ms,
        }
    )
