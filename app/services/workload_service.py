"""Business workloads exposed by the task endpoints."""

import logging
import math
import random
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from app.utils.shutdown_coordinator import LifetimeEvent

if TYPE_CHECKING:
    from app.services.metrics_service import MetricsService
    from app.utils.shutdown_coordinator import ShutdownCoordinatorProtocol

logger = logging.getLogger(__name__)

GREETING = "Hello, observability world!"


class TaskType(str, Enum):
    """Task categories; the only values of the ``task_type`` label."""

    GREETING = "greeting"
    CPU_INTENSIVE = "cpu_intensive"
    SLOW_PROCESS = "slow_process"


@dataclass(frozen=True)
class LatencyResult:
    delay_ms: int


def sum_square_roots(iterations: int) -> float:
    """CPU-bound reference workload."""
    total = 0.0
    for i in range(iterations):
        total += math.sqrt(i)
    return total


class WorkloadService:
    """Runs the business units of work and counts the successful ones.

    CPU-bound work is handed to a dedicated worker pool so the serving threads
    only wait on its result. A task is counted once it has completed.
    """

    def __init__(
        self,
        metrics_service: "MetricsService",
        shutdown_coordinator: "ShutdownCoordinatorProtocol",
        max_workers: int = 2,
        cpu_iterations: int = 5_000_000,
        latency_min_ms: int = 500,
        latency_max_ms: int = 2499,
        rng: random.Random | None = None,
    ):
        """Initialize WorkloadService.

        Args:
            metrics_service: Records completed tasks
            shutdown_coordinator: Coordinator for graceful shutdown
            max_workers: Size of the CPU worker pool
            cpu_iterations: Loop length of the CPU-bound workload
            latency_min_ms: Lower bound of the artificial delay
            latency_max_ms: Upper bound (inclusive) of the artificial delay
            rng: Random source for the artificial delay
        """
        self.metrics_service = metrics_service
        self.cpu_iterations = cpu_iterations
        self.latency_min_ms = latency_min_ms
        self.latency_max_ms = latency_max_ms
        self._rng = rng or random.Random()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="cpu-worker"
        )

        shutdown_coordinator.register_lifetime_notification(self._on_lifetime_event)

        logger.info(
            f"WorkloadService initialized: max_workers={max_workers}, "
            f"cpu_iterations={cpu_iterations}, "
            f"latency={latency_min_ms}-{latency_max_ms}ms"
        )

    def greet(self) -> str:
        self.metrics_service.record_task_completed(TaskType.GREETING.value)
        return GREETING

    def compute(self) -> float:
        """Run the CPU-bound workload on the worker pool and wait for it."""
        future = self._executor.submit(sum_square_roots, self.cpu_iterations)
        total = future.result()
        self.metrics_service.record_task_completed(TaskType.CPU_INTENSIVE.value)
        return total

    def add_latency(self) -> LatencyResult:
        """Sleep for a random delay before completing."""
        delay_ms = self._rng.randint(self.latency_min_ms, self.latency_max_ms)
        time.sleep(delay_ms / 1000)
        self.metrics_service.record_task_completed(TaskType.SLOW_PROCESS.value)
        return LatencyResult(delay_ms=delay_ms)

    def shutdown(self) -> None:
        """Stop the worker pool after running work completes."""
        logger.info("Shutting down WorkloadService...")
        self._executor.shutdown(wait=True)
        logger.info("WorkloadService shutdown complete")

    def _on_lifetime_event(self, event: LifetimeEvent) -> None:
        if event == LifetimeEvent.SHUTDOWN:
            self.shutdown()
