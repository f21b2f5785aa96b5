"""Graceful shutdown coordinator for draining in-flight requests."""

import logging
import signal
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum

logger = logging.getLogger(__name__)


class LifetimeEvent(str, Enum):
    """Lifecycle events during shutdown process."""

    PREPARE_SHUTDOWN = "prepare-shutdown"
    SHUTDOWN = "shutdown"
    AFTER_SHUTDOWN = "after-shutdown"


class ServerState(str, Enum):
    """Serving state of the process."""

    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


class ShutdownCoordinatorProtocol(ABC):
    """Protocol for shutdown coordinator implementations."""

    @abstractmethod
    def initialize(self) -> None:
        """Setup the signal handlers."""
        pass

    @abstractmethod
    def register_lifetime_notification(
        self, callback: Callable[[LifetimeEvent], None]
    ) -> None:
        """Register a callback to be notified of lifetime events."""
        pass

    @abstractmethod
    def register_shutdown_waiter(
        self, name: str, handler: Callable[[float], bool]
    ) -> None:
        """Register a handler that blocks until ready for shutdown."""
        pass

    @abstractmethod
    def is_shutting_down(self) -> bool:
        """Check if shutdown has been initiated."""
        pass

    @property
    @abstractmethod
    def state(self) -> ServerState:
        """Current serving state."""
        pass

    @abstractmethod
    def shutdown(self) -> None:
        """Implements the shutdown process."""
        pass


class ShutdownCoordinator(ShutdownCoordinatorProtocol):
    """Coordinator for graceful shutdown of the HTTP service.

    Handles SIGTERM/SIGINT and walks the process through
    RUNNING -> DRAINING -> STOPPED:

    - PREPARE_SHUTDOWN: listeners stop accepting new connections and flip
      readiness.
    - Shutdown waiters run in registration order and share one deadline of
      ``graceful_shutdown_timeout`` seconds. Waiters that are still busy when
      it expires are abandoned.
    - SHUTDOWN: services release their resources.
    - AFTER_SHUTDOWN: the runner lets the process exit, which force-closes
      whatever connections are left.
    """

    def __init__(self, graceful_shutdown_timeout: float):
        """Initialize shutdown coordinator.

        Args:
            graceful_shutdown_timeout: Maximum seconds to wait for in-flight
                work before shutting down anyway
        """
        self._graceful_shutdown_timeout = graceful_shutdown_timeout
        self._state = ServerState.RUNNING
        self._shutdown_lock = threading.RLock()
        self._shutdown_notifications: list[Callable[[LifetimeEvent], None]] = []
        self._shutdown_waiters: dict[str, Callable[[float], bool]] = {}

        logger.info(
            f"ShutdownCoordinator initialized "
            f"(graceful_shutdown_timeout={graceful_shutdown_timeout}s)"
        )

    def initialize(self) -> None:
        """Setup the signal handlers."""
        signal.signal(signal.SIGTERM, self._handle_sigterm)
        signal.signal(signal.SIGINT, self._handle_sigterm)

    def register_lifetime_notification(
        self, callback: Callable[[LifetimeEvent], None]
    ) -> None:
        """Register a callback to be notified of lifetime events."""
        with self._shutdown_lock:
            self._shutdown_notifications.append(callback)
            logger.debug(
                f"Registered shutdown notification: "
                f"{getattr(callback, '__name__', repr(callback))}"
            )

    def register_shutdown_waiter(
        self, name: str, handler: Callable[[float], bool]
    ) -> None:
        """Register a handler that blocks until ready for shutdown."""
        with self._shutdown_lock:
            self._shutdown_waiters[name] = handler
            logger.debug(f"Registered shutdown waiter: {name}")

    def is_shutting_down(self) -> bool:
        """Check if shutdown has been initiated."""
        with self._shutdown_lock:
            return self._state != ServerState.RUNNING

    @property
    def state(self) -> ServerState:
        with self._shutdown_lock:
            return self._state

    def _handle_sigterm(self, signum: int, frame: object) -> None:
        """SIGTERM signal handler that performs complete graceful shutdown."""
        logger.info(f"Received signal {signum}, initiating graceful shutdown")
        self.shutdown()

    def shutdown(self) -> None:
        """Drain in-flight work, then stop."""
        with self._shutdown_lock:
            if self._state != ServerState.RUNNING:
                logger.warning("Shutdown already in progress, ignoring signal")
                return

            self._state = ServerState.DRAINING
            shutdown_start_time = time.perf_counter()

            waiters = list(self._shutdown_waiters.items())

            # Notify all listeners that we're starting shutdown
            self._raise_lifetime_event(LifetimeEvent.PREPARE_SHUTDOWN)

        logger.info(
            f"Draining: waiting for {len(waiters)} services to complete "
            f"(timeout: {self._graceful_shutdown_timeout}s)"
        )

        all_ready = True

        for name, waiter in waiters:
            elapsed = time.perf_counter() - shutdown_start_time
            remaining = self._graceful_shutdown_timeout - elapsed

            if remaining <= 0:
                logger.error(f"Shutdown timeout exceeded before checking {name}")
                all_ready = False
                break

            try:
                logger.info(
                    f"Waiting for {name} to complete (remaining: {remaining:.1f}s)"
                )
                ready = waiter(remaining)

                if not ready:
                    logger.warning(f"{name} was not ready within timeout")
                    all_ready = False

            except Exception as e:
                logger.error(f"Error in shutdown waiter {name}: {e}")
                all_ready = False

        total_duration = time.perf_counter() - shutdown_start_time

        if not all_ready:
            logger.error(
                f"Shutdown timeout exceeded after {total_duration:.1f}s, "
                "forcing shutdown"
            )
        else:
            logger.info(f"Drained in {total_duration:.2f}s")

        self._raise_lifetime_event(LifetimeEvent.SHUTDOWN)

        with self._shutdown_lock:
            self._state = ServerState.STOPPED

        logger.info("Shutting down")

        self._raise_lifetime_event(LifetimeEvent.AFTER_SHUTDOWN)

    def _raise_lifetime_event(self, event: LifetimeEvent) -> None:
        """Notify all registered callbacks of a lifetime event."""
        logger.info(f"Raising lifetime event {event.value}")

        with self._shutdown_lock:
            callbacks = list(self._shutdown_notifications)

        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(
                    f"Error in lifetime event notification "
                    f"{getattr(callback, '__name__', repr(callback))}: {e}"
                )
