"""Shared testing utilities for shutdown coordinator stubs."""

import logging
from collections.abc import Callable

from app.utils.shutdown_coordinator import (
    LifetimeEvent,
    ServerState,
    ShutdownCoordinatorProtocol,
)


class StubShutdownCoordinator(ShutdownCoordinatorProtocol):
    """Basic shutdown coordinator stub for testing.

    This stub only stores registrations and maintains state - it never
    executes callbacks or waiters. Use this for unit tests that just
    need dependency injection without lifecycle behavior testing.
    """

    def __init__(self):
        self._state = ServerState.RUNNING
        self._notifications: list[Callable[[LifetimeEvent], None]] = []
        self._waiters: dict[str, Callable[[float], bool]] = {}

    def initialize(self) -> None:
        """Initialize (noop)."""
        pass

    def register_lifetime_notification(self, callback: Callable[[LifetimeEvent], None]) -> None:
        """Store notification callback."""
        self._notifications.append(callback)

    def register_shutdown_waiter(self, name: str, handler: Callable[[float], bool]) -> None:
        """Store shutdown waiter."""
        self._waiters[name] = handler

    def is_shutting_down(self) -> bool:
        """Return current shutdown state."""
        return self._state != ServerState.RUNNING

    @property
    def state(self) -> ServerState:
        return self._state

    def shutdown(self) -> None:
        """Implements the shutdown process."""
        pass


class TestShutdownCoordinator(StubShutdownCoordinator):
    """Enhanced shutdown coordinator stub with controllable execution.

    This extends the basic stub with methods to simulate shutdown behavior
    for integration testing. Use this when you need to test actual shutdown
    sequences and callback execution.
    """

    __test__ = False

    def simulate_shutdown(self) -> None:
        """Simulate shutdown - sets state AND executes PREPARE_SHUTDOWN callbacks."""
        self._state = ServerState.DRAINING
        self._notify(LifetimeEvent.PREPARE_SHUTDOWN)

    def simulate_full_shutdown(self, timeout: float = 30.0) -> dict[str, bool]:
        """Simulate full shutdown including waiter execution and SHUTDOWN callbacks."""
        self.simulate_shutdown()

        results: dict[str, bool] = {}
        for name, waiter in self._waiters.items():
            try:
                results[name] = waiter(timeout)
            except Exception as e:
                logging.getLogger(__name__).error(f"Error in test waiter {name}: {e}")
                results[name] = False

        self._notify(LifetimeEvent.SHUTDOWN)
        self._state = ServerState.STOPPED
        self._notify(LifetimeEvent.AFTER_SHUTDOWN)
        return results

    def _notify(self, event: LifetimeEvent) -> None:
        for callback in self._notifications:
            try:
                callback(event)
            except Exception as e:
                logging.getLogger(__name__).error(f"Error in test callback for {event}: {e}")
