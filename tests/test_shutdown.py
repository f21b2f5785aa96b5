"""Tests for the graceful shutdown coordinator."""

import signal
import threading
import time

import pytest

from app.utils.shutdown_coordinator import (
    LifetimeEvent,
    ServerState,
    ShutdownCoordinator,
)


@pytest.fixture
def coordinator() -> ShutdownCoordinator:
    return ShutdownCoordinator(graceful_shutdown_timeout=1.0)


class TestShutdownCoordinator:
    """Tests for ShutdownCoordinator."""

    def test_initial_state(self, coordinator):
        assert coordinator.state == ServerState.RUNNING
        assert coordinator.is_shutting_down() is False

    def test_events_raised_in_order(self, coordinator):
        events: list[tuple[LifetimeEvent, ServerState]] = []
        coordinator.register_lifetime_notification(
            lambda event: events.append((event, coordinator.state))
        )

        coordinator.shutdown()

        assert events == [
            (LifetimeEvent.PREPARE_SHUTDOWN, ServerState.DRAINING),
            (LifetimeEvent.SHUTDOWN, ServerState.DRAINING),
            (LifetimeEvent.AFTER_SHUTDOWN, ServerState.STOPPED),
        ]
        assert coordinator.state == ServerState.STOPPED
        assert coordinator.is_shutting_down() is True

    def test_shutdown_is_idempotent(self, coordinator):
        events: list[LifetimeEvent] = []
        coordinator.register_lifetime_notification(events.append)

        coordinator.shutdown()
        coordinator.shutdown()

        assert events.count(LifetimeEvent.PREPARE_SHUTDOWN) == 1
        assert events.count(LifetimeEvent.AFTER_SHUTDOWN) == 1

    def test_concurrent_shutdown_runs_once(self, coordinator):
        events: list[LifetimeEvent] = []
        coordinator.register_lifetime_notification(events.append)
        barrier = threading.Barrier(4)

        def trigger():
            barrier.wait()
            coordinator.shutdown()

        threads = [threading.Thread(target=trigger) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert events.count(LifetimeEvent.SHUTDOWN) == 1

    def test_waiters_run_while_draining(self, coordinator):
        observed: list[tuple[ServerState, float]] = []

        def waiter(timeout: float) -> bool:
            observed.append((coordinator.state, timeout))
            return True

        coordinator.register_shutdown_waiter("waiter", waiter)
        coordinator.shutdown()

        assert len(observed) == 1
        state, timeout = observed[0]
        assert state == ServerState.DRAINING
        assert 0 < timeout <= 1.0

    def test_waiters_share_one_deadline(self):
        coordinator = ShutdownCoordinator(graceful_shutdown_timeout=0.2)
        calls: list[str] = []

        def slow(timeout: float) -> bool:
            calls.append("slow")
            time.sleep(timeout + 0.05)
            return False

        def never_reached(timeout: float) -> bool:
            calls.append("never")
            return True

        coordinator.register_shutdown_waiter("slow", slow)
        coordinator.register_shutdown_waiter("never", never_reached)

        start = time.perf_counter()
        coordinator.shutdown()

        assert calls == ["slow"]
        assert time.perf_counter() - start < 1.0
        assert coordinator.state == ServerState.STOPPED

    def test_waiter_error_does_not_stop_shutdown(self, coordinator):
        calls: list[str] = []

        def broken(timeout: float) -> bool:
            raise RuntimeError("waiter failed")

        def healthy(timeout: float) -> bool:
            calls.append("healthy")
            return True

        coordinator.register_shutdown_waiter("broken", broken)
        coordinator.register_shutdown_waiter("healthy", healthy)

        coordinator.shutdown()

        assert calls == ["healthy"]
        assert coordinator.state == ServerState.STOPPED

    def test_callback_error_does_not_block_others(self, coordinator):
        events: list[LifetimeEvent] = []

        def broken(event: LifetimeEvent) -> None:
            raise RuntimeError("callback failed")

        coordinator.register_lifetime_notification(broken)
        coordinator.register_lifetime_notification(events.append)

        coordinator.shutdown()

        assert events == [
            LifetimeEvent.PREPARE_SHUTDOWN,
            LifetimeEvent.SHUTDOWN,
            LifetimeEvent.AFTER_SHUTDOWN,
        ]

    def test_signal_handler_triggers_shutdown(self, coordinator):
        coordinator._handle_sigterm(signal.SIGTERM, None)

        assert coordinator.state == ServerState.STOPPED

    def test_initialize_installs_signal_handlers(self, coordinator):
        previous_term = signal.getsignal(signal.SIGTERM)
        previous_int = signal.getsignal(signal.SIGINT)
        try:
            coordinator.initialize()

            assert signal.getsignal(signal.SIGTERM) == coordinator._handle_sigterm
            assert signal.getsignal(signal.SIGINT) == coordinator._handle_sigterm
        finally:
            signal.signal(signal.SIGTERM, previous_term)
            signal.signal(signal.SIGINT, previous_int)
