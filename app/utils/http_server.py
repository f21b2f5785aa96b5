"""Waitress server wired into the shutdown coordinator."""

import logging
from typing import Any

from waitress.server import BaseWSGIServer, create_server

from app.utils.shutdown_coordinator import LifetimeEvent, ShutdownCoordinatorProtocol

logger = logging.getLogger(__name__)


def create_http_server(
    app: Any,
    shutdown_coordinator: ShutdownCoordinatorProtocol,
    host: str,
    port: int,
    threads: int,
) -> BaseWSGIServer:
    """Create a waitress server that closes its doors when draining starts.

    On PREPARE_SHUTDOWN the listener stops accepting connections and every
    idle keep-alive connection is closed. Connections with a request in
    progress finish that request; anything they send afterwards is refused
    by the request timing middleware.

    A WSGI application cannot send ``Connection: close`` itself (waitress
    rejects hop-by-hop headers), so idle connections are closed here.
    """
    server = create_server(app, host=host, port=port, threads=threads)

    def close_doors() -> None:
        # Runs on the server loop thread, which owns the channel map.
        server.accepting = False

        closed = 0
        for channel in list(server.active_channels.values()):
            with channel.requests_lock:
                if not channel.requests:
                    channel.close_when_flushed = True
                    closed += 1

        logger.info(
            f"HTTP server no longer accepting connections, "
            f"closing {closed} idle connections"
        )

    def on_lifetime_event(lifetime_event: LifetimeEvent) -> None:
        if lifetime_event == LifetimeEvent.PREPARE_SHUTDOWN:
            server.trigger.pull_trigger(close_doors)

    shutdown_coordinator.register_lifetime_notification(on_lifetime_event)

    return server
