"""Server entry point."""

import logging
import os
import threading

from app import create_app
from app.config import Settings
from app.utils.http_server import create_http_server
from app.utils.shutdown_coordinator import LifetimeEvent


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    settings = Settings.load()
    app = create_app(settings)

    host = settings.host
    port = settings.port

    shutdown_coordinator = app.container.shutdown_coordinator()

    debug_mode = settings.flask_env in ("development", "testing")

    if debug_mode:
        app.logger.info("Running in debug mode")

        if os.environ.get("WERKZEUG_RUN_MAIN") == "true":
            shutdown_coordinator.initialize()

        def signal_shutdown(lifetime_event: LifetimeEvent) -> None:
            if lifetime_event == LifetimeEvent.AFTER_SHUTDOWN:
                # Need os._exit because sys.exit doesn't work with reloader
                os._exit(0)

        shutdown_coordinator.register_lifetime_notification(signal_shutdown)
        app.run(host=host, port=port, debug=True)
    else:
        shutdown_coordinator.initialize()

        server = create_http_server(
            app,
            shutdown_coordinator,
            host=host,
            port=port,
            threads=settings.waitress_threads,
        )
        app.logger.info(
            f"API running at http://{host}:{port} "
            f"(waitress, {settings.waitress_threads} threads)"
        )

        # Run server in daemon thread so shutdown coordinator controls exit
        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()

        event = threading.Event()

        def signal_shutdown_prod(lifetime_event: LifetimeEvent) -> None:
            if lifetime_event == LifetimeEvent.AFTER_SHUTDOWN:
                app.logger.info("HTTP server closed")
                event.set()

        shutdown_coordinator.register_lifetime_notification(signal_shutdown_prod)
        event.wait()


if __name__ == "__main__":
    main()
