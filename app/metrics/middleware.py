"""WSGI middleware timing every request into the request-duration histogram.

The middleware wraps ``Flask.wsgi_app`` so it sees the final status line and
the end of the response body, whichever way the request ends:

- the body iterator is exhausted (normal completion)
- the server closes the body early (client disconnect)
- the wrapped application raises

The completion hook runs once for the first of these. Requests to the
metrics path are never recorded.

Once draining starts no new request reaches the application: it is answered
with ``503 Draining`` and recorded with that status, but never counted as in
flight, so the drain waiter cannot be held open by late arrivals.
"""

import logging
import threading
from collections.abc import Callable, Iterable, Iterator
from typing import TYPE_CHECKING, Any

from werkzeug.exceptions import HTTPException
from werkzeug.routing import Map
from werkzeug.wrappers import Response

from app.metrics.instruments import Timer
from app.utils.shutdown_coordinator import LifetimeEvent

if TYPE_CHECKING:
    from app.services.metrics_service import MetricsService
    from app.utils.shutdown_coordinator import ShutdownCoordinatorProtocol

logger = logging.getLogger(__name__)

WSGIApp = Callable[[dict[str, Any], Callable[..., Any]], Iterable[bytes]]

KNOWN_METHODS = frozenset(
    {"GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "TRACE", "CONNECT"}
)
OTHER_METHOD = "OTHER"
UNMATCHED_ROUTE = "<unmatched>"
ABORTED_STATUS = "aborted"
FAILED_STATUS = "500"
DRAINING_BODY = "Draining"


class RequestTimingMiddleware:
    """Records ``{method, route, status_code}`` durations for every request.

    Label values are kept to bounded vocabularies: unknown HTTP methods
    collapse to ``OTHER`` and the route is the matched URL rule template
    (``/items/<int:item_id>``), never the raw path.
    """

    def __init__(
        self,
        wsgi_app: WSGIApp,
        metrics_service: "MetricsService",
        url_map: Map,
        shutdown_coordinator: "ShutdownCoordinatorProtocol",
        metrics_path: str = "/metrics",
    ):
        """Initialize the middleware.

        Args:
            wsgi_app: The WSGI application to wrap
            metrics_service: Records the request-duration observations
            url_map: Routing map used to resolve route templates
            shutdown_coordinator: Coordinator waiting on in-flight requests
            metrics_path: Scrape path excluded from timing
        """
        self.wsgi_app = wsgi_app
        self.metrics_service = metrics_service
        self.url_map = url_map
        self.metrics_path = metrics_path

        self._in_flight = 0
        self._draining = False
        self._in_flight_condition = threading.Condition()

        shutdown_coordinator.register_lifetime_notification(self._on_lifetime_event)
        shutdown_coordinator.register_shutdown_waiter(
            "RequestTimingMiddleware", self.wait_for_requests
        )

    @property
    def in_flight(self) -> int:
        with self._in_flight_condition:
            return self._in_flight

    @property
    def draining(self) -> bool:
        with self._in_flight_condition:
            return self._draining

    def __call__(
        self, environ: dict[str, Any], start_response: Callable[..., Any]
    ) -> Iterable[bytes]:
        if not self._acquire():
            return self._refuse(environ, start_response)

        observation = _RequestObservation(self, environ)

        try:
            app_iter = self.wsgi_app(environ, observation.start_response(start_response))
        except BaseException:
            observation.finish(FAILED_STATUS, force=True)
            raise

        return _ObservedBody(app_iter, observation)

    def resolve_route(self, environ: dict[str, Any]) -> str:
        """Return the URL rule template matching the request."""
        try:
            adapter = self.url_map.bind_to_environ(environ)
            rule, _ = adapter.match(return_rule=True)
        except HTTPException:
            return UNMATCHED_ROUTE
        return rule.rule

    def wait_for_requests(self, timeout: float) -> bool:
        """Block until no request is in flight or ``timeout`` expires.

        New requests are refused from the moment this is called, so once it
        returns True no request can be admitted any more.
        """
        with self._in_flight_condition:
            self._draining = True
            if self._in_flight == 0:
                logger.info("No in-flight requests to wait for")
                return True

            logger.info(
                f"Waiting for {self._in_flight} in-flight requests "
                f"(timeout: {timeout:.1f}s)"
            )
            drained = self._in_flight_condition.wait_for(
                lambda: self._in_flight == 0, timeout=timeout
            )

            if drained:
                logger.info("All in-flight requests completed")
            else:
                logger.warning(
                    f"Timeout waiting for requests, {self._in_flight} still in flight"
                )
            return drained

    def _acquire(self) -> bool:
        with self._in_flight_condition:
            if self._draining:
                return False
            self._in_flight += 1
            self.metrics_service.set_requests_in_flight(self._in_flight)
            return True

    def _release(self) -> None:
        with self._in_flight_condition:
            self._in_flight -= 1
            self.metrics_service.set_requests_in_flight(self._in_flight)
            if self._in_flight == 0:
                self._in_flight_condition.notify_all()

    def _on_lifetime_event(self, event: LifetimeEvent) -> None:
        if event == LifetimeEvent.PREPARE_SHUTDOWN:
            with self._in_flight_condition:
                self._draining = True
            logger.info("Refusing new requests while draining")

    def _refuse(
        self, environ: dict[str, Any], start_response: Callable[..., Any]
    ) -> Iterable[bytes]:
        observation = _RequestObservation(self, environ, in_flight=False)
        response = Response(DRAINING_BODY, status=503, mimetype="text/plain")
        app_iter = response(environ, observation.start_response(start_response))
        return _ObservedBody(app_iter, observation)


class _RequestObservation:
    """Per-request state; ``finish()`` records the observation exactly once."""

    def __init__(
        self,
        middleware: RequestTimingMiddleware,
        environ: dict[str, Any],
        in_flight: bool = True,
    ):
        self._middleware = middleware
        self._environ = environ
        self._in_flight = in_flight
        self._timer: Timer = middleware.metrics_service.start_request_timer()
        self._status: str | None = None
        self._lock = threading.Lock()
        self._finished = False

    def start_response(self, start_response: Callable[..., Any]) -> Callable[..., Any]:
        def wrapped(status: str, headers: list[tuple[str, str]], exc_info: Any = None) -> Any:
            # Called again with exc_info when an error replaces the response
            self._status = status.split(" ", 1)[0]
            if exc_info is not None:
                return start_response(status, headers, exc_info)
            return start_response(status, headers)

        return wrapped

    def finish(self, fallback_status: str, force: bool = False) -> None:
        """Record the observation unless it was already recorded.

        ``fallback_status`` is used when no status line was sent, or always
        when ``force`` is set.
        """
        with self._lock:
            if self._finished:
                return
            self._finished = True

        middleware = self._middleware
        try:
            if self._environ.get("PATH_INFO") == middleware.metrics_path:
                middleware.metrics_service.discard_request_timer(self._timer)
                return

            method = self._environ.get("REQUEST_METHOD", "").upper()
            if method not in KNOWN_METHODS:
                method = OTHER_METHOD

            middleware.metrics_service.record_request(
                self._timer,
                method=method,
                route=middleware.resolve_route(self._environ),
                status_code=fallback_status if force else (self._status or fallback_status),
            )
        except Exception as e:
            logger.error(f"Error finishing request observation: {e}")
        finally:
            if self._in_flight:
                middleware._release()


class _ObservedBody:
    """Response body wrapper that completes the observation when done."""

    def __init__(self, app_iter: Iterable[bytes], observation: _RequestObservation):
        self._app_iter = app_iter
        self._observation = observation

    def __iter__(self) -> Iterator[bytes]:
        try:
            yield from self._app_iter
        except Exception:
            self._observation.finish(FAILED_STATUS, force=True)
            raise
        self._observation.finish(ABORTED_STATUS)

    def close(self) -> None:
        try:
            close = getattr(self._app_iter, "close", None)
            if close is not None:
                close()
        finally:
            self._observation.finish(ABORTED_STATUS)
