"""Local HTTP listener that receives the OpenID provider's callback.

This module provides :class:`CallbackListener`, a short-lived threaded HTTP
server with three routes:

1. ``/`` (and any unregistered path) redirects to the provider's
   authorization URL, built fresh on every hit.
2. ``/favicon.ico`` answers ``204 No Content`` so browsers stop asking.
3. The configured callback path validates ``state``, exchanges ``code`` for
   an identity token, shows a confirmation page, and fires the
   :class:`~konfigurator.server.gate.CompletionGate`.

Callbacks that fail validation or exchange are logged and answered with an
empty ``200``: the endpoint never tells a caller why a request was rejected.
The listener keeps accepting attempts until one succeeds.

Each instance owns its route table and server, so several listeners can run
side by side in one process (tests do this).

See Also:
    :class:`konfigurator.orchestrator.Orchestrator` for the caller that
    starts, waits on, and stops the listener.
"""

from __future__ import annotations

import enum
import logging
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Optional, Protocol
from urllib.parse import urlsplit

from konfigurator.exceptions import (
    CallbackValidationError,
    ExchangeError,
    SetupError,
    ShutdownTimeout,
)
from konfigurator.models import CallbackRequest, IdentityToken, Session
from konfigurator.oidc.authorize import build_authorization_url
from konfigurator.server.gate import CompletionGate

logger = logging.getLogger(__name__)

DEFAULT_SHUTDOWN_GRACE = 5.0

# Seconds a connection may stay silent before its handler thread gives up.
CONNECTION_TIMEOUT = 10.0

FAVICON_PATH = "/favicon.ico"

CONFIRMATION_PAGE = """\
<html>
    <body>
        Token retrieved successfully.
        This tab will close soon.

        <script>
            setTimeout(function() {
                window.close();
            }, 2000);
        </script>
    </body>
</html>
"""


class TokenExchanger(Protocol):
    """Anything that can turn an authorization code into an identity token."""

    def exchange(self, code: str) -> IdentityToken: ...


class ListenerState(str, enum.Enum):
    """Lifecycle of a :class:`CallbackListener`.

    ``VALIDATING`` and ``EXCHANGING`` fall back to ``LISTENING`` when a
    callback is rejected. ``COMPLETED`` is only left for shutdown.
    """

    IDLE = "idle"
    LISTENING = "listening"
    VALIDATING = "validating"
    EXCHANGING = "exchanging"
    COMPLETED = "completed"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


RouteHandler = Callable[[BaseHTTPRequestHandler, str], None]


class _CallbackServer(ThreadingHTTPServer):
    """Threading server that tracks connections for graceful shutdown.

    A connection is busy from the moment its request line is parsed until
    the response is written. Connections that never send a request (browser
    preconnects) stay idle and are closed by :meth:`close_idle_connections`.
    """

    daemon_threads = True
    allow_reuse_port = False

    def __init__(self, address: tuple[str, int], handler: type[BaseHTTPRequestHandler]) -> None:
        super().__init__(address, handler)
        self._connections: set[socket.socket] = set()
        self._busy: set[socket.socket] = set()
        self._idle = threading.Condition()

    def process_request(self, request: Any, client_address: Any) -> None:
        # Registered on the serving thread so shutdown never misses a connection.
        with self._idle:
            self._connections.add(request)
        super().process_request(request, client_address)

    def process_request_thread(self, request: Any, client_address: Any) -> None:
        try:
            super().process_request_thread(request, client_address)
        finally:
            with self._idle:
                self._connections.discard(request)
                self._busy.discard(request)
                self._idle.notify_all()

    def mark_busy(self, connection: socket.socket) -> None:
        with self._idle:
            self._busy.add(connection)

    def mark_done(self, connection: socket.socket) -> None:
        with self._idle:
            self._busy.discard(connection)
            self._idle.notify_all()

    def close_idle_connections(self) -> int:
        """Shut down connections with no request in progress. Returns how many."""
        with self._idle:
            idle = self._connections - self._busy
        for connection in idle:
            try:
                connection.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
        return len(idle)

    def wait_idle(self, timeout: float) -> bool:
        """Wait until every connection has been released. ``False`` on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: not self._connections, timeout=timeout)

    def handle_error(self, request: Any, client_address: Any) -> None:
        logger.exception("Unhandled error while serving %s", client_address)


class CallbackListener:
    """Per-login HTTP listener driving the callback state machine.

    Args:
        session: The frozen login session (listen address, callback path,
            anti-forgery token, provider endpoints).
        exchanger: Exchanges authorization codes, usually a
            :class:`~konfigurator.oidc.exchange.TokenExchangeClient`.
        gate: Completion signal to fire on the first successful callback.
            A new one is created when omitted.
        authorization_url: Builds the redirect target for the root route.
            Defaults to :func:`~konfigurator.oidc.authorize.build_authorization_url`.

    Example::

        with CallbackListener(session, exchanger) as listener:
            listener.gate.wait()
            token = listener.token
    """

    def __init__(
        self,
        session: Session,
        exchanger: TokenExchanger,
        gate: Optional[CompletionGate] = None,
        authorization_url: Callable[[Session], str] = build_authorization_url,
    ) -> None:
        self._session = session
        self._exchanger = exchanger
        self._gate = gate or CompletionGate()
        self._authorization_url = authorization_url
        self._lock = threading.Lock()
        self._state = ListenerState.IDLE
        self._token: Optional[IdentityToken] = None
        self._server: Optional[_CallbackServer] = None
        self._thread: Optional[threading.Thread] = None
        self._routes: dict[str, RouteHandler] = {
            FAVICON_PATH: self._handle_icon,
            session.callback_path: self._handle_callback,
        }

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    @property
    def session(self) -> Session:
        """The session, rebound to the real port once an ephemeral port is bound."""
        return self._session

    @property
    def gate(self) -> CompletionGate:
        return self._gate

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def token(self) -> Optional[IdentityToken]:
        """The identity token from the first successful callback, if any."""
        return self._token

    @property
    def root_url(self) -> str:
        return self._session.root_url

    def start(self) -> None:
        """Bind the listen address and start serving on a daemon thread.

        The socket is bound before this method returns, so the browser can
        be pointed at :attr:`root_url` immediately afterwards.

        Raises:
            SetupError: If the listener was already started or the address
                cannot be bound (e.g. the port is in use).
        """
        if self._state is not ListenerState.IDLE:
            raise SetupError(f"Callback listener cannot start from state '{self._state.value}'")

        address = (self._session.listen_host, self._session.listen_port)
        try:
            server = _CallbackServer(address, self._make_handler())
        except OSError as exc:
            raise SetupError(
                f"Cannot listen on {self._session.listen_address}: {exc}"
            ) from exc

        bound_port = server.server_address[1]
        if bound_port != self._session.listen_port:
            self._session = self._session.with_port(bound_port)

        self._server = server
        self._thread = threading.Thread(
            target=server.serve_forever,
            kwargs={"poll_interval": 0.1},
            name=f"konfigurator-listener-{bound_port}",
            daemon=True,
        )
        self._state = ListenerState.LISTENING
        self._thread.start()
        logger.debug("Callback listener accepting on %s", self._session.listen_address)

    def shutdown(self, grace: float = DEFAULT_SHUTDOWN_GRACE) -> None:
        """Stop accepting connections and wait for in-flight requests.

        Connections that are open but have not sent a request are closed
        rather than waited for. The listening socket is always released,
        also when the deadline is missed. Safe to call more than once and on
        a listener that never started.

        Args:
            grace: Seconds to wait for the serving thread and any in-flight
                handlers to finish.

        Raises:
            ShutdownTimeout: If the listener is still busy at the deadline.
                The retrieved token, if any, is attached to the exception.
        """
        if self._state in (ListenerState.IDLE, ListenerState.STOPPED):
            self._state = ListenerState.STOPPED
            return

        server = self._server
        thread = self._thread
        assert server is not None and thread is not None
        self._state = ListenerState.SHUTTING_DOWN
        deadline = time.monotonic() + grace

        # BaseServer.shutdown() blocks until serve_forever returns; run it
        # aside so the grace period bounds it as well.
        stopper = threading.Thread(target=server.shutdown, daemon=True)
        stopper.start()
        try:
            stopper.join(_remaining(deadline))
            thread.join(_remaining(deadline))
            closed = server.close_idle_connections()
            if closed:
                logger.debug("Closed %d idle connection(s)", closed)
            idle = server.wait_idle(_remaining(deadline))

            if stopper.is_alive() or thread.is_alive() or not idle:
                raise ShutdownTimeout(
                    f"Callback listener did not stop within {grace:g} seconds",
                    token=self._token,
                )
        finally:
            server.server_close()
            self._state = ListenerState.STOPPED
        logger.debug("Callback listener on %s stopped", self._session.listen_address)

    def __enter__(self) -> CallbackListener:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown()

    # ------------------------------------------------------------------ #
    # Routing
    # ------------------------------------------------------------------ #

    def _make_handler(self) -> type[BaseHTTPRequestHandler]:
        """Build the request handler class bound to this instance's routes."""
        listener = self

        class CallbackHandler(BaseHTTPRequestHandler):
            timeout = CONNECTION_TIMEOUT

            def do_GET(self) -> None:
                parts = urlsplit(self.path)
                route = listener._routes.get(parts.path, listener._handle_root)
                self.server.mark_busy(self.connection)
                try:
                    route(self, parts.query)
                finally:
                    self.server.mark_done(self.connection)

            def log_message(self, format: str, *args: Any) -> None:
                logger.debug("%s - %s", self.address_string(), format % args)

        return CallbackHandler

    def _handle_root(self, request: BaseHTTPRequestHandler, query: str) -> None:
        request.send_response(302)
        request.send_header("Location", self._authorization_url(self._session))
        request.send_header("Content-Length", "0")
        request.end_headers()

    def _handle_icon(self, request: BaseHTTPRequestHandler, query: str) -> None:
        request.send_response(204)
        request.end_headers()

    def _handle_callback(self, request: BaseHTTPRequestHandler, query: str) -> None:
        callback = CallbackRequest.from_query(query)
        try:
            token = self._process(callback)
        except CallbackValidationError as exc:
            logger.warning("%s", exc)
            self._drop(request)
            return
        except ExchangeError as exc:
            logger.warning("Failed extracting token: %s", exc)
            self._drop(request)
            return

        try:
            body = CONFIRMATION_PAGE.encode("utf-8")
            request.send_response(200)
            request.send_header("Content-Type", "text/html; charset=utf-8")
            request.send_header("Content-Length", str(len(body)))
            request.end_headers()
            request.wfile.write(body)
        except OSError as exc:
            logger.debug("Could not deliver confirmation page: %s", exc)

        if self._gate.fire():
            logger.debug("Identity token retrieved, completion signalled")
        else:
            logger.debug("Duplicate successful callback ignored")

    def _process(self, callback: CallbackRequest) -> IdentityToken:
        """Validate *callback* and exchange its code.

        Returns:
            The stored identity token (the first one on duplicate success).

        Raises:
            CallbackValidationError: On ``state`` mismatch or a provider error.
            ExchangeError: If the code cannot be exchanged.
        """
        self._transition(ListenerState.VALIDATING)
        if callback.state != self._session.anti_forgery_token:
            self._transition(ListenerState.LISTENING)
            raise CallbackValidationError(
                f"URL state did not match: expected {self._session.anti_forgery_token}, "
                f"got {callback.state}"
            )
        if callback.error:
            self._transition(ListenerState.LISTENING)
            detail = f" - {callback.error_description}" if callback.error_description else ""
            raise CallbackValidationError(f"Provider returned error: {callback.error}{detail}")

        self._transition(ListenerState.EXCHANGING)
        try:
            token = self._exchanger.exchange(callback.code)
        except ExchangeError:
            self._transition(ListenerState.LISTENING)
            raise

        with self._lock:
            if self._token is None:
                self._token = token
            if self._state not in (ListenerState.SHUTTING_DOWN, ListenerState.STOPPED):
                self._state = ListenerState.COMPLETED
            return self._token

    def _transition(self, state: ListenerState) -> None:
        # Concurrent handlers share one state; never step back out of COMPLETED.
        with self._lock:
            if self._state not in (
                ListenerState.COMPLETED,
                ListenerState.SHUTTING_DOWN,
                ListenerState.STOPPED,
            ):
                self._state = state

    @staticmethod
    def _drop(request: BaseHTTPRequestHandler) -> None:
        """Answer without a body and without saying why."""
        request.send_response(200)
        request.send_header("Content-Length", "0")
        request.end_headers()


def _remaining(deadline: float) -> float:
    return max(0.0, deadline - time.monotonic())
