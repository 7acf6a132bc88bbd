"""Login orchestration: listener, browser, wait, shutdown, emit.

:class:`Orchestrator` runs one browser login against a prepared
:class:`~konfigurator.models.Session` and returns the identity token.
:func:`generate_kubeconfig` is the full pipeline behind
``konfigurator generate``: discovery, session, login, kubeconfig.

Every side-effecting collaborator (browser, HTTP transport, listener) is
injectable so the flow can be driven end to end in tests without a real
browser or provider.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

import httpx

from konfigurator.browser import BrowserOpener, open_browser
from konfigurator.exceptions import InvalidUsageError, LoginTimeout, ShutdownTimeout
from konfigurator.kubeconfig import KubeConfig
from konfigurator.models import IdentityToken, Session, Settings, new_session
from konfigurator.oidc.discovery import discover_provider
from konfigurator.oidc.exchange import TokenExchangeClient
from konfigurator.oidc.transport import build_http_client
from konfigurator.output import debug, info
from konfigurator.server.gate import CompletionGate
from konfigurator.server.listener import (
    DEFAULT_SHUTDOWN_GRACE,
    CallbackListener,
    TokenExchanger,
)

logger = logging.getLogger(__name__)

ListenerFactory = Callable[[Session, TokenExchanger, CompletionGate], CallbackListener]


class Orchestrator:
    """Drive one browser login and hand back the identity token.

    Args:
        session: The login session; the listener binds its listen address.
        exchanger: Exchanges the callback's authorization code.
        browser: Opens the listener's root URL. When it reports failure the
            URL is printed for manual navigation instead.
        shutdown_grace: Seconds the listener gets to stop after completion.
        login_timeout: Seconds to wait for a successful callback. ``None``
            (the default) waits indefinitely.
        listener_factory: Builds the listener; defaults to
            :class:`~konfigurator.server.listener.CallbackListener`.
    """

    def __init__(
        self,
        session: Session,
        exchanger: TokenExchanger,
        browser: BrowserOpener = open_browser,
        shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE,
        login_timeout: Optional[float] = None,
        listener_factory: ListenerFactory = CallbackListener,
    ) -> None:
        self._session = session
        self._exchanger = exchanger
        self._browser = browser
        self._shutdown_grace = shutdown_grace
        self._login_timeout = login_timeout
        self._listener_factory = listener_factory
        self._listener: Optional[CallbackListener] = None

    @property
    def listener(self) -> Optional[CallbackListener]:
        """The listener of the current or last run."""
        return self._listener

    def run(self) -> IdentityToken:
        """Run the login and return the identity token.

        Returns:
            The identity token from the first successful callback.

        Raises:
            SetupError: If the listener cannot bind its address.
            LoginTimeout: If a login timeout is configured and expires.
            ShutdownTimeout: If the listener does not stop within the grace
                period. The token is attached to the exception.
        """
        gate = CompletionGate()
        listener = self._listener_factory(self._session, self._exchanger, gate)
        self._listener = listener
        listener.start()

        url = listener.root_url
        if self._browser(url):
            debug(f"Opened browser at {url}")
        else:
            info(f"Go to the following url to authenticate: {url}")

        if not gate.wait(self._login_timeout):
            try:
                listener.shutdown(self._shutdown_grace)
            except ShutdownTimeout as exc:
                logger.warning("%s", exc)
            raise LoginTimeout(
                f"No successful login within {self._login_timeout:g} seconds"
            )

        token = listener.token
        assert token is not None  # the gate only fires after a token is stored
        listener.shutdown(self._shutdown_grace)
        return token


def generate_kubeconfig(
    settings: Settings,
    browser: BrowserOpener = open_browser,
    transport: Optional[httpx.BaseTransport] = None,
) -> IdentityToken:
    """Log in through the browser and write the kubeconfig.

    The kubeconfig is written before a :class:`ShutdownTimeout` is
    re-raised, so a slow listener shutdown never loses the credential.

    Args:
        settings: Effective settings from
            :func:`~konfigurator.config.resolve_settings`.
        browser: Browser opener (``no_browser`` for ``--no-browser``).
        transport: Optional HTTP transport override for discovery and
            token exchange.

    Returns:
        The identity token that was written.

    Raises:
        InvalidUsageError: If required settings are missing.
        SetupError: If the CA, discovery, transport, or listener fails.
        LoginTimeout: If the configured login timeout expires.
        ShutdownTimeout: After the kubeconfig was written, if the listener
            did not stop in time.
        EmitError: If the kubeconfig cannot be written.
    """
    missing = settings.missing_required()
    if missing:
        raise InvalidUsageError(f"Missing required settings: {', '.join(missing)}")
    assert settings.issuer and settings.client_id
    assert settings.kube_ca and settings.kube_api_url

    kubeconfig = KubeConfig(settings.kube_ca, settings.kube_api_url, settings.kube_namespace)

    with build_http_client(transport=transport) as client:
        metadata = discover_provider(client, settings.issuer)
        debug(f"Discovered provider {metadata.issuer}")
        session = new_session(
            metadata,
            settings.client_id,
            host=settings.host,
            port=settings.port,
            callback_path=settings.callback_path,
        )
        exchanger = TokenExchangeClient(
            client, session.token_endpoint, session.client_id, session.redirect_uri
        )
        orchestrator = Orchestrator(
            session,
            exchanger,
            browser=browser,
            shutdown_grace=settings.shutdown_grace,
            login_timeout=settings.login_timeout,
        )
        try:
            token = orchestrator.run()
        except ShutdownTimeout as exc:
            if exc.token is not None:
                kubeconfig.write(exc.token, settings.output)
            raise

    kubeconfig.write(token, settings.output)
    return token
