"""OpenID Connect protocol pieces: discovery, transport, authorization URL, code exchange.

Exports:
    :func:`build_authorization_url` -- compose the provider authorization URL.
    :func:`build_http_client` -- outbound transport with optional custom CA.
    :func:`discover_provider` -- fetch the provider's endpoint metadata.
    :class:`TokenExchangeClient` -- exchange an authorization code for an ``id_token``.
"""

from konfigurator.oidc.authorize import build_authorization_url, generate_nonce
from konfigurator.oidc.discovery import discover_provider
from konfigurator.oidc.exchange import TokenExchangeClient
from konfigurator.oidc.transport import build_http_client

__all__ = [
    "TokenExchangeClient",
    "build_authorization_url",
    "build_http_client",
    "discover_provider",
    "generate_nonce",
]
