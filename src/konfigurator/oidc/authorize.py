"""Authorization URL construction for the implicit ``id_token`` flow.

The URL is rebuilt on every hit of the listener's root route so that each
browser round-trip carries its own nonce.
"""

from __future__ import annotations

import secrets
from typing import Optional
from urllib.parse import urlencode

from konfigurator.models import Session

RESPONSE_TYPE = "id_token"
SCOPE = "openid"


def generate_nonce() -> str:
    """Return a fresh, URL-safe, single-use nonce (256 bits of entropy)."""
    return secrets.token_urlsafe(32)


def build_authorization_url(
    session: Session,
    state: Optional[str] = None,
    nonce: Optional[str] = None,
) -> str:
    """Compose the provider authorization URL for *session*.

    Args:
        session: The login session supplying the endpoint, client id, and
            redirect URI.
        state: Anti-forgery value to round-trip. Defaults to the session's
            ``anti_forgery_token``.
        nonce: Nonce to bind to this request. A fresh one is generated when
            omitted.

    Returns:
        The authorization endpoint with ``client_id``, ``nonce``,
        ``redirect_uri``, ``response_type``, ``scope``, and ``state`` query
        parameters, in that order.
    """
    params = {
        "client_id": session.client_id,
        "nonce": nonce or generate_nonce(),
        "redirect_uri": session.redirect_uri,
        "response_type": RESPONSE_TYPE,
        "scope": SCOPE,
        "state": state if state is not None else session.anti_forgery_token,
    }
    endpoint = session.authorization_endpoint
    separator = "&" if "?" in endpoint else "?"
    return f"{endpoint}{separator}{urlencode(params)}"
