"""OpenID provider metadata discovery.

Fetches ``<issuer>/.well-known/openid-configuration`` and extracts the two
endpoints the login needs. The advertised ``issuer`` must match the one that
was asked for, otherwise a misconfigured proxy or a hostile provider could
redirect the login elsewhere.
"""

from __future__ import annotations

from typing import Any

import httpx

from konfigurator.exceptions import SetupError
from konfigurator.models import ProviderMetadata

WELL_KNOWN_PATH = "/.well-known/openid-configuration"


def discovery_url(issuer: str) -> str:
    """Return the discovery document URL for *issuer*."""
    return issuer.rstrip("/") + WELL_KNOWN_PATH


def discover_provider(client: httpx.Client, issuer: str) -> ProviderMetadata:
    """Fetch and validate the provider's discovery document.

    Args:
        client: Transport from :func:`~konfigurator.oidc.transport.build_http_client`.
        issuer: Provider host URL, e.g. ``https://dex.example.com``.

    Returns:
        The provider's issuer, authorization endpoint, and token endpoint.

    Raises:
        SetupError: If the document cannot be fetched or parsed, lacks an
            endpoint, or advertises a different issuer.
    """
    url = discovery_url(issuer)
    try:
        response = client.get(url)
        response.raise_for_status()
        doc: Any = response.json()
    except httpx.HTTPStatusError as exc:
        raise SetupError(
            f"OpenID discovery failed with status {exc.response.status_code}: "
            f"{exc.response.text}"
        ) from exc
    except httpx.HTTPError as exc:
        raise SetupError(f"OpenID discovery failed: {exc}") from exc
    except ValueError as exc:
        raise SetupError(f"OpenID discovery document at {url} is not valid JSON") from exc

    if not isinstance(doc, dict):
        raise SetupError(f"OpenID discovery document at {url} is not a JSON object")

    for field in ("authorization_endpoint", "token_endpoint"):
        if not doc.get(field):
            raise SetupError(f"OpenID discovery document missing '{field}'")

    advertised = doc.get("issuer") or ""
    if advertised.rstrip("/") != issuer.rstrip("/"):
        raise SetupError(
            f"OpenID issuer mismatch: expected {issuer}, provider reports {advertised or '<none>'}"
        )

    return ProviderMetadata(
        issuer=advertised,
        authorization_endpoint=doc["authorization_endpoint"],
        token_endpoint=doc["token_endpoint"],
    )
