"""HTTP transport for talking to the OpenID provider.

Outbound calls (discovery and token exchange) share one :class:`httpx.Client`.
Its TLS trust defaults to the system store; ``KONFIGURATOR_CAFILE`` (a PEM
bundle) or ``KONFIGURATOR_CAPATH`` (a directory of hashed certificates)
replace it for providers signed by a private CA.
"""

from __future__ import annotations

import os
import ssl
from collections.abc import Mapping
from typing import Optional, Union

import httpx

from konfigurator.exceptions import SetupError

CAFILE_ENV = "KONFIGURATOR_CAFILE"
CAPATH_ENV = "KONFIGURATOR_CAPATH"

DEFAULT_TIMEOUT = 30.0


def build_ssl_verify(
    ca_file: Optional[str] = None,
    ca_path: Optional[str] = None,
) -> Union[bool, ssl.SSLContext]:
    """Return the ``verify`` argument for :class:`httpx.Client`.

    Returns:
        ``True`` (system trust) when neither *ca_file* nor *ca_path* is set,
        otherwise an :class:`ssl.SSLContext` trusting only the given CAs.

    Raises:
        SetupError: If the CA material is missing or unreadable.
    """
    if not ca_file and not ca_path:
        return True
    if ca_path and not os.path.isdir(ca_path):
        raise SetupError(f"CA path is not a directory: {ca_path}")
    try:
        return ssl.create_default_context(cafile=ca_file or None, capath=ca_path or None)
    except (OSError, ssl.SSLError) as exc:
        raise SetupError(f"Cannot load custom CA certificates: {exc}") from exc


def build_http_client(
    ca_file: Optional[str] = None,
    ca_path: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT,
    environ: Optional[Mapping[str, str]] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Build the client used for discovery and token exchange.

    Explicit *ca_file* / *ca_path* win over the environment variables.

    Args:
        ca_file: PEM bundle to trust instead of the system store.
        ca_path: Directory of CA certificates to trust.
        timeout: Per-request timeout in seconds.
        environ: Environment to read ``KONFIGURATOR_CA*`` from (defaults to
            ``os.environ``).
        transport: Optional transport override (tests use
            :class:`httpx.MockTransport`).

    Raises:
        SetupError: If the custom CA configuration is invalid.
    """
    env = os.environ if environ is None else environ
    verify = build_ssl_verify(
        ca_file or env.get(CAFILE_ENV) or None,
        ca_path or env.get(CAPATH_ENV) or None,
    )
    return httpx.Client(
        timeout=timeout,
        verify=verify,
        follow_redirects=True,
        headers={"Accept": "application/json"},
        transport=transport,
    )
