"""Kubeconfig rendering and emission.

Turns an identity token plus the cluster connection parameters into a
``kind: Config`` document with a single cluster, user, and context, and
writes it to stdout or to a file.
"""

from __future__ import annotations

import base64
import binascii
from pathlib import Path
from typing import Any, Optional

import yaml

from konfigurator.config import atomic_write
from konfigurator.exceptions import EmitError, SetupError
from konfigurator.models import IdentityToken
from konfigurator.output import print_data

DEFAULT_CLUSTER_NAME = "kubernetes"
DEFAULT_USER_NAME = "oidc-user"
_PEM_MARKER = "-----BEGIN"


def encode_ca(ca: str) -> str:
    """Normalise the cluster CA to base64 ``certificate-authority-data``.

    Accepts PEM text, a path to a PEM file, or data that is already base64.

    Raises:
        SetupError: If *ca* is none of the above.
    """
    value = ca.strip()
    if not value:
        raise SetupError("Cluster CA is empty")
    if value.startswith(_PEM_MARKER):
        return base64.b64encode(value.encode("utf-8") + b"\n").decode("ascii")

    path = Path(value).expanduser()
    try:
        if path.is_file():
            return base64.b64encode(path.read_bytes()).decode("ascii")
    except OSError as exc:
        raise SetupError(f"Cannot read cluster CA file {path}: {exc}") from exc

    try:
        base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SetupError(
            "Cluster CA must be PEM text, a readable PEM file, or base64 data"
        ) from exc
    return value


def user_name_for(token: IdentityToken) -> str:
    """Pick a readable kubeconfig user name from the token's claims."""
    claims = token.claims()
    for claim in ("email", "sub"):
        value = claims.get(claim)
        if isinstance(value, str) and value:
            return value
    return DEFAULT_USER_NAME


class KubeConfig:
    """Cluster connection parameters, ready to be combined with a token.

    The CA is validated on construction so that a bad value fails before the
    browser login, not after it.

    Args:
        ca: Cluster CA as PEM text, PEM file path, or base64 data.
        api_url: Kubernetes API server URL.
        namespace: Default namespace of the generated context.
        cluster_name: Name used for the cluster and context entries.
    """

    def __init__(
        self,
        ca: str,
        api_url: str,
        namespace: str = "default",
        cluster_name: str = DEFAULT_CLUSTER_NAME,
    ) -> None:
        self.ca_data = encode_ca(ca)
        self.api_url = api_url
        self.namespace = namespace
        self.cluster_name = cluster_name

    def render(self, token: IdentityToken) -> dict[str, Any]:
        user = user_name_for(token)
        return {
            "apiVersion": "v1",
            "kind": "Config",
            "clusters": [
                {
                    "name": self.cluster_name,
                    "cluster": {
                        "server": self.api_url,
                        "certificate-authority-data": self.ca_data,
                    },
                }
            ],
            "users": [{"name": user, "user": {"token": token.raw_value}}],
            "contexts": [
                {
                    "name": self.cluster_name,
                    "context": {
                        "cluster": self.cluster_name,
                        "namespace": self.namespace,
                        "user": user,
                    },
                }
            ],
            "current-context": self.cluster_name,
            "preferences": {},
        }

    def dumps(self, token: IdentityToken) -> str:
        return yaml.safe_dump(self.render(token), default_flow_style=False, sort_keys=False)

    def write(self, token: IdentityToken, output: Optional[str] = None) -> None:
        """Write the kubeconfig to stdout (``None`` or ``-``) or to *output*.

        Files are written atomically with mode ``0600`` since they hold a
        bearer token.

        Raises:
            EmitError: If the file cannot be written.
        """
        text = self.dumps(token)
        if output is None or output == "-":
            print_data(text)
            return
        path = Path(output).expanduser()
        try:
            atomic_write(path, text, mode=0o600)
        except OSError as exc:
            raise EmitError(f"Cannot write kubeconfig to {path}: {exc}") from exc
