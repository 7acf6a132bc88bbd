"""Canonical Pydantic models shared across all konfigurator modules.

This is the single source of truth for data shapes in the project. The models
fall into two groups:

**Login models** -- created once per invocation and shared read-only between
the orchestrator and the callback listener's handler threads:
    :class:`ProviderMetadata`, :class:`Session`, :class:`CallbackRequest`, and
    :class:`IdentityToken`.

**Configuration models** -- serialised as JSON in the user's config directory
and merged with environment variables and CLI flags:
    :class:`Settings`.

Login models are frozen so that concurrent handler threads can read them
without locking.
"""

from __future__ import annotations

import base64
import json
import uuid
from typing import Any, Optional
from urllib.parse import parse_qs

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Provider / session ---


class ProviderMetadata(BaseModel):
    """Endpoints advertised by an OpenID provider's discovery document."""

    model_config = ConfigDict(frozen=True)

    issuer: str
    authorization_endpoint: str
    token_endpoint: str


class Session(BaseModel):
    """Everything a single login needs, fixed before the listener starts.

    The listener's handler threads and the authorization URL builder only
    read from a session, so it is frozen on construction.

    Example::

        session = new_session(metadata, client_id="kube", port=8000)
        session.redirect_uri  # "http://localhost:8000/oauth/callback"
    """

    model_config = ConfigDict(frozen=True)

    anti_forgery_token: str = Field(description="Opaque state value round-tripped through the provider")
    client_id: str
    listen_host: str = "localhost"
    listen_port: int = 8000
    callback_path: str = "/oauth/callback"
    authorization_endpoint: str
    token_endpoint: str

    @property
    def listen_address(self) -> str:
        """``host:port`` the callback listener binds to."""
        return f"{self.listen_host}:{self.listen_port}"

    @property
    def root_url(self) -> str:
        """URL of the listener's entry route, opened in the browser."""
        return f"http://{self.listen_address}/"

    @property
    def redirect_uri(self) -> str:
        """Callback URL registered with the provider."""
        return f"http://{self.listen_address}{self.callback_path}"

    def with_port(self, port: int) -> Session:
        """Return a copy bound to *port* (used once an ephemeral port is known)."""
        return self.model_copy(update={"listen_port": port})


def new_session(
    metadata: ProviderMetadata,
    client_id: str,
    host: str = "localhost",
    port: int = 8000,
    callback_path: str = "/oauth/callback",
    anti_forgery_token: Optional[str] = None,
) -> Session:
    """Create the :class:`Session` for one login.

    A random UUID4 is used as the anti-forgery token unless one is given.
    """
    return Session(
        anti_forgery_token=anti_forgery_token or str(uuid.uuid4()),
        client_id=client_id,
        listen_host=host,
        listen_port=port,
        callback_path=callback_path,
        authorization_endpoint=metadata.authorization_endpoint,
        token_endpoint=metadata.token_endpoint,
    )


class CallbackRequest(BaseModel):
    """Query parameters of one request to the callback route."""

    state: str = ""
    code: str = ""
    error: Optional[str] = None
    error_description: Optional[str] = None

    @classmethod
    def from_query(cls, query: str) -> CallbackRequest:
        """Parse a raw query string, keeping the first value of each parameter."""
        params = parse_qs(query, keep_blank_values=True)

        def first(name: str) -> Optional[str]:
            values = params.get(name)
            return values[0] if values else None

        return cls(
            state=first("state") or "",
            code=first("code") or "",
            error=first("error"),
            error_description=first("error_description"),
        )


class IdentityToken(BaseModel):
    """The raw ``id_token`` returned by the provider's token endpoint."""

    model_config = ConfigDict(frozen=True)

    raw_value: str

    def claims(self) -> dict[str, Any]:
        """Decode the JWT payload without verifying its signature.

        Only used to pick a readable user name for the kubeconfig; the
        cluster's API server is what actually verifies the token.

        Returns:
            The payload claims, or an empty dict if the value is not a
            decodable JWT.
        """
        parts = self.raw_value.split(".")
        if len(parts) != 3:
            return {}
        payload = parts[1] + "=" * (-len(parts[1]) % 4)
        try:
            data = json.loads(base64.urlsafe_b64decode(payload.encode("ascii")))
        except (ValueError, UnicodeError):
            return {}
        return data if isinstance(data, dict) else {}


# --- Configuration ---


class Settings(BaseModel):
    """Effective configuration for ``konfigurator generate``.

    Loaded from ``~/.config/konfigurator/config.json`` and layered with the
    project-local file, ``KONFIGURATOR_*`` environment variables, and CLI
    flags by :func:`~konfigurator.config.resolve_settings`.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    issuer: Optional[str] = Field(default=None, description="OpenID provider host URL")
    client_id: Optional[str] = Field(default=None, description="OAuth client identifier")
    host: str = Field(default="localhost", description="Local address the callback listener binds to")
    port: int = Field(default=8000, description="Local port for the callback listener")
    callback_path: str = Field(
        default="/oauth/callback", description="Local path the provider redirects back to"
    )
    kube_ca: Optional[str] = Field(
        default=None, description="Cluster CA: PEM text, PEM file path, or base64 data"
    )
    kube_api_url: Optional[str] = Field(default=None, description="Kubernetes API server URL")
    kube_namespace: str = Field(default="default", description="Namespace for the generated context")
    output: Optional[str] = Field(
        default=None, description="Kubeconfig destination path; stdout when unset"
    )
    shutdown_grace: float = Field(
        default=5.0, description="Seconds to wait for the listener to stop"
    )
    login_timeout: Optional[float] = Field(
        default=None, description="Seconds to wait for a login; unbounded when unset"
    )
    open_browser: bool = Field(default=True, description="Open the system browser automatically")

    @field_validator("port")
    @classmethod
    def _check_port(cls, value: int) -> int:
        if not 1 <= value <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return value

    @field_validator("callback_path")
    @classmethod
    def _check_callback_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("callback_path must start with '/'")
        if value in ("/", "/favicon.ico"):
            raise ValueError(f"callback_path cannot be '{value}'")
        return value

    @field_validator("shutdown_grace")
    @classmethod
    def _check_grace(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("shutdown_grace must be positive")
        return value

    @field_validator("login_timeout")
    @classmethod
    def _check_login_timeout(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value <= 0:
            raise ValueError("login_timeout must be positive")
        return value

    def missing_required(self) -> list[str]:
        """Return the names of settings that ``generate`` cannot run without."""
        required = ("issuer", "client_id", "kube_ca", "kube_api_url")
        return [name for name in required if not getattr(self, name)]
