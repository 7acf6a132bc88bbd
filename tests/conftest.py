"""Shared test fixtures for konfigurator.

Provides isolated config environments, output state management, a free
loopback port, ready-made sessions, and stub token exchangers. These
fixtures are automatically discovered by pytest and available to all test
modules without explicit imports.
"""

from __future__ import annotations

import logging
import socket
import threading
from http.client import HTTPConnection, HTTPResponse
from pathlib import Path
from typing import Optional

import pytest

from konfigurator.exceptions import ExchangeError
from konfigurator.models import IdentityToken, Session
from konfigurator.output import OutputManager, reset_output, set_output


SAMPLE_PEM = """-----BEGIN CERTIFICATE-----
MIIBszCCAVmgAwIBAgIUQ2xvY2tzIGFyZSBtYWRlIG9mIHRpbWUwCgYIKoZIzj0E
AwIwEjEQMA4GA1UEAwwHdGVzdC1jYTAeFw0yNDAxMDEwMDAwMDBaFw0zNDAxMDEw
-----END CERTIFICATE-----"""


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager and package logger after every test.

    The OutputManager caches references to sys.stderr at creation time.
    When Typer's CliRunner redirects the streams and the test finishes, the
    cached references become stale. Resetting forces a fresh manager to be
    created on next use. The ``konfigurator`` logger is returned to its
    import-time state so ``caplog`` sees records again.
    """
    yield
    reset_output()
    logger = logging.getLogger("konfigurator")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points the XDG directories at subdirectories of tmp_path, clears all
    KONFIGURATOR_* environment variables, and changes the working directory
    to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("konfigurator.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    import os

    for var in list(os.environ):
        if var.startswith("KONFIGURATOR_"):
            monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a quiet, colourless OutputManager as the global output."""
    output = OutputManager(no_color=True, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def plain_output() -> OutputManager:
    """Install a colourless OutputManager as the global output."""
    output = OutputManager(no_color=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Network helpers
# ---------------------------------------------------------------------------


def find_free_port() -> int:
    """Find a free TCP port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def http_get(port: int, path: str) -> tuple[HTTPResponse, bytes]:
    """Send a GET to the local listener and return the response and body."""
    conn = HTTPConnection("127.0.0.1", port, timeout=5)
    try:
        conn.request("GET", path)
        response = conn.getresponse()
        body = response.read()
    finally:
        conn.close()
    return response, body


@pytest.fixture
def free_port() -> int:
    return find_free_port()


# ---------------------------------------------------------------------------
# Session and exchanger fixtures
# ---------------------------------------------------------------------------


def make_session(port: int = 0, **kwargs: object) -> Session:
    defaults: dict[str, object] = {
        "anti_forgery_token": "abc123",
        "client_id": "kubernetes",
        "listen_host": "127.0.0.1",
        "listen_port": port,
        "callback_path": "/oauth/callback",
        "authorization_endpoint": "https://dex.example.com/auth",
        "token_endpoint": "https://dex.example.com/token",
    }
    defaults.update(kwargs)
    return Session(**defaults)  # type: ignore[arg-type]


@pytest.fixture
def session() -> Session:
    """Session bound to an ephemeral loopback port with state ``abc123``."""
    return make_session()


class StubExchanger:
    """Token exchanger that returns a fixed token or raises ExchangeError.

    Records every code it was asked to exchange.
    """

    def __init__(
        self,
        token: str = "eyJ.stub.token",
        reject: bool = False,
        delay: Optional[threading.Event] = None,
    ) -> None:
        self.token = token
        self.reject = reject
        self.delay = delay
        self.codes: list[str] = []
        self._lock = threading.Lock()

    def exchange(self, code: str) -> IdentityToken:
        with self._lock:
            self.codes.append(code)
        if self.delay is not None:
            self.delay.wait(5)
        if self.reject:
            raise ExchangeError("invalid_grant")
        return IdentityToken(raw_value=self.token)


@pytest.fixture
def stub_exchanger() -> StubExchanger:
    return StubExchanger()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
