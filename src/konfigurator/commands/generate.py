"""Generate command -- log in through the browser and write a kubeconfig.

Typical usage::

    konfigurator generate \\
        --host https://dex.example.com --client-id kubernetes \\
        --kube-ca ca.pem --kube-api-url https://k8s.example.com:6443 \\
        --namespace team-a --output ~/.kube/config

Any option left out falls back to ``KONFIGURATOR_*`` environment variables,
``./konfigurator.json``, and the user config, in that order.
"""

from __future__ import annotations

from typing import Optional

import typer

from konfigurator.output import success


def generate_command(
    issuer: Optional[str] = typer.Option(
        None, "--host", "-H", help="OpenID provider host URL."
    ),
    client_id: Optional[str] = typer.Option(
        None, "--client-id", "-c", help="OAuth client identifier."
    ),
    port: Optional[int] = typer.Option(
        None, "--port", "-p", help="Local port for the callback listener. [default: 8000]"
    ),
    host: Optional[str] = typer.Option(
        None, "--bind", help="Local address for the callback listener. [default: localhost]"
    ),
    callback_path: Optional[str] = typer.Option(
        None,
        "--callback-path",
        "-r",
        help="Local redirect path registered with the provider. [default: /oauth/callback]",
    ),
    kube_ca: Optional[str] = typer.Option(
        None, "--kube-ca", "-k", help="Cluster CA: PEM file, PEM text, or base64 data."
    ),
    kube_api_url: Optional[str] = typer.Option(
        None, "--kube-api-url", "-a", help="Kubernetes API server URL."
    ),
    kube_namespace: Optional[str] = typer.Option(
        None, "--namespace", "-n", help="Namespace for the generated context. [default: default]"
    ),
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Kubeconfig file to write. [default: stdout]"
    ),
    shutdown_grace: Optional[float] = typer.Option(
        None, "--shutdown-grace", help="Seconds to wait for the listener to stop. [default: 5]"
    ),
    login_timeout: Optional[float] = typer.Option(
        None, "--login-timeout", help="Give up after this many seconds. [default: wait forever]"
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the login URL instead of opening a browser."
    ),
) -> None:
    """Log in with OpenID Connect and write a kubeconfig.

    Resolves settings through the precedence chain, then runs
    :func:`~konfigurator.orchestrator.generate_kubeconfig`. Errors propagate
    to :func:`~konfigurator.app.main`, which maps them to exit codes.
    """
    from konfigurator.browser import no_browser as skip_browser
    from konfigurator.browser import open_browser
    from konfigurator.config import resolve_settings
    from konfigurator.orchestrator import generate_kubeconfig

    settings = resolve_settings(
        {
            "issuer": issuer,
            "client_id": client_id,
            "port": port,
            "host": host,
            "callback_path": callback_path,
            "kube_ca": kube_ca,
            "kube_api_url": kube_api_url,
            "kube_namespace": kube_namespace,
            "output": output,
            "shutdown_grace": shutdown_grace,
            "login_timeout": login_timeout,
            "open_browser": False if no_browser else None,
        }
    )

    browser = open_browser if settings.open_browser else skip_browser
    generate_kubeconfig(settings, browser=browser)

    if settings.output and settings.output != "-":
        success(f"Kubeconfig written to {settings.output}")
