"""konfigurator -- Generate Kubernetes config files through an OpenID Connect login.

Starts a short-lived local HTTP listener, sends the user's browser to the
OpenID provider, receives the callback, exchanges the authorization code for
an identity token, and writes a kubeconfig that authenticates with it.

Typical workflow::

    konfigurator config set issuer https://dex.example.com
    konfigurator config set client_id kubernetes
    konfigurator generate -k ca.pem -a https://k8s.example.com:6443 -o ~/.kube/config

NOTE: the listener binds the configured local port (8000 by default), which
must be free and registered as a redirect URI with the provider.

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration and precedence resolution.
    orchestrator: Login orchestration and the ``generate`` pipeline.
    kubeconfig: Kubeconfig rendering and emission.
    exceptions: Exception hierarchy with exit-code mapping.
    output: stdout/stderr output discipline and logging setup.
"""

__version__ = "0.3.0"
