"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~konfigurator.exceptions.KonfiguratorError` subclass.
Shell wrappers can inspect the exit code to tell a failed discovery apart
from a login that never completed without parsing stderr.

Example::

    $ konfigurator generate -H https://dex.example.com -c kube ...
    $ echo $?
    3   # EXIT_SETUP_FAILURE -- provider discovery failed
"""

EXIT_SUCCESS = 0
"""The kubeconfig was generated successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required settings."""

EXIT_SETUP_FAILURE = 3
"""Provider discovery, transport construction, or listener bind failed."""

EXIT_CALLBACK_FAILURE = 4
"""A callback could not be validated or its code could not be exchanged."""

EXIT_LOGIN_TIMEOUT = 5
"""No successful callback arrived within the configured login timeout."""

EXIT_SHUTDOWN_TIMEOUT = 6
"""The callback listener did not stop within its grace period."""

EXIT_EMIT_FAILURE = 7
"""The kubeconfig could not be written to its destination."""
