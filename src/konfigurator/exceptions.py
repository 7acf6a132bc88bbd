"""Exception hierarchy for konfigurator.

All exceptions inherit from :class:`KonfiguratorError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`konfigurator.exit_codes`.
The top-level error handler in :func:`konfigurator.app.main` catches
``KonfiguratorError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    KonfiguratorError (exit 1)
    +-- InvalidUsageError        (exit 2)
    +-- ConfigError              (exit 1)
    +-- SetupError               (exit 3)
    +-- CallbackValidationError  (exit 4)
    +-- ExchangeError            (exit 4)
    +-- LoginTimeout             (exit 5)
    +-- ShutdownTimeout          (exit 6)
    +-- EmitError                (exit 7)

:class:`CallbackValidationError` and :class:`ExchangeError` are raised inside
the callback listener's request handlers and logged there; they never reach
the entry point during a normal run.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from konfigurator.exit_codes import (
    EXIT_CALLBACK_FAILURE,
    EXIT_EMIT_FAILURE,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_LOGIN_TIMEOUT,
    EXIT_SETUP_FAILURE,
    EXIT_SHUTDOWN_TIMEOUT,
)

if TYPE_CHECKING:
    from konfigurator.models import IdentityToken


class KonfiguratorError(Exception):
    """Base exception for all konfigurator errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`konfigurator.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(KonfiguratorError):
    """Raised for invalid CLI arguments or missing required settings."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(KonfiguratorError):
    """Raised for configuration problems (invalid JSON, unknown keys, bad values)."""

    exit_code = EXIT_GENERIC_FAILURE


class SetupError(KonfiguratorError):
    """Raised when discovery, transport construction, or listener bind fails.

    Always raised before the browser is opened.
    """

    exit_code = EXIT_SETUP_FAILURE


class CallbackValidationError(KonfiguratorError):
    """Raised when a callback has the wrong ``state`` or carries a provider error."""

    exit_code = EXIT_CALLBACK_FAILURE


class ExchangeError(KonfiguratorError):
    """Raised when an authorization code cannot be exchanged for an identity token."""

    exit_code = EXIT_CALLBACK_FAILURE


class LoginTimeout(KonfiguratorError):
    """Raised when no successful callback arrives within the configured login timeout."""

    exit_code = EXIT_LOGIN_TIMEOUT


class ShutdownTimeout(KonfiguratorError):
    """Raised when the callback listener does not stop within its grace period.

    The identity token has already been retrieved at this point and is kept
    on :attr:`token` so that callers may still emit the credential.

    Args:
        message: Human-readable error description.
        token: The identity token retrieved before shutdown was attempted.
    """

    exit_code = EXIT_SHUTDOWN_TIMEOUT

    def __init__(self, message: str, token: Optional[IdentityToken] = None):
        super().__init__(message)
        self.token = token


class EmitError(KonfiguratorError):
    """Raised when the kubeconfig cannot be written to its destination."""

    exit_code = EXIT_EMIT_FAILURE
