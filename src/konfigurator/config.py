"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for konfigurator:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.konfigurator/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **User config** -- a single :class:`~konfigurator.models.Settings` JSON
  file storing defaults for every ``generate`` option.
* **Precedence resolution** -- :func:`resolve_settings` merges CLI flags,
  ``KONFIGURATOR_*`` environment variables, project-local config, and user
  config into the effective settings.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) so a crash never leaves a half-written config or
kubeconfig behind.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from konfigurator.exceptions import ConfigError
from konfigurator.models import Settings

_APP_NAME = "konfigurator"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "konfigurator.json"
ENV_PREFIX = "KONFIGURATOR_"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/konfigurator/`` (default
    ``~/.config/konfigurator/``). On macOS/Windows: ``~/.konfigurator/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/konfigurator/`` (default
    ``~/.local/share/konfigurator/``). On macOS/Windows: ``~/.konfigurator/logs/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def user_config_path() -> Path:
    """Path to the user config file."""
    return get_config_dir() / _CONFIG_FILENAME


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. When *mode* is given
    the permissions are applied before the rename, so the final file is never
    visible with looser permissions.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        if mode is not None:
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Config files ---


def _read_json_object(path: Path, label: str) -> Optional[dict[str, Any]]:
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        raise ConfigError(f"Invalid {label} at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid {label} at {path}: expected a JSON object")
    return data


def load_user_config() -> dict[str, Any]:
    """Load the raw user config as a dict (empty when the file does not exist).

    Raises:
        ConfigError: If the file exists but is not a JSON object.
    """
    return _read_json_object(user_config_path(), "user config") or {}


def save_user_config(data: dict[str, Any]) -> None:
    """Validate *data* and persist it atomically as the user config.

    Only explicitly set keys are written, so defaults changed in later
    releases still apply to users who never overrode them.

    Raises:
        ConfigError: If *data* does not validate as :class:`Settings`.
    """
    _validate(data, user_config_path())
    atomic_write(user_config_path(), json.dumps(data, indent=2, sort_keys=True) + "\n")


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local configuration from ``./konfigurator.json``.

    Project-local config sits between user config and environment variables
    in the precedence chain. A repository can pin the issuer and cluster it
    targets this way.

    Returns:
        The parsed JSON as a dict, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but is not a JSON object.
    """
    return _read_json_object(Path.cwd() / _PROJECT_CONFIG_FILENAME, "project config")


def load_env_config() -> dict[str, str]:
    """Collect ``KONFIGURATOR_<FIELD>`` environment variables.

    Values stay strings; :class:`Settings` validation coerces them.
    """
    values: dict[str, str] = {}
    for name in Settings.model_fields:
        env_value = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
        if env_value:
            values[name] = env_value
    return values


def _validate(data: dict[str, Any], source: Any) -> Settings:
    try:
        return Settings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings ({source}): {exc}") from exc


# --- Precedence resolution ---


def resolve_settings(cli_overrides: Optional[dict[str, Any]] = None) -> Settings:
    """Resolve the effective settings with the full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_overrides``; ``None`` values are ignored)
        2. Environment variables (``KONFIGURATOR_ISSUER``, ``KONFIGURATOR_PORT``, ...)
        3. Project config (``./konfigurator.json``)
        4. User config (``~/.config/konfigurator/config.json``)
        5. Defaults

    Raises:
        ConfigError: If any layer is malformed or the merged result fails
            validation.
    """
    merged: dict[str, Any] = {}
    merged.update(load_user_config())
    merged.update(load_project_config() or {})
    merged.update(load_env_config())
    if cli_overrides:
        merged.update({k: v for k, v in cli_overrides.items() if v is not None})
    return _validate(merged, "merged configuration")


def set_setting(key: str, value: str) -> Settings:
    """Set one key in the user config and return the validated result.

    Raises:
        ConfigError: If *key* is unknown or *value* is invalid for it.
    """
    if key not in Settings.model_fields:
        raise ConfigError(f"Unknown setting '{key}'. Valid keys: {', '.join(Settings.model_fields)}")
    data = load_user_config()
    data[key] = value
    settings = _validate(data, user_config_path())
    # Store the coerced value so the file keeps proper JSON types.
    data[key] = getattr(settings, key)
    save_user_config(data)
    return settings


def unset_setting(key: str) -> None:
    """Remove one key from the user config, restoring its default.

    Raises:
        ConfigError: If *key* is unknown.
    """
    if key not in Settings.model_fields:
        raise ConfigError(f"Unknown setting '{key}'")
    data = load_user_config()
    if key in data:
        del data[key]
        save_user_config(data)
