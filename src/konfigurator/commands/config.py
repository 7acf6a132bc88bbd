"""Config commands -- view and modify the user configuration.

Provides the ``konfigurator config`` sub-command group for reading and
updating the user's config file (:class:`~konfigurator.models.Settings`).
Values saved here become the defaults for ``konfigurator generate``.

Typical workflow::

    konfigurator config set issuer https://dex.example.com
    konfigurator config set port 18000
    konfigurator config show
"""

from __future__ import annotations

import json

import typer

from konfigurator.output import error, info, print_data, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show the effective configuration.

    Prints the config file path to stderr and the merged settings (user
    config, project config, and environment) as JSON to stdout.
    """
    from konfigurator.config import resolve_settings, user_config_path

    settings = resolve_settings()
    info(f"Config file: {user_config_path()}")
    print_data(json.dumps(settings.model_dump(mode="json"), indent=2))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Setting name, e.g. 'issuer' or 'port'."),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a value in the user configuration.

    The value is validated (and coerced, e.g. ``port`` to an integer)
    before it is saved.

    Raises:
        typer.Exit: With code 2 if the key is unknown or the value invalid.
    """
    from konfigurator.config import set_setting
    from konfigurator.exceptions import ConfigError

    try:
        set_setting(key, value)
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=2) from None
    success(f"Set {key} = {value}")


@config_app.command("unset")
def config_unset(
    key: str = typer.Argument(help="Setting name to reset to its default."),
) -> None:
    """Remove a value from the user configuration."""
    from konfigurator.config import unset_setting
    from konfigurator.exceptions import ConfigError

    try:
        unset_setting(key)
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=2) from None
    success(f"Unset {key}")


@config_app.command("path")
def config_path() -> None:
    """Print the path of the user configuration file."""
    from konfigurator.config import user_config_path

    print_data(str(user_config_path()))
