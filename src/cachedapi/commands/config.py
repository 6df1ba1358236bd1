"""Config commands -- view and modify the user configuration.

Provides the ``cachedapi config`` sub-command group for reading and
updating :class:`~cachedapi.models.ClientConfig`, persisted in the
cachedapi config directory.
"""

from __future__ import annotations

import typer

from cachedapi.output import error, format_response, info, success

config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show the effective configuration (user file, project file and environment).

    Example::

        cachedapi config show
    """
    from cachedapi.config import config_path, resolve_config

    info(f"Config file: {config_path()}")
    format_response(resolve_config().model_dump(mode="json"))


@config_app.command("path")
def config_path_command() -> None:
    """Print the path of the user config file."""
    from cachedapi.config import config_path

    typer.echo(str(config_path()))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g. 'coordination.cooldown_seconds')."
    ),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    The value is coerced to the existing field's type (bool, int, float
    or str) and the result is validated before saving.

    Example::

        cachedapi config set base_url https://api.example.com
        cachedapi config set cache.default_ttl_minutes 60
    """
    from cachedapi.config import load_config, save_config
    from cachedapi.models import ClientConfig

    data = load_config().model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=2)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    current = target[final_key]
    coerced: object
    if isinstance(current, bool):
        coerced = value.lower() in ("true", "1", "yes")
    elif isinstance(current, (int, float)):
        try:
            coerced = type(current)(value)
        except ValueError:
            error(f"Expected {type(current).__name__} for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    else:
        coerced = value

    target[final_key] = coerced

    try:
        new_config = ClientConfig.model_validate(data)
    except ValueError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_config(new_config)
    success(f"Set {key} = {coerced}")
