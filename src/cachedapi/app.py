"""Typer application and CLI entry point for cachedapi.

The root application exposes the request commands (``get``, ``post``,
``put``, ``patch``, ``delete``) plus the ``cache``, ``config`` and
``token`` sub-command groups. :func:`main` is the console-script entry
point declared in ``pyproject.toml``.

Unhandled :class:`~cachedapi.exceptions.CachedApiError` instances exit
with the error's ``exit_code``; anything else writes a crash log under
the data directory.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from cachedapi import __version__
from cachedapi.exit_codes import EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="cachedapi",
    help="Cached, deduplicated access to a JSON HTTP API.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"cachedapi {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="API base URL (overrides config and environment)."
    ),
    secondary: bool = typer.Option(
        False, "--secondary", help="Use the secondary (organisation) API."
    ),
    memory_cache: bool = typer.Option(
        False, "--memory-cache", help="Do not read or write the disk cache."
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~cachedapi.output.OutputManager`, routes
    library logging to stderr, and stores shared options in ``ctx.obj``.
    """
    from cachedapi.output import OutputFormat, OutputManager, configure_logging, set_output

    output = OutputManager(
        format=OutputFormat.JSON if json_output else OutputFormat.AUTO,
        no_color=no_color,
        quiet=quiet,
        verbose=verbose,
    )
    set_output(output)
    configure_logging(output, verbose=verbose)

    ctx.ensure_object(dict)
    ctx.obj["base_url"] = base_url
    ctx.obj["secondary"] = secondary
    ctx.obj["memory_cache"] = memory_cache


def _register_commands() -> None:
    from cachedapi.commands.cache import cache_app
    from cachedapi.commands.config import config_app
    from cachedapi.commands.request import (
        delete_command,
        get_command,
        patch_command,
        post_command,
        put_command,
    )
    from cachedapi.commands.token import token_app

    app.command("get")(get_command)
    app.command("post")(post_command)
    app.command("put")(put_command)
    app.command("patch")(patch_command)
    app.command("delete")(delete_command)
    app.add_typer(cache_app, name="cache", help="Inspect and clear the response cache.")
    app.add_typer(config_app, name="config", help="Configuration management.")
    app.add_typer(token_app, name="token", help="Stored credential management.")


_register_commands()


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log() -> str:
    """Write the current traceback to disk and return the log file path."""
    from cachedapi.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``cachedapi`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from cachedapi.exceptions import CachedApiError
        from cachedapi.output import error

        if isinstance(exc, CachedApiError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log()
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
