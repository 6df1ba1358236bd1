"""Cache commands -- inspect and clear the disk Cache Store.

Example::

    cachedapi cache stats
    cachedapi cache show /classes -P instituteId=I1
    cachedapi cache clear --institute I1
"""

from __future__ import annotations

from typing import Optional

import typer

from cachedapi.commands._shared import build_context, open_coordinator, parse_params
from cachedapi.output import format_response, info, print_table, success

cache_app = typer.Typer(no_args_is_help=True)


@cache_app.command("stats")
def cache_stats(ctx: typer.Context) -> None:
    """Show entry counts and hit/miss counters."""
    coordinator = open_coordinator(ctx)
    try:
        stats = coordinator.get_cache_stats()
    finally:
        coordinator.store.close()
    rows = [[name, str(value)] for name, value in stats.model_dump().items()]
    print_table(["stat", "value"], rows, title="Cache")


@cache_app.command("show")
def cache_show(
    ctx: typer.Context,
    endpoint: str = typer.Argument(help="API path."),
    param: Optional[list[str]] = typer.Option(None, "--param", "-P", help="key=value"),
    user: Optional[str] = typer.Option(None, "--user"),
    institute: Optional[str] = typer.Option(None, "--institute"),
) -> None:
    """Print a cached value without touching the network."""
    coordinator = open_coordinator(ctx)
    try:
        value = coordinator.get_cached_only(
            endpoint, parse_params(param), build_context(user, institute)
        )
    finally:
        coordinator.store.close()
    if value is None:
        info(f"Nothing cached for {endpoint}")
        raise typer.Exit(code=1)
    format_response(value)


@cache_app.command("clear")
def cache_clear(
    ctx: typer.Context,
    user: Optional[str] = typer.Option(None, "--user", help="Only this user's entries."),
    institute: Optional[str] = typer.Option(
        None, "--institute", help="Only this institute's entries."
    ),
) -> None:
    """Clear all cached entries, or only one user's or institute's."""
    coordinator = open_coordinator(ctx)
    try:
        if user:
            removed = coordinator.clear_user_cache(user)
            success(f"Cleared {removed} entries for user {user}.")
        elif institute:
            removed = coordinator.clear_institute_cache(institute)
            success(f"Cleared {removed} entries for institute {institute}.")
        else:
            coordinator.clear_all_cache()
            success("Cleared all cache entries.")
    finally:
        coordinator.store.close()
