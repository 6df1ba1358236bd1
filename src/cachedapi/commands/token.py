"""Token commands -- manage the persisted token store.

The coordinator reads ``access_token`` (and ``org_access_token`` for the
secondary API) on every dispatch and clears them when the API answers
401. These commands let a user install a token obtained elsewhere.

Example::

    cachedapi token set "$TOKEN"
    cachedapi token set --name org_access_token "$ORG_TOKEN"
    cachedapi token show
    cachedapi token clear
"""

from __future__ import annotations

from typing import Optional

import typer

from cachedapi.auth.token_store import ACCESS_TOKEN, TokenStore
from cachedapi.output import info, print_table, success

token_app = typer.Typer(no_args_is_help=True)


def _mask(value: str) -> str:
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}...{value[-4:]}"


@token_app.command("set")
def token_set(
    value: str = typer.Argument(help="Token or URL value."),
    name: str = typer.Option(ACCESS_TOKEN, "--name", help="Entry name."),
) -> None:
    """Store a token (or a base URL override such as ``base_url``)."""
    store = TokenStore()
    store.set(name, value)
    success(f"Stored {name} in {store.path}")


@token_app.command("show")
def token_show() -> None:
    """List stored entries with their values masked."""
    store = TokenStore()
    names = store.names()
    if not names:
        info("Token store is empty.")
        return
    rows = [[name, _mask(store.get(name) or "")] for name in names]
    print_table(["name", "value"], rows, title="Tokens")


@token_app.command("clear")
def token_clear(
    name: Optional[str] = typer.Argument(None, help="Entry to remove (default: all)."),
) -> None:
    """Remove one entry, or the whole token store."""
    store = TokenStore()
    if name:
        store.delete(name)
        success(f"Removed {name}.")
    else:
        store.clear()
        success("Token store cleared.")
