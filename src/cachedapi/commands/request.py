"""Request commands -- ``get``, ``post``, ``put``, ``patch``, ``delete``.

Each command dispatches through a
:class:`~cachedapi.client.coordinator.RequestCoordinator` backed by the
disk cache, so a ``get`` repeated within its ttl is served without a
network round trip and a mutation purges the reads it affects.

Example::

    cachedapi get /classes -P instituteId=I1 --ttl 60
    cachedapi post /institute-classes --data '{"name": "7B"}' --institute I1
"""

from __future__ import annotations

from typing import Optional

import typer

from cachedapi.commands._shared import (
    build_context,
    parse_body,
    parse_params,
    run_with_coordinator,
)
from cachedapi.models import RequestOptions
from cachedapi.output import format_response, success

_USER = typer.Option(None, "--user", help="Context user id.")
_INSTITUTE = typer.Option(None, "--institute", help="Context institute id.")
_CLASS = typer.Option(None, "--class", help="Context class id.")
_SUBJECT = typer.Option(None, "--subject", help="Context subject id.")
_ROLE = typer.Option(None, "--role", help="Context role.")
_DATA = typer.Option(None, "--data", "-d", help="JSON request body.")


def get_command(
    ctx: typer.Context,
    endpoint: str = typer.Argument(help="API path, e.g. /classes."),
    param: Optional[list[str]] = typer.Option(
        None, "--param", "-P", help="Query parameter as key=value (repeatable)."
    ),
    ttl: float = typer.Option(30, "--ttl", help="Cache time to live in minutes."),
    force: bool = typer.Option(False, "--force-refresh", help="Bypass cache and cooldown."),
    no_swr: bool = typer.Option(
        False, "--no-swr", help="Refetch stale entries instead of revalidating in background."
    ),
    user: Optional[str] = _USER,
    institute: Optional[str] = _INSTITUTE,
    class_id: Optional[str] = _CLASS,
    subject: Optional[str] = _SUBJECT,
    role: Optional[str] = _ROLE,
) -> None:
    """GET an endpoint through the cache.

    Example::

        cachedapi get /classes -P instituteId=I1
        cachedapi get /institutes/U1/institutes --user U1 --force-refresh
    """
    params = parse_params(param)
    options = RequestOptions(
        ttl=ttl,
        force_refresh=force,
        use_stale_while_revalidate=not no_swr,
        context=build_context(user, institute, class_id, subject, role),
    )
    data = run_with_coordinator(ctx, lambda api: api.get(endpoint, params, options))
    format_response(data)


def _mutation_command(method: str):
    def command(
        ctx: typer.Context,
        endpoint: str = typer.Argument(help="API path."),
        data: Optional[str] = _DATA,
        user: Optional[str] = _USER,
        institute: Optional[str] = _INSTITUTE,
        class_id: Optional[str] = _CLASS,
        subject: Optional[str] = _SUBJECT,
        role: Optional[str] = _ROLE,
    ) -> None:
        body = parse_body(data)
        options = RequestOptions(context=build_context(user, institute, class_id, subject, role))

        async def _send(api):
            sender = getattr(api, method.lower())
            if method == "DELETE":
                return await sender(endpoint, options)
            return await sender(endpoint, body, options)

        result = run_with_coordinator(ctx, _send)
        success(f"{method} {endpoint} succeeded; related cache entries invalidated.")
        format_response(result)

    command.__name__ = f"{method.lower()}_command"
    command.__doc__ = f"{method} to an endpoint and invalidate affected cached reads."
    return command


post_command = _mutation_command("POST")
put_command = _mutation_command("PUT")
patch_command = _mutation_command("PATCH")
delete_command = _mutation_command("DELETE")
