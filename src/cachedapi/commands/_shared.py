"""Helpers shared by the CLI commands."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable
from typing import Any, Callable, Optional, TypeVar

import typer

from cachedapi.auth.token_store import TokenStore
from cachedapi.client.coordinator import RequestCoordinator, create_coordinator
from cachedapi.config import resolve_config
from cachedapi.exceptions import InvalidUsageError
from cachedapi.models import RequestContext

T = TypeVar("T")


def parse_params(pairs: Optional[list[str]]) -> dict[str, str]:
    """Turn ``["key=value", ...]`` into a dict.

    Raises:
        InvalidUsageError: If a pair has no ``=`` or an empty key.
    """
    params: dict[str, str] = {}
    for pair in pairs or []:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise InvalidUsageError(f"Expected key=value, got: {pair!r}")
        params[name] = value
    return params


def parse_body(data: Optional[str]) -> Any:
    """Parse a ``--data`` argument as JSON.

    Raises:
        InvalidUsageError: If *data* is not valid JSON.
    """
    if data is None:
        return None
    try:
        return json.loads(data)
    except json.JSONDecodeError as exc:
        raise InvalidUsageError(f"--data is not valid JSON: {exc}") from exc


def build_context(
    user: Optional[str] = None,
    institute: Optional[str] = None,
    class_id: Optional[str] = None,
    subject: Optional[str] = None,
    role: Optional[str] = None,
) -> RequestContext:
    return RequestContext(
        user_id=user,
        institute_id=institute,
        class_id=class_id,
        subject_id=subject,
        role=role,
    )


def open_coordinator(ctx: typer.Context) -> RequestCoordinator:
    """Build a coordinator from the resolved config and the persisted token store.

    The CLI uses the disk backend unless ``--memory-cache`` was given, so
    cached reads survive between invocations.
    """
    obj = ctx.obj or {}
    backend = "memory" if obj.get("memory_cache") else "disk"
    config = resolve_config(cli_base_url=obj.get("base_url"), cli_cache_backend=backend)
    if obj.get("secondary"):
        config = config.model_copy(update={"use_secondary": True})
    return create_coordinator(config, token_store=TokenStore())


def run_with_coordinator(
    ctx: typer.Context,
    action: Callable[[RequestCoordinator], Awaitable[T]],
) -> T:
    """Run *action* against a fresh coordinator and close it afterwards."""

    async def _main() -> T:
        async with open_coordinator(ctx) as coordinator:
            return await action(coordinator)

    return asyncio.run(_main())
