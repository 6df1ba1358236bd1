"""Deterministic request keys.

A request key identifies a cacheable read by its endpoint and its
canonicalised query parameters. Two logically identical requests -- same
path, same parameter set in any order, equivalent scalar values -- always
produce the same key, so the Cache Store, the pending-operation registry
and the cooldown registry all agree on what "the same request" means.

Example::

    >>> make_request_key("/classes", {"page": 1, "instituteId": "I1"})
    '/classes?{"instituteId":"I1","page":"1"}'
    >>> make_request_key("/classes/", {"instituteId": "I1", "page": "1"})
    '/classes?{"instituteId":"I1","page":"1"}'
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Optional

from cachedapi.models import RequestContext


def normalize_endpoint(endpoint: str) -> str:
    """Ensure a leading ``/`` and strip trailing slashes (except for the root)."""
    path = endpoint.strip()
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


def _stringify(value: Any) -> str:
    """Render a parameter value the same way regardless of its Python type."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Mapping):
        return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    if isinstance(value, (list, tuple)):
        return ",".join(_stringify(v) for v in value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def canonicalize_params(params: Optional[Mapping[str, Any]]) -> dict[str, str]:
    """Drop ``None`` values, stringify the rest and sort by key.

    Args:
        params: Query parameters as passed by the caller, or ``None``.

    Returns:
        A new dict with string values, inserted in sorted key order.
    """
    if not params:
        return {}
    return {
        str(k): _stringify(v)
        for k, v in sorted(params.items(), key=lambda item: str(item[0]))
        if v is not None
    }


def make_request_key(endpoint: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Build the request key for *endpoint* and *params*."""
    canonical = canonicalize_params(params)
    encoded = json.dumps(canonical, sort_keys=True, separators=(",", ":"))
    return f"{normalize_endpoint(endpoint)}?{encoded}"


def context_fingerprint(context: Optional[RequestContext]) -> str:
    """Canonical string for a context's populated fields; ``""`` when empty."""
    if context is None or context.is_empty():
        return ""
    return json.dumps(context.scope(), sort_keys=True, separators=(",", ":"))
