"""Response payload extraction.

The coordinator caches and returns decoded payloads, never raw
:class:`httpx.Response` objects. A JSON response yields its decoded body;
any other content type (or an empty body) yields an empty ``dict`` so
callers always receive a mapping-or-list they can index.
"""

from __future__ import annotations

from typing import Any

import httpx


def extract_payload(response: httpx.Response) -> Any:
    """Decode the body of a successful response.

    Args:
        response: The 2xx :class:`httpx.Response`.

    Returns:
        The decoded JSON value when ``Content-Type`` contains
        ``application/json`` and the body is non-empty, otherwise ``{}``.
    """
    content_type = response.headers.get("content-type", "")
    if "application/json" not in content_type or not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return {}
