"""Credential storage for cachedapi.

The coordinator only ever reads and clears credentials; obtaining them
(logging in) is the application's job. Tokens live in a
:class:`TokenStore` (JSON file) or a :class:`MemoryTokenStore`.
"""

from cachedapi.auth.token_store import (
    ACCESS_TOKEN,
    BASE_URL,
    ORG_ACCESS_TOKEN,
    SECONDARY_BASE_URL,
    MemoryTokenStore,
    StoredValue,
    TokenStore,
)

__all__ = [
    "ACCESS_TOKEN",
    "BASE_URL",
    "ORG_ACCESS_TOKEN",
    "SECONDARY_BASE_URL",
    "MemoryTokenStore",
    "StoredValue",
    "TokenStore",
]
