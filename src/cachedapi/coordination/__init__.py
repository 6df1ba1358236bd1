"""Request-coordination registries.

:class:`PendingRegistry` deduplicates concurrent dispatches of one request
key; :class:`CooldownRegistry` rate-limits repeated dispatches. Both are
keyed by the request key from :func:`~cachedapi.keys.make_request_key`
but have independent lifetimes: a key can be in cooldown without being
pending, and vice versa.
"""

from cachedapi.coordination.cooldown import CooldownRegistry
from cachedapi.coordination.pending import PendingRegistry

__all__ = ["CooldownRegistry", "PendingRegistry"]
