"""Mutation-driven cache invalidation.

Every cached read is tagged with the resources it depends on, and every
mutation names the resources it changes. A successful ``POST``/``PUT``/
``PATCH``/``DELETE`` purges the cached reads whose tags intersect the
mutation's tags *and* whose scope overlaps the caller's context.

Tags come from :class:`ResourceTagger`:

* every endpoint is tagged with its first non-parameter path segment
  (``/institute-classes/12/students`` -> ``institute-classes``);
* configured rules add tags for endpoints matching an fnmatch pattern,
  so a backend whose resources share data across paths can be described
  explicitly instead of inferred from path strings.

Example::

    tagger = ResourceTagger({"/institute-classes*": ["classes"]})
    tagger.tags_for("/institute-classes/7")   # {"institute-classes", "classes"}
"""

from __future__ import annotations

import fnmatch
import re
from collections.abc import Mapping
from typing import Optional

from cachedapi.cache.store import EntryPredicate
from cachedapi.keys import normalize_endpoint
from cachedapi.models import CacheEntry, RequestContext

_PARAM_SEGMENT = re.compile(r"^(\{.*\}|:.+|\d+|[0-9a-fA-F-]{32,36})$")
_PREFIX_SEGMENT = re.compile(r"^(api|v\d+)$")


class ResourceTagger:
    """Derive resource tags for an endpoint.

    Args:
        rules: Mapping of fnmatch-style endpoint pattern to extra tags.
    """

    def __init__(self, rules: Optional[Mapping[str, list[str]]] = None) -> None:
        self._rules = {normalize_endpoint(p): list(tags) for p, tags in (rules or {}).items()}

    def tags_for(self, endpoint: str) -> frozenset[str]:
        path = normalize_endpoint(endpoint)
        tags: set[str] = set()
        primary = _primary_segment(path)
        if primary:
            tags.add(primary)
        for pattern, extra in self._rules.items():
            if fnmatch.fnmatchcase(path, pattern):
                tags.update(extra)
        return frozenset(tags)


def _primary_segment(path: str) -> str:
    for segment in path.strip("/").split("/"):
        if segment and not (_PARAM_SEGMENT.match(segment) or _PREFIX_SEGMENT.match(segment)):
            return segment
    return ""


def entry_scope(entry: CacheEntry) -> dict[str, str]:
    """Return the scope a mutation is matched against; see :meth:`CacheEntry.scope`."""
    return entry.scope()


def mutation_predicate(tags: frozenset[str], context: RequestContext) -> EntryPredicate:
    """Build the predicate purging reads a mutation could have changed.

    Args:
        tags: Resource tags of the mutated endpoint.
        context: The caller's context for the mutation.
    """

    def _matches(entry: CacheEntry) -> bool:
        if not (entry.tags & tags):
            return False
        return context.overlaps(entry.scope())

    return _matches
