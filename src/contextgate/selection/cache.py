# src/contextgate/selection/cache.py
"""
Query-result cache for the selection engine.

Entries are keyed by ``(query, domain, user_id, session_id)`` and hold the
ordered ids of the contexts a selection returned, together with the store
generation the ranking was computed against. An entry is only served while
the store generation is unchanged; any create, update, delete or reap makes
it a miss. A hit re-resolves the ids against the store, so contexts that
expired since the entry was written drop out.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str, str, str]


@dataclass
class CachedSelection:
    """
    A cached selection result.

    Attributes:
        context_ids: Ids of the selected contexts, in ranked order.
        generation: Store generation the ranking was computed against.
        cached_at: Monotonic timestamp of insertion.
    """

    context_ids: List[str]
    generation: int = 0
    cached_at: float = field(default_factory=time.monotonic)


class QueryResultCache:
    """
    TTL-bounded map from ``(query, domain, user_id, session_id)`` to ranked
    context ids.

    All operations are synchronous and never suspend, so they are atomic with
    respect to other asyncio tasks.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._entries: Dict[CacheKey, CachedSelection] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(query: str, domain: str, user_id: str, session_id: str) -> CacheKey:
        return (query, domain, user_id, session_id)

    def _is_fresh(self, entry: CachedSelection, now: float) -> bool:
        return now - entry.cached_at < self.ttl_seconds

    def get(
        self, query: str, domain: str, user_id: str, session_id: str, generation: int = 0
    ) -> Optional[List[str]]:
        """
        Ids cached for the key, or None on a miss.

        Entries that are older than the TTL or were computed against another
        store generation are dropped on access and count as misses.
        """
        key = self.make_key(query, domain, user_id, session_id)
        entry = self._entries.get(key)
        if entry is not None and (
            entry.generation != generation or not self._is_fresh(entry, self._clock())
        ):
            del self._entries[key]
            entry = None
        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        return list(entry.context_ids)

    def put(
        self,
        query: str,
        domain: str,
        user_id: str,
        session_id: str,
        context_ids: Sequence[str],
        generation: int = 0,
    ) -> None:
        self._entries[self.make_key(query, domain, user_id, session_id)] = CachedSelection(
            context_ids=list(context_ids), generation=generation, cached_at=self._clock()
        )

    def invalidate(self, query: str, domain: str, user_id: str, session_id: str) -> bool:
        """Drop one entry. Returns True if it existed."""
        return self._entries.pop(self.make_key(query, domain, user_id, session_id), None) is not None

    def clear(self) -> int:
        """Drop every entry. Returns the number dropped."""
        count = len(self._entries)
        self._entries.clear()
        return count

    def clear_expired(self) -> int:
        """Drop entries older than the TTL. Returns the number dropped."""
        now = self._clock()
        stale = [k for k, e in self._entries.items() if not self._is_fresh(e, now)]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug(f"Dropped {len(stale)} stale selection cache entries")
        return len(stale)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def __len__(self) -> int:
        return len(self._entries)
