# src/contextgate/store/context_store.py
"""
Context Store - in-memory, multiply-indexed storage of context records.

The store owns every :class:`~contextgate.models.Context` plus three
secondary indices mapping a session id, a user id and a domain to the ids
classified under it, in insertion order. It provides:

- TTL-based visibility: expired records are hidden from every read path
  the moment ``expires_at`` passes (lazy expiry)
- Explicit reaping: expired records keep occupying memory until
  :meth:`ContextStore.cleanup_expired` runs, so a long-lived process must
  call it periodically (see :class:`~contextgate.store.reaper.ContextReaper`)
- Index consistency: the primary map and all indices change under one
  exclusive section, so no reader ever sees an id in an index without its
  record, or the reverse
- Per-id serialized updates: ``version`` increases by exactly one per update

Usage:
    store = ContextStore(default_ttl_seconds=3600)

    ctx = await store.create(
        session_id="s1", user_id="u1", domain="medical",
        content="Treatment for pneumonia involves antibiotics", priority=8,
    )
    medical = await store.get_by_domain("medical")

    await store.update(ctx.id, priority=9)
    removed = await store.cleanup_expired()
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Union

from ..config.models import ContextStoreConfig
from ..exceptions import ContextNotFoundError, InvalidPriorityError
from ..models import MAX_PRIORITY, MIN_PRIORITY, Context, StoreStats, utcnow
from ..observability.monitoring import MonitoringEventKind, MonitoringSink, emit_event
from .locks import AsyncReadWriteLock

logger = logging.getLogger(__name__)

TTL = Union[float, int, timedelta]

# An index maps a classification key to the ids filed under it. The inner
# dict is used as an insertion-ordered set.
_Index = Dict[str, Dict[str, None]]


def validate_priority(priority: object) -> int:
    """
    Check that ``priority`` is an integer in [0, 10].

    Raises:
        InvalidPriorityError: For booleans, non-integers and out-of-range values.
    """
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise InvalidPriorityError(priority)
    if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
        raise InvalidPriorityError(priority)
    return priority


def _ttl_seconds(ttl: Optional[TTL]) -> Optional[float]:
    if ttl is None:
        return None
    seconds = ttl.total_seconds() if isinstance(ttl, timedelta) else float(ttl)
    if seconds < 0:
        raise ValueError(f"ttl must be non-negative, got {seconds}")
    return seconds


class ContextStore:
    """
    Owner of all context records and their session/user/domain indices.

    Reads share an :class:`AsyncReadWriteLock`; every mutation that touches
    the primary map and the indices holds it exclusively. Records are copied
    on the way in and out, so callers can never mutate stored state.

    Attributes:
        default_ttl_seconds: TTL applied when ``create`` is called without one
            (None = never expires).
    """

    def __init__(
        self,
        default_ttl_seconds: Optional[float] = 3600,
        config: Optional[ContextStoreConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        monitor: Optional[MonitoringSink] = None,
    ) -> None:
        """
        Args:
            default_ttl_seconds: Default TTL for new contexts. None or 0 for no expiry.
            config: Optional configuration object (overrides other params).
            clock: Returns the current aware UTC time; injectable for tests.
            monitor: Optional sink receiving ``context_created`` events.
        """
        if config is not None:
            default_ttl_seconds = config.default_ttl_seconds

        self.default_ttl_seconds = default_ttl_seconds or None
        self._clock = clock or utcnow
        self._monitor = monitor

        self._contexts: Dict[str, Context] = {}
        self._by_session: _Index = {}
        self._by_user: _Index = {}
        self._by_domain: _Index = {}
        self._lock = AsyncReadWriteLock()
        self._generation = 0

        logger.debug(f"ContextStore initialized: default_ttl={self.default_ttl_seconds}s")

    # -------------------------------------------------------------------------
    # Private helpers (callers hold the lock)
    # -------------------------------------------------------------------------

    def _now(self) -> datetime:
        return self._clock()

    def _visible(self, context: Optional[Context], now: datetime) -> bool:
        return context is not None and not context.is_expired(now)

    def _index_add(self, context: Context) -> None:
        self._by_session.setdefault(context.session_id, {})[context.id] = None
        self._by_user.setdefault(context.user_id, {})[context.id] = None
        self._by_domain.setdefault(context.domain, {})[context.id] = None

    @staticmethod
    def _index_discard(index: _Index, key: str, context_id: str) -> None:
        ids = index.get(key)
        if ids is None:
            return
        ids.pop(context_id, None)
        if not ids:
            del index[key]

    def _remove(self, context_id: str) -> Optional[Context]:
        context = self._contexts.pop(context_id, None)
        if context is not None:
            self._index_discard(self._by_session, context.session_id, context_id)
            self._index_discard(self._by_user, context.user_id, context_id)
            self._index_discard(self._by_domain, context.domain, context_id)
        return context

    async def _resolve(self, index: _Index, key: str) -> List[Context]:
        async with self._lock.read():
            now = self._now()
            ids = index.get(key, {})
            return [
                self._contexts[cid].model_copy(deep=True)
                for cid in ids
                if self._visible(self._contexts.get(cid), now)
            ]

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def create(
        self,
        session_id: str,
        user_id: str,
        domain: str,
        content: str,
        priority: int,
        ttl: Optional[TTL] = None,
        metadata: Optional[Dict[str, str]] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> Context:
        """
        Create a context and file it under its session, user and domain.

        Args:
            session_id: Session classification key.
            user_id: User classification key.
            domain: Domain classification key.
            content: Text payload.
            priority: Integer in [0, 10].
            ttl: Seconds (or a timedelta) until the context expires. None uses
                ``default_ttl_seconds``; 0 means never expire.
            metadata: Initial metadata map.
            tags: Informational labels.

        Returns:
            A copy of the stored context.

        Raises:
            InvalidPriorityError: If ``priority`` is outside [0, 10].
        """
        validate_priority(priority)
        ttl_seconds = _ttl_seconds(ttl)
        if ttl_seconds is None:
            ttl_seconds = self.default_ttl_seconds

        now = self._now()
        context = Context(
            session_id=session_id,
            user_id=user_id,
            domain=domain,
            content=content,
            priority=priority,
            metadata=dict(metadata or {}),
            tags=list(tags or []),
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds) if ttl_seconds else None,
        )

        async with self._lock.write():
            self._contexts[context.id] = context
            self._index_add(context)
            self._generation += 1

        logger.debug(
            f"Created context {context.id} (session={session_id}, user={user_id}, "
            f"domain={domain}, priority={priority})"
        )
        emit_event(
            self._monitor,
            MonitoringEventKind.CONTEXT_CREATED,
            context_id=context.id,
            domain=domain,
            priority=priority,
        )
        return context.model_copy(deep=True)

    async def get(self, context_id: str) -> Optional[Context]:
        """
        Get a context by id.

        Returns:
            A copy of the context, or None if the id is unknown or expired.
            Expired records are hidden, not removed.
        """
        async with self._lock.read():
            context = self._contexts.get(context_id)
            if not self._visible(context, self._now()):
                return None
            return context.model_copy(deep=True)

    async def get_many(self, context_ids: Iterable[str]) -> List[Context]:
        """
        Resolve several ids at once, in the given order, silently dropping
        ids that are unknown or expired.
        """
        async with self._lock.read():
            now = self._now()
            return [
                self._contexts[cid].model_copy(deep=True)
                for cid in context_ids
                if self._visible(self._contexts.get(cid), now)
            ]

    async def get_by_session(self, session_id: str) -> List[Context]:
        """Visible contexts of a session, in insertion order."""
        return await self._resolve(self._by_session, session_id)

    async def get_by_user(self, user_id: str) -> List[Context]:
        """Visible contexts of a user, in insertion order."""
        return await self._resolve(self._by_user, user_id)

    async def get_by_domain(self, domain: str) -> List[Context]:
        """Visible contexts of a domain, in insertion order."""
        return await self._resolve(self._by_domain, domain)

    async def update(
        self,
        context_id: str,
        content: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        priority: Optional[int] = None,
    ) -> Context:
        """
        Update the mutable fields of a context.

        Only the fields that are provided change; ``metadata`` replaces the
        whole map. ``updated_at`` moves to now and ``version`` increases by
        one. Classification keys never change, so index membership is
        untouched.

        Returns:
            A copy of the updated context.

        Raises:
            InvalidPriorityError: If ``priority`` is given and outside [0, 10].
            ContextNotFoundError: If the id is unknown or already expired.
        """
        if priority is not None:
            validate_priority(priority)

        async with self._lock.write():
            now = self._now()
            current = self._contexts.get(context_id)
            if not self._visible(current, now):
                raise ContextNotFoundError(context_id)

            changes: Dict[str, object] = {
                "updated_at": max(now, current.updated_at),
                "version": current.version + 1,
            }
            if content is not None:
                changes["content"] = content
            if metadata is not None:
                changes["metadata"] = dict(metadata)
            if priority is not None:
                changes["priority"] = priority

            updated = current.model_copy(update=changes, deep=True)
            self._contexts[context_id] = updated
            self._generation += 1

        logger.debug(f"Updated context {context_id} to version {updated.version}")
        return updated.model_copy(deep=True)

    async def delete(self, context_id: str) -> None:
        """
        Remove a context from the primary map and all three indices.

        An expired record that has not been reaped yet can still be deleted.

        Raises:
            ContextNotFoundError: If the id is unknown.
        """
        async with self._lock.write():
            removed = self._remove(context_id)
            if removed is not None:
                self._generation += 1
        if removed is None:
            raise ContextNotFoundError(context_id)
        logger.debug(f"Deleted context {context_id}")

    async def cleanup_expired(self) -> int:
        """
        Physically remove every record whose ``expires_at`` has passed.

        The primary map is scanned once under the exclusive section. Running
        it again with nothing newly expired removes nothing.

        Returns:
            Number of contexts removed.
        """
        async with self._lock.write():
            now = self._now()
            expired_ids = [cid for cid, ctx in self._contexts.items() if ctx.is_expired(now)]
            for cid in expired_ids:
                self._remove(cid)
            if expired_ids:
                self._generation += 1

        if expired_ids:
            logger.debug(f"Reaped {len(expired_ids)} expired contexts")
        return len(expired_ids)

    async def clear(self) -> int:
        """
        Remove every context.

        Returns:
            Number of contexts removed.
        """
        async with self._lock.write():
            count = len(self._contexts)
            self._contexts.clear()
            self._by_session.clear()
            self._by_user.clear()
            self._by_domain.clear()
            self._generation += 1
        logger.debug(f"Cleared {count} contexts")
        return count

    async def stats(self) -> StoreStats:
        """
        Snapshot of the store.

        ``total_contexts`` counts every physically stored record, including
        expired ones still awaiting a reap (also reported as ``expired_pending``).
        """
        async with self._lock.read():
            now = self._now()
            return StoreStats(
                total_contexts=len(self._contexts),
                expired_pending=sum(1 for c in self._contexts.values() if c.is_expired(now)),
                indexed_sessions=len(self._by_session),
                indexed_users=len(self._by_user),
                indexed_domains=len(self._by_domain),
            )

    async def verify_indices(self) -> List[str]:
        """
        Cross-check the primary map against the three indices.

        Returns:
            Descriptions of every inconsistency found; empty when the store
            is consistent.
        """
        problems: List[str] = []
        async with self._lock.read():
            indices = {
                "session": (self._by_session, "session_id"),
                "user": (self._by_user, "user_id"),
                "domain": (self._by_domain, "domain"),
            }
            for name, (index, attr) in indices.items():
                indexed = set()
                for key, ids in index.items():
                    for cid in ids:
                        indexed.add(cid)
                        context = self._contexts.get(cid)
                        if context is None:
                            problems.append(f"{name} index '{key}' lists unknown id {cid}")
                        elif getattr(context, attr) != key:
                            problems.append(f"{name} index '{key}' lists {cid} filed under another key")
                for cid in self._contexts.keys() - indexed:
                    problems.append(f"id {cid} missing from {name} index")
        return problems

    @property
    def generation(self) -> int:
        """
        Counter bumped by every mutation (create, update, delete, reap, clear).

        Read-side caches compare it to detect that the store changed.
        """
        return self._generation

    def __len__(self) -> int:
        """Number of physically stored contexts (expired ones included)."""
        return len(self._contexts)
