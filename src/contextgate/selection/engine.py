# src/contextgate/selection/engine.py
"""
Selection Engine - ranks stored contexts for a query.

Given a query and the requesting user, session and domain, the engine:

1. gathers candidates from the store's session, user and domain indices,
   de-duplicated by id with the first occurrence kept (session results
   first, then user, then domain);
2. scores and sorts them with the configured strategy:

   - ``PRIORITY_BASED``: priority descending, ties keep candidate order
   - ``RECENCY_BASED``: ``updated_at`` descending
   - ``RELEVANCE_BASED``: token-overlap relevance descending, candidates
     below ``min_relevance_score`` dropped
   - ``HYBRID``: weighted relevance/priority/recency score descending,
     candidates scoring below ``min_relevance_score`` dropped

3. truncates to ``max_results``.

All sorts are stable, so identical store state and inputs always produce
the same ordered list. Selection is read-only; cancelling it leaves nothing
to undo.

Example::

    engine = SelectionEngine(store, SelectorConfig(strategy="priority_based", max_results=2))
    contexts = await engine.select("u1", "s1", "pneumonia treatment", "medical")
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from ..config.models import SelectorConfig
from ..models import Context, ContextSelectionStrategy, SelectorStats, utcnow
from ..observability.monitoring import (
    MetricName,
    MonitoringEventKind,
    MonitoringSink,
    emit_event,
    emit_metric,
)
from ..store.context_store import ContextStore
from .cache import QueryResultCache
from .scoring import (
    DEFAULT_WEIGHTS,
    HybridWeights,
    ScoredContext,
    hybrid_score,
    recency_decay,
    relevance_score,
)

logger = logging.getLogger(__name__)


class SelectionEngine:
    """
    Ranks and filters candidate contexts under a configurable strategy.

    Args:
        store: The context store to read candidates from.
        config: Strategy, result limit, relevance threshold and cache settings.
        weights: Weights of the hybrid formula.
        clock: Returns the current aware UTC time (used for recency).
        cache_clock: Monotonic clock for the result cache.
        monitor: Optional sink for selection and cache events.
    """

    def __init__(
        self,
        store: ContextStore,
        config: Optional[SelectorConfig] = None,
        weights: HybridWeights = DEFAULT_WEIGHTS,
        clock: Optional[Callable[[], datetime]] = None,
        cache_clock: Optional[Callable[[], float]] = None,
        monitor: Optional[MonitoringSink] = None,
    ) -> None:
        self.store = store
        self._config = (config or SelectorConfig()).model_copy()
        self.weights = weights
        self._clock = clock or utcnow
        self._monitor = monitor
        self._cache = QueryResultCache(ttl_seconds=self._config.cache_ttl_seconds, clock=cache_clock)
        self._selections = 0

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_config(self) -> SelectorConfig:
        """A copy of the active configuration."""
        return self._config.model_copy()

    def update_config(self, config: SelectorConfig) -> None:
        """
        Replace the active configuration.

        The result cache is cleared, since cached rankings were produced
        under the previous strategy and limits.
        """
        self._config = config.model_copy()
        self._cache.ttl_seconds = config.cache_ttl_seconds
        self._cache.clear()
        logger.info(
            f"Selector configuration updated: strategy={self._config.strategy.value}, "
            f"max_results={self._config.max_results}, "
            f"min_relevance_score={self._config.min_relevance_score}"
        )

    @property
    def cache(self) -> QueryResultCache:
        return self._cache

    def clear_cache(self) -> int:
        """Drop every cached selection."""
        return self._cache.clear()

    def clear_expired_cache(self) -> int:
        """Drop cached selections older than ``cache_ttl_seconds``."""
        return self._cache.clear_expired()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    async def gather_candidates(self, user_id: str, session_id: str, domain: str) -> List[Context]:
        """
        Union of the session, user and domain contexts, de-duplicated by id.

        The first occurrence of each id wins, so session contexts come first,
        then user, then domain, each in index order.
        """
        by_session, by_user, by_domain = await asyncio.gather(
            self.store.get_by_session(session_id),
            self.store.get_by_user(user_id),
            self.store.get_by_domain(domain),
        )
        seen: Dict[str, Context] = {}
        for context in (*by_session, *by_user, *by_domain):
            seen.setdefault(context.id, context)
        return list(seen.values())

    def rank(
        self,
        query: str,
        candidates: Sequence[Context],
        strategy: Optional[ContextSelectionStrategy] = None,
    ) -> List[ScoredContext]:
        """
        Score, filter and sort candidates under ``strategy`` (default: configured).

        No truncation is applied here; see :meth:`select`.
        """
        strategy = ContextSelectionStrategy(strategy or self._config.strategy)
        threshold = self._config.min_relevance_score
        now = self._clock()

        scored = [
            ScoredContext(context=context, position=i) for i, context in enumerate(candidates)
        ]

        if strategy is ContextSelectionStrategy.PRIORITY_BASED:
            for item in scored:
                item.score = float(item.context.priority)
            scored.sort(key=lambda s: s.context.priority, reverse=True)
            return scored

        if strategy is ContextSelectionStrategy.RECENCY_BASED:
            for item in scored:
                item.recency = recency_decay(item.context.updated_at, now)
                item.score = item.recency
            scored.sort(key=lambda s: s.context.updated_at, reverse=True)
            return scored

        for item in scored:
            item.relevance = relevance_score(query, item.context.content)

        if strategy is ContextSelectionStrategy.RELEVANCE_BASED:
            for item in scored:
                item.score = item.relevance
        else:
            for item in scored:
                item.recency = recency_decay(item.context.updated_at, now)
                item.score = hybrid_score(
                    relevance=item.relevance,
                    priority=item.context.priority,
                    recency=item.recency,
                    weights=self.weights,
                )

        kept = [item for item in scored if item.score >= threshold]
        kept.sort(key=lambda s: s.score, reverse=True)
        return kept

    async def select(self, user_id: str, session_id: str, query: str, domain: str) -> List[Context]:
        """
        Select the contexts most worth attaching to ``query``.

        When the cache is enabled and holds an entry for the same query,
        domain, user and session computed against the current store
        generation, the cached ids are re-resolved against the store instead
        of recomputing the ranking.

        Returns:
            At most ``max_results`` contexts, best first.
        """
        started = time.perf_counter()
        config = self._config
        # Read before gathering, so a mutation racing the ranking invalidates it.
        generation = self.store.generation

        if config.enable_cache:
            cached_ids = self._cache.get(query, domain, user_id, session_id, generation)
            self._record_cache_access(hit=cached_ids is not None)
            if cached_ids is not None:
                selected = await self.store.get_many(cached_ids)
                logger.debug(f"Selection cache hit for domain '{domain}' ({len(selected)} contexts)")
                self._record_selection(query, selected, started, cached=True)
                return selected

        candidates = await self.gather_candidates(user_id, session_id, domain)
        ranked = self.rank(query, candidates, config.strategy)
        selected = [item.context for item in ranked[: config.max_results]]

        if config.enable_cache:
            self._cache.put(query, domain, user_id, session_id, [c.id for c in selected], generation)

        logger.debug(
            f"Selected {len(selected)} of {len(candidates)} candidates "
            f"(strategy={config.strategy.value}, domain='{domain}')"
        )
        self._record_selection(query, selected, started, cached=False)
        return selected

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _record_cache_access(self, hit: bool) -> None:
        emit_event(
            self._monitor, MonitoringEventKind.CACHE_ACCESS, hit=hit, key_type="query_domain_user_session"
        )
        emit_metric(self._monitor, MetricName.CACHE_HIT_RATE, self._cache.hit_rate)

    def _record_selection(self, query: str, selected: List[Context], started: float, cached: bool) -> None:
        self._selections += 1
        duration_ms = (time.perf_counter() - started) * 1000
        emit_metric(self._monitor, MetricName.CONTEXT_SELECTION_TIME_MS, duration_ms)
        emit_event(
            self._monitor,
            MonitoringEventKind.CONTEXT_SELECTED,
            query_length=len(query),
            selected_count=len(selected),
            duration_ms=duration_ms,
            cached=cached,
        )

    def stats(self) -> SelectorStats:
        """Snapshot of the engine configuration and cache counters."""
        return SelectorStats(
            strategy=self._config.strategy,
            max_results=self._config.max_results,
            min_relevance_score=self._config.min_relevance_score,
            cache_enabled=self._config.enable_cache,
            cache_entries=len(self._cache),
            cache_hits=self._cache.hits,
            cache_misses=self._cache.misses,
            selections=self._selections,
        )
