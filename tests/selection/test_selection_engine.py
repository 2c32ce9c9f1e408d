# tests/selection/test_selection_engine.py
"""
Tests for SelectionEngine.

Covers candidate gathering, each ranking strategy, the relevance
threshold, truncation, determinism and the query-result cache.
"""

import asyncio

import pytest

from contextgate.config.models import SelectorConfig
from contextgate.models import ContextSelectionStrategy
from contextgate.observability.monitoring import MonitoringSystem
from contextgate.selection.engine import SelectionEngine


class TestGatherCandidates:
    @pytest.mark.asyncio
    async def test_session_then_user_then_domain_without_duplicates(self, store, make_engine):
        engine = make_engine()
        domain_only = await store.create("s-other", "u-other", "medical", "d", 1)
        user_only = await store.create("s-x", "u1", "legal", "u", 1)
        everywhere = await store.create("s1", "u1", "medical", "all", 1)
        session_only = await store.create("s1", "u-y", "tax", "s", 1)

        candidates = await engine.gather_candidates("u1", "s1", "medical")
        assert [c.id for c in candidates] == [everywhere.id, session_only.id, user_only.id, domain_only.id]

    @pytest.mark.asyncio
    async def test_excludes_unrelated_contexts(self, store, make_engine):
        await store.create("s9", "u9", "legal", "x", 5)
        engine = make_engine()
        assert await engine.gather_candidates("u1", "s1", "medical") == []


class TestStrategies:
    @pytest.mark.asyncio
    async def test_priority_based_top_two(self, store, make_engine):
        for priority in (9, 5, 7):
            await store.create("s1", "u1", "medical", f"p{priority}", priority)
        engine = make_engine(strategy="PriorityBased", max_results=2)

        selected = await engine.select("u1", "s1", "anything", "medical")
        assert [c.priority for c in selected] == [9, 7]

    @pytest.mark.asyncio
    async def test_priority_ties_keep_candidate_order(self, store, make_engine):
        first = await store.create("s1", "u1", "d", "first", 5)
        second = await store.create("s1", "u1", "d", "second", 5)
        engine = make_engine(strategy="priority_based")

        selected = await engine.select("u1", "s1", "q", "d")
        assert [c.id for c in selected] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_priority_based_ignores_relevance_threshold(self, store, make_engine):
        await store.create("s1", "u1", "d", "no overlap at all", 1)
        engine = make_engine(strategy="priority_based", min_relevance_score=1.0)
        assert len(await engine.select("u1", "s1", "query words", "d")) == 1

    @pytest.mark.asyncio
    async def test_recency_based(self, store, clock, make_engine):
        old = await store.create("s1", "u1", "d", "old", 9)
        clock.advance(60)
        new = await store.create("s1", "u1", "d", "new", 1)
        clock.advance(60)
        await store.update(old.id, content="old but touched")
        clock.advance(60)
        engine = make_engine(strategy="recency_based")

        selected = await engine.select("u1", "s1", "q", "d")
        assert [c.id for c in selected] == [old.id, new.id]

    @pytest.mark.asyncio
    async def test_relevance_based_filters_and_sorts(self, store, make_engine):
        half = await store.create("s1", "u1", "d", "pneumonia facts", 1)
        full = await store.create("s1", "u1", "d", "pneumonia treatment plan", 1)
        await store.create("s1", "u1", "d", "tax law", 10)
        engine = make_engine(strategy="relevance_based", min_relevance_score=0.5)

        selected = await engine.select("u1", "s1", "pneumonia treatment", "d")
        assert [c.id for c in selected] == [full.id, half.id]

    @pytest.mark.asyncio
    async def test_hybrid_drops_below_threshold(self, store, make_engine):
        await store.create("s1", "u1", "d", "unrelated text", 10)
        b = await store.create("s1", "u1", "d", "how to treat flu", 4)
        # A: 0.5*0 + 0.3*1.0 + 0.2*1 = 0.5; B: 0.5*0.75 + 0.3*0.4 + 0.2*1 = 0.695
        engine = make_engine(strategy="hybrid", min_relevance_score=0.6)

        selected = await engine.select("u1", "s1", "how to treat pneumonia", "d")
        assert [c.id for c in selected] == [b.id]

    @pytest.mark.asyncio
    async def test_hybrid_ranking_scores(self, store, make_engine):
        a = await store.create("s1", "u1", "d", "unrelated text", 10)
        b = await store.create("s1", "u1", "d", "how to treat flu", 4)
        engine = make_engine(strategy="hybrid", min_relevance_score=0.0)

        ranked = engine.rank("how to treat pneumonia", await engine.gather_candidates("u1", "s1", "d"))
        assert [r.context.id for r in ranked] == [b.id, a.id]
        assert ranked[0].score == pytest.approx(0.695)
        assert ranked[1].score == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_max_results_zero(self, store, make_engine):
        await store.create("s1", "u1", "d", "x", 5)
        engine = make_engine(strategy="priority_based", max_results=0)
        assert await engine.select("u1", "s1", "x", "d") == []

    @pytest.mark.asyncio
    async def test_no_candidates(self, make_engine):
        assert await make_engine().select("u1", "s1", "q", "d") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("strategy", list(ContextSelectionStrategy))
    async def test_deterministic(self, store, make_engine, strategy):
        for i in range(8):
            await store.create("s1", f"u{i % 2}", "d", f"treat flu case {i}", i % 4)
        engine = make_engine(strategy=strategy, min_relevance_score=0.0, max_results=10)

        first = await engine.select("u0", "s1", "treat flu", "d")
        second = await engine.select("u0", "s1", "treat flu", "d")
        assert [c.id for c in first] == [c.id for c in second]


class TestCache:
    @pytest.fixture
    def cached_engine(self, store, clock, mono_clock):
        return SelectionEngine(
            store,
            SelectorConfig(strategy="priority_based", enable_cache=True),
            clock=clock,
            cache_clock=mono_clock,
        )

    @pytest.mark.asyncio
    async def test_repeat_without_changes_is_a_hit(self, store, cached_engine):
        a = await store.create("s1", "u1", "d", "a", 9)
        b = await store.create("s1", "u1", "d", "b", 5)

        first = await cached_engine.select("u1", "s1", "q", "d")
        second = await cached_engine.select("u1", "s1", "q", "d")
        assert [c.id for c in first] == [c.id for c in second] == [a.id, b.id]
        assert cached_engine.cache.hits == 1

    @pytest.mark.asyncio
    async def test_hit_matches_fresh_selection_after_mutations(self, store, cached_engine, make_engine):
        fresh_engine = make_engine(strategy="priority_based")
        a = await store.create("s1", "u1", "d", "a", 9)
        b = await store.create("s1", "u1", "d", "b", 5)
        await cached_engine.select("u1", "s1", "q", "d")

        await store.update(a.id, content="a updated")
        await store.delete(b.id)
        newest = await store.create("s1", "u1", "d", "new", 10)

        cached = await cached_engine.select("u1", "s1", "q", "d")
        fresh = await fresh_engine.select("u1", "s1", "q", "d")
        assert [c.id for c in cached] == [c.id for c in fresh] == [newest.id, a.id]
        assert cached[1].content == "a updated"

    @pytest.mark.asyncio
    async def test_reprioritised_context_reranked(self, store, cached_engine):
        a = await store.create("s1", "u1", "d", "a", 9)
        b = await store.create("s1", "u1", "d", "b", 5)
        await cached_engine.select("u1", "s1", "q", "d")

        await store.update(b.id, priority=10)
        selected = await cached_engine.select("u1", "s1", "q", "d")
        assert [c.id for c in selected] == [b.id, a.id]

    @pytest.mark.asyncio
    async def test_not_shared_across_users(self, store, cached_engine):
        await store.create("alice-session", "alice", "private", "alice private note", 9)

        alice = await cached_engine.select("alice", "alice-session", "notes", "shared")
        bob = await cached_engine.select("bob", "bob-session", "notes", "shared")
        assert [c.content for c in alice] == ["alice private note"]
        assert bob == []

    @pytest.mark.asyncio
    async def test_not_shared_across_sessions(self, store, cached_engine):
        own = await store.create("s1", "u-a", "other", "session one note", 5)

        first = await cached_engine.select("u-b", "s1", "q", "d")
        second = await cached_engine.select("u-b", "s2", "q", "d")
        assert [c.id for c in first] == [own.id]
        assert second == []

    @pytest.mark.asyncio
    async def test_expired_context_dropped_from_hit(self, store, clock, cached_engine, make_engine):
        await store.create("s1", "u1", "d", "short-lived", 9, ttl=60)
        lasting = await store.create("s1", "u1", "d", "lasting", 5)
        await cached_engine.select("u1", "s1", "q", "d")

        clock.advance(61)
        cached = await cached_engine.select("u1", "s1", "q", "d")
        fresh = await make_engine(strategy="priority_based").select("u1", "s1", "q", "d")
        assert [c.id for c in cached] == [c.id for c in fresh] == [lasting.id]
        assert cached_engine.cache.hits == 1

    @pytest.mark.asyncio
    async def test_stale_cache_recomputes(self, store, clock, mono_clock):
        engine = SelectionEngine(
            store,
            SelectorConfig(strategy="priority_based", cache_ttl_seconds=10),
            clock=clock,
            cache_clock=mono_clock,
        )
        await store.create("s1", "u1", "d", "a", 5)
        await engine.select("u1", "s1", "q", "d")

        mono_clock.advance(11)
        await engine.select("u1", "s1", "q", "d")
        assert engine.cache.hits == 0
        assert engine.cache.misses == 2

    @pytest.mark.asyncio
    async def test_update_config_clears_cache(self, store, make_engine):
        engine = make_engine(enable_cache=True)
        await store.create("s1", "u1", "d", "x", 5)
        await engine.select("u1", "s1", "x", "d")
        assert len(engine.cache) == 1

        engine.update_config(SelectorConfig(strategy="recency_based"))
        assert len(engine.cache) == 0
        assert engine.get_config().strategy is ContextSelectionStrategy.RECENCY_BASED

    @pytest.mark.asyncio
    async def test_monitoring(self, store, clock, mono_clock):
        monitor = MonitoringSystem()
        engine = SelectionEngine(store, SelectorConfig(), clock=clock, cache_clock=mono_clock, monitor=monitor)
        await engine.select("u1", "s1", "q", "d")
        await engine.select("u1", "s1", "q", "d")

        assert monitor.event_count("cache_access") == 2
        assert monitor.event_count("context_selected") == 2
        assert monitor.get_latest_metric("cache_hit_rate").value == 0.5
        stats = engine.stats()
        assert stats.selections == 2
        assert stats.cache_hits == 1
        assert stats.cache_misses == 1


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_selection_concurrent_with_mutations(self, store, make_engine):
        engine = make_engine(strategy="priority_based", max_results=100)
        ids = [(await store.create("s1", "u1", "d", str(i), i % 11)).id for i in range(20)]

        async def mutate():
            for cid in ids[:10]:
                await store.delete(cid)
                await asyncio.sleep(0)

        results = await asyncio.gather(mutate(), *(engine.select("u1", "s1", "q", "d") for _ in range(5)))
        for selected in results[1:]:
            priorities = [c.priority for c in selected]
            assert priorities == sorted(priorities, reverse=True)
        assert await store.verify_indices() == []
