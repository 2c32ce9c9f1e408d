# src/contextgate/selection/scoring.py
"""
Scoring signals for context selection.

Three signals are combined by the hybrid strategy:

- **Relevance** (0.0–1.0): share of the query's distinct tokens that also
  occur in the context content. Tokens are whitespace-separated and
  lower-cased; a query without tokens has relevance 0.
- **Priority** (0–10): the stored priority, normalized to 0.0–1.0.
- **Recency** (0.0–1.0): ``1 / (1 + hours_since_update * 0.1)``, clamped.

The hybrid score is::

    score = 0.5 * relevance + 0.3 * (priority / 10) + 0.2 * recency

Example::

    from contextgate.selection.scoring import HybridWeights, hybrid_score

    score = hybrid_score(relevance=0.75, priority=4, recency=1.0)
    # 0.5 * 0.75 + 0.3 * 0.4 + 0.2 * 1.0 = 0.695
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import FrozenSet, Optional

from ..models import MAX_PRIORITY, Context, utcnow

RECENCY_DECAY_PER_HOUR = 0.1


@dataclass(frozen=True)
class HybridWeights:
    """
    Weights of the hybrid formula.

    Attributes:
        relevance: Weight for query/content token overlap (default 0.5).
        priority: Weight for normalized priority (default 0.3).
        recency: Weight for the recency decay (default 0.2).
    """

    relevance: float = 0.5
    priority: float = 0.3
    recency: float = 0.2


DEFAULT_WEIGHTS = HybridWeights()


@dataclass
class ScoredContext:
    """
    A candidate context with the signals computed for one query.

    Attributes:
        context: The candidate.
        position: Index of the candidate in the gathered list (tie-break).
        relevance: Token-overlap relevance.
        recency: Recency decay.
        score: The value the active strategy sorts by.
    """

    context: Context
    position: int
    relevance: float = 0.0
    recency: float = 0.0
    score: float = 0.0


def tokenize(text: str) -> FrozenSet[str]:
    """Distinct lower-cased whitespace-separated tokens of ``text``."""
    return frozenset(text.lower().split())


def relevance_score(query: str, content: str) -> float:
    """
    Fraction of the distinct query tokens present in ``content``.

    Returns:
        ``|query ∩ content| / |query|``, or 0.0 when the query has no tokens.
    """
    query_tokens = tokenize(query)
    if not query_tokens:
        return 0.0
    return len(query_tokens & tokenize(content)) / len(query_tokens)


def recency_decay(updated_at: datetime, now: Optional[datetime] = None) -> float:
    """
    Decay in [0, 1] favouring recently updated contexts.

    A context updated now scores 1.0, one updated ten hours ago 0.5. An
    ``updated_at`` in the future (clock set backwards) also scores 1.0.
    """
    hours_since_update = ((now or utcnow()) - updated_at).total_seconds() / 3600.0
    if hours_since_update <= 0:
        return 1.0
    decay = 1.0 / (1.0 + hours_since_update * RECENCY_DECAY_PER_HOUR)
    return max(0.0, min(decay, 1.0))


def hybrid_score(
    *,
    relevance: float,
    priority: int,
    recency: float,
    weights: HybridWeights = DEFAULT_WEIGHTS,
) -> float:
    """Weighted combination of relevance, normalized priority and recency."""
    return (
        weights.relevance * relevance
        + weights.priority * (priority / MAX_PRIORITY)
        + weights.recency * recency
    )
