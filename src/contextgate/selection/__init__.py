# src/contextgate/selection/__init__.py
"""
Context selection: scoring signals, the query-result cache and the engine.
"""

from .cache import CachedSelection, QueryResultCache
from .engine import SelectionEngine
from .scoring import (
    HybridWeights,
    ScoredContext,
    hybrid_score,
    recency_decay,
    relevance_score,
    tokenize,
)

__all__ = [
    "CachedSelection",
    "HybridWeights",
    "QueryResultCache",
    "ScoredContext",
    "SelectionEngine",
    "hybrid_score",
    "recency_decay",
    "relevance_score",
    "tokenize",
]
