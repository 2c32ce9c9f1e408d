# src/contextgate/models.py
"""
Core data models for the ContextGate library.

This module defines the Pydantic models used to represent the stored context
records, the outcome of an admitted request, the records exchanged with
external collaborators (search results, chat messages, completions) and the
statistics snapshots reported by each component.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

MIN_PRIORITY = 0
MAX_PRIORITY = 10


def utcnow() -> datetime:
    """Timezone-aware current UTC time, the clock used across the library."""
    return datetime.now(timezone.utc)


def _ensure_utc(v: Any) -> Any:
    if isinstance(v, str):
        v = datetime.fromisoformat(v[:-1] + "+00:00" if v.endswith("Z") else v)
    if isinstance(v, datetime):
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)
    return v


class ContextSelectionStrategy(str, Enum):
    """
    Strategies used by the selection engine to rank candidate contexts.
    """
    PRIORITY_BASED = "priority_based"
    RECENCY_BASED = "recency_based"
    RELEVANCE_BASED = "relevance_based"
    HYBRID = "hybrid"

    @classmethod
    def _missing_(cls, value: object):  # type: ignore[misc]
        """Accept case-insensitive names and the CamelCase spellings (e.g. "PriorityBased")."""
        if isinstance(value, str):
            normalized = value.replace("-", "_").lower()
            compact = normalized.replace("_", "")
            for member in cls:
                if member.value == normalized or member.value.replace("_", "") == compact:
                    return member
        return None


class Context(BaseModel):
    """
    A stored knowledge record classified by session, user and domain.

    Attributes:
        id: Unique identifier, generated on creation.
        session_id: Session this context belongs to. Immutable.
        user_id: User this context belongs to. Immutable.
        domain: Domain label (e.g. "medical", "legal"). Immutable.
        content: Arbitrary text payload.
        metadata: Mutable string-keyed map.
        priority: Importance in the closed range [0, 10].
        created_at: Creation timestamp (UTC).
        updated_at: Timestamp of the last mutation (UTC).
        expires_at: Expiry timestamp; None means the context never expires.
        version: Starts at 1 and increments on every successful update.
        tags: Informational labels, in insertion order.
    """
    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), frozen=True, description="Unique identifier for the context.")
    session_id: str = Field(frozen=True, description="Session the context is indexed under.")
    user_id: str = Field(frozen=True, description="User the context is indexed under.")
    domain: str = Field(frozen=True, description="Domain the context is indexed under.")
    content: str = Field(description="Text payload of the context.")
    metadata: Dict[str, str] = Field(default_factory=dict, description="Mutable metadata map.")
    priority: int = Field(ge=MIN_PRIORITY, le=MAX_PRIORITY, description="Priority in [0, 10].")
    created_at: datetime = Field(default_factory=utcnow, description="Creation time (UTC).")
    updated_at: datetime = Field(default_factory=utcnow, description="Last mutation time (UTC).")
    expires_at: Optional[datetime] = Field(default=None, description="Expiry time (UTC); None never expires.")
    version: int = Field(default=1, ge=1, description="Monotonic version counter.")
    tags: List[str] = Field(default_factory=list, description="Informational labels.")

    @field_validator("created_at", "updated_at", "expires_at", mode="before")
    @classmethod
    def ensure_utc_timestamp(cls, v: Any) -> Any:
        """Ensure timestamps are timezone-aware and in UTC."""
        return _ensure_utc(v)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True once ``expires_at`` lies strictly in the past."""
        if self.expires_at is None:
            return False
        return (now or utcnow()) > self.expires_at

    def time_until_expiry(self, now: Optional[datetime] = None) -> Optional[float]:
        """Seconds until expiry, 0.0 if already expired, None if the context never expires."""
        if self.expires_at is None:
            return None
        remaining = (self.expires_at - (now or utcnow())).total_seconds()
        return max(0.0, remaining)


class RequestResult(BaseModel):
    """
    The outcome of a successfully admitted and processed request.

    Attributes:
        request_id: Unique identifier generated for the request.
        user_id: Requesting user.
        session_id: Requesting session.
        query: The query the contexts were selected for.
        domain: The domain the query was classified under.
        selected_contexts: Ranked contexts chosen by the selection engine.
        timestamp: Completion time (UTC).
        processing_time_ms: Wall time from admission to completion.
    """
    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    session_id: str
    query: str
    domain: str
    selected_contexts: List[Context] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)
    processing_time_ms: float = 0.0


class SearchResult(BaseModel):
    """A single hit returned by a web or code search collaborator."""
    title: str
    url: str
    summary: str = ""


class Role(str, Enum):
    """Roles of the messages sent to an AI completion endpoint."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """One ``{role, content}`` entry of a chat-completion request."""
    model_config = ConfigDict(use_enum_values=True)

    role: Role
    content: str


class TokenUsage(BaseModel):
    """Token accounting reported by an AI completion endpoint."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class CompletionResult(BaseModel):
    """Text and token usage returned by an AI completion endpoint."""
    text: str
    token_usage: TokenUsage = Field(default_factory=TokenUsage)


# =============================================================================
# Statistics snapshots
# =============================================================================


class StoreStats(BaseModel):
    """Snapshot of the context store."""
    total_contexts: int = 0
    expired_pending: int = 0
    indexed_sessions: int = 0
    indexed_users: int = 0
    indexed_domains: int = 0


class SelectorStats(BaseModel):
    """Snapshot of the selection engine and its query-result cache."""
    strategy: ContextSelectionStrategy
    max_results: int
    min_relevance_score: float
    cache_enabled: bool
    cache_entries: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    selections: int = 0


class AdmissionStats(BaseModel):
    """Snapshot of the admission orchestrator."""
    active_requests: int
    max_concurrent_requests: int
    available_permits: int
    total_users_tracked: int
    rate_limit_enabled: bool
    max_requests_per_minute: int
    completed_requests: int = 0
    failed_requests: int = 0
    rate_limited_requests: int = 0
