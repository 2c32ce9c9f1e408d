# src/contextgate/integrations/base.py
"""
Interfaces of the external collaborators ContextGate works with.

None of these are implemented here: a domain classifier, an AI completion
client and web/code search clients are supplied by the application. They
are plain protocols so any object with the right method fits.
"""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, List, Optional, Protocol, Sequence, TypeVar, Union, runtime_checkable

from ..models import ChatMessage, CompletionResult, SearchResult

T = TypeVar("T")


@runtime_checkable
class DomainClassifier(Protocol):
    """Maps free text to a domain label (e.g. "medical"). May be sync or async."""

    def classify(self, text: str) -> Union[str, Awaitable[str]]: ...


@runtime_checkable
class AIClient(Protocol):
    """Sends an ordered list of chat messages to a completion endpoint."""

    async def complete(self, messages: Sequence[ChatMessage]) -> CompletionResult: ...


@runtime_checkable
class SearchClient(Protocol):
    """Web or code search returning ``{title, url, summary}`` hits."""

    async def search(self, query: str, count: Optional[int] = None) -> List[SearchResult]: ...


async def resolve(value: Union[T, Awaitable[T]]) -> T:
    """Await ``value`` if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value  # type: ignore[return-value]


def coerce_search_results(raw: Sequence[Any]) -> List[SearchResult]:
    """Accept SearchResult models or plain ``{title, url, summary}`` mappings."""
    return [r if isinstance(r, SearchResult) else SearchResult.model_validate(r) for r in raw]
