# src/contextgate/integrations/search.py
"""
Creating contexts from live search results.

:class:`SearchContextLoader` runs a query through a search collaborator,
formats the hits as a markdown digest and stores the digest as a new
context. Fresh search data is stored at a high priority (8 for plain web
search, 9 for intelligent search that routes the query to the best
engine), tagged with its origin and with ``source``/``query`` metadata.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from ..exceptions import ContextGateError, ExternalServiceError
from ..models import Context, SearchResult
from ..store.context_store import TTL, ContextStore
from .base import SearchClient, coerce_search_results

logger = logging.getLogger(__name__)

WEB_SEARCH_SOURCE = "web-search"
INTELLIGENT_SEARCH_SOURCE = "intelligent-search"
DEFAULT_RESULT_COUNT = 5
DEFAULT_AGGREGATE_RESULTS = 10


def format_search_results(
    results: Sequence[SearchResult],
    heading: str = "## Web search results",
    footer: Optional[str] = "*Retrieved from a live web search; information may be time-sensitive.*",
) -> str:
    """
    Render search hits as a markdown digest suitable as context content.

    Each hit becomes a ``### Source N: title`` block with its URL and summary.
    """
    lines = [heading, ""]
    for index, result in enumerate(results, start=1):
        lines.append(f"### Source {index}: {result.title}")
        lines.append(f"**URL**: {result.url}")
        lines.append(f"**Summary**: {result.summary}")
        lines.append("")
    if footer:
        lines.append(footer)
    return "\n".join(lines)


class SearchContextLoader:
    """
    Alternate context-creation path backed by search collaborators.

    Args:
        store: Where the created contexts are stored.
        web_search_client: Plain web search.
        intelligent_search_client: Search that routes each query to a suitable engine.
        result_count: Hits requested per search.
    """

    def __init__(
        self,
        store: ContextStore,
        web_search_client: Optional[SearchClient] = None,
        intelligent_search_client: Optional[SearchClient] = None,
        result_count: int = DEFAULT_RESULT_COUNT,
    ) -> None:
        self.store = store
        self.web_search_client = web_search_client
        self.intelligent_search_client = intelligent_search_client
        self.result_count = result_count

    async def _search(
        self, client: Optional[SearchClient], source: str, query: str, count: Optional[int] = None
    ) -> List[SearchResult]:
        if client is None:
            raise ExternalServiceError(source, "Search client not configured.")
        try:
            raw = await client.search(query, self.result_count if count is None else count)
        except ContextGateError:
            raise
        except Exception as e:
            raise ExternalServiceError(source, f"Search failed: {e}") from e
        results = coerce_search_results(raw)
        logger.debug(f"{source} returned {len(results)} results for query '{query[:50]}'")
        return results

    async def web_search(self, query: str) -> List[SearchResult]:
        """Run ``query`` through the web search client."""
        return await self._search(self.web_search_client, WEB_SEARCH_SOURCE, query)

    async def intelligent_search(self, query: str) -> List[SearchResult]:
        """Run ``query`` through the intelligent search client."""
        return await self._search(self.intelligent_search_client, INTELLIGENT_SEARCH_SOURCE, query)

    async def aggregate_web_search(
        self, queries: Sequence[str], max_results: int = DEFAULT_AGGREGATE_RESULTS
    ) -> List[SearchResult]:
        """
        Search several queries and merge the hits.

        The result budget is split evenly across the queries (at least one hit
        each), the searches run concurrently, and a query whose search fails
        is logged and skipped. Hits are de-duplicated by URL, first occurrence
        kept in query order, and truncated to ``max_results``.

        Raises:
            ExternalServiceError: If no web search client is configured.
        """
        if self.web_search_client is None:
            raise ExternalServiceError(WEB_SEARCH_SOURCE, "Search client not configured.")
        per_query = max(max_results // max(len(queries), 1), 1)
        outcomes = await asyncio.gather(
            *(self._search(self.web_search_client, WEB_SEARCH_SOURCE, q, per_query) for q in queries),
            return_exceptions=True,
        )

        merged: Dict[str, SearchResult] = {}
        for query, outcome in zip(queries, outcomes):
            if isinstance(outcome, ExternalServiceError):
                logger.warning(f"Aggregate search skipped query '{query[:50]}': {outcome}")
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            for result in outcome:
                merged.setdefault(result.url, result)
        results = list(merged.values())[:max_results]
        logger.debug(f"Aggregate search over {len(queries)} queries returned {len(results)} results")
        return results

    async def create_context_from_search(
        self,
        client: Optional[SearchClient],
        query: str,
        session_id: str,
        user_id: str,
        domain: str,
        *,
        source: str = WEB_SEARCH_SOURCE,
        priority: int = 8,
        tags: Iterable[str] = (WEB_SEARCH_SOURCE, "real-time"),
        heading: str = "## Web search results",
        ttl: Optional[TTL] = None,
    ) -> Context:
        """
        Search ``query`` with ``client`` and store the formatted hits as a context.

        Raises:
            ExternalServiceError: If the client is missing or the search fails.
            InvalidPriorityError: If ``priority`` is outside [0, 10].
        """
        results = await self._search(client, source, query)
        content = format_search_results(results, heading=heading)
        context = await self.store.create(
            session_id=session_id,
            user_id=user_id,
            domain=domain,
            content=content,
            priority=priority,
            ttl=ttl,
            metadata={"source": source, "query": query, "result_count": str(len(results))},
            tags=tags,
        )
        logger.info(f"Created context {context.id} from {source} ({len(results)} results)")
        return context

    async def create_context_from_web_search(
        self, query: str, session_id: str, user_id: str, domain: str, ttl: Optional[TTL] = None
    ) -> Context:
        """Store plain web search results for ``query`` as a priority-8 context."""
        return await self.create_context_from_search(
            self.web_search_client,
            query,
            session_id,
            user_id,
            domain,
            ttl=ttl,
        )

    async def create_context_from_intelligent_search(
        self, query: str, session_id: str, user_id: str, domain: str, ttl: Optional[TTL] = None
    ) -> Context:
        """Store intelligently routed search results for ``query`` as a priority-9 context."""
        return await self.create_context_from_search(
            self.intelligent_search_client,
            query,
            session_id,
            user_id,
            domain,
            source=INTELLIGENT_SEARCH_SOURCE,
            priority=9,
            tags=(INTELLIGENT_SEARCH_SOURCE, "real-time", "auto-routed"),
            heading=f'## Intelligent search results (query: "{query}")',
            ttl=ttl,
        )
