# src/contextgate/api.py
"""
Core API Facade for the ContextGate library.

:class:`ContextGate` wires the components together from one configuration:
the context store, the selection engine, the admission orchestrator, the
expiry reaper and the in-memory monitoring system, plus the optional
external collaborators (domain classifier, search clients, AI client).
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from .config import load_config
from .config.models import ContextGateConfig
from .exceptions import ExternalServiceError
from .integrations.base import AIClient, DomainClassifier, SearchClient, resolve
from .integrations.prompting import DEFAULT_SYSTEM_PROMPT, complete_with_context
from .integrations.search import SearchContextLoader
from .models import CompletionResult, Context, RequestResult, SearchResult
from .observability.monitoring import MonitoringSystem
from .processing.orchestrator import AdmissionOrchestrator
from .selection.engine import SelectionEngine
from .store.context_store import TTL, ContextStore
from .store.reaper import ContextReaper

logger = logging.getLogger(__name__)

FALLBACK_DOMAIN = "general"


class ContextGate:
    """
    Main entry point: store contexts, then admit queries against them.

    Initialize with the asynchronous :meth:`ContextGate.create` classmethod,
    which also starts the expiry reaper. Use as an async context manager, or
    call :meth:`close` when done.

    Example::

        async with await ContextGate.create(overrides={"selector": {"strategy": "priority_based"}}) as gate:
            await gate.create_context("s1", "u1", "medical", "Pneumonia treatment guidelines", priority=8)
            result = await gate.process("u1", "s1", "How to treat pneumonia?", "medical")
    """

    config: ContextGateConfig
    monitor: MonitoringSystem
    store: ContextStore
    engine: SelectionEngine
    orchestrator: AdmissionOrchestrator
    reaper: ContextReaper
    search: SearchContextLoader

    def __init__(
        self,
        config: Optional[ContextGateConfig] = None,
        classifier: Optional[DomainClassifier] = None,
        web_search_client: Optional[SearchClient] = None,
        intelligent_search_client: Optional[SearchClient] = None,
        ai_client: Optional[AIClient] = None,
    ) -> None:
        """
        Build every component synchronously. Prefer :meth:`create`, which
        also loads the configuration and starts the reaper.
        """
        self.config = config or ContextGateConfig()
        self.classifier = classifier
        self.ai_client = ai_client

        self.monitor = MonitoringSystem(config=self.config.monitoring)
        self.store = ContextStore(config=self.config.store, monitor=self.monitor)
        self.engine = SelectionEngine(self.store, config=self.config.selector, monitor=self.monitor)
        self.orchestrator = AdmissionOrchestrator(self.engine, config=self.config.admission, monitor=self.monitor)
        self.reaper = ContextReaper(self.store, config=self.config.reaper, monitor=self.monitor)
        self.search = SearchContextLoader(
            self.store,
            web_search_client=web_search_client,
            intelligent_search_client=intelligent_search_client,
        )

    @classmethod
    async def create(
        cls,
        config: Optional[ContextGateConfig] = None,
        config_file_path: Optional[Union[str, Path]] = None,
        overrides: Optional[Dict[str, Any]] = None,
        env_prefix: Optional[str] = "CONTEXTGATE",
        classifier: Optional[DomainClassifier] = None,
        web_search_client: Optional[SearchClient] = None,
        intelligent_search_client: Optional[SearchClient] = None,
        ai_client: Optional[AIClient] = None,
        start_reaper: bool = True,
    ) -> "ContextGate":
        """
        Asynchronously creates and initializes a ContextGate instance.

        Args:
            config: A ready configuration; when given, the file, environment
                and overrides arguments are ignored.
            config_file_path: TOML file layered over the packaged defaults.
            overrides: Dictionary applied last.
            env_prefix: Prefix of environment overrides; None disables them.
            classifier: Supplies the domain when :meth:`process` gets none.
            web_search_client: Backs :meth:`create_context_from_web_search`.
            intelligent_search_client: Backs :meth:`create_context_from_intelligent_search`.
            ai_client: Backs :meth:`complete`.
            start_reaper: Start the periodic expiry reaper if enabled in config.

        Raises:
            ConfigError: If the configuration cannot be loaded or validated.
        """
        if config is None:
            config = load_config(config_file_path=config_file_path, overrides=overrides, env_prefix=env_prefix)
        instance = cls(
            config=config,
            classifier=classifier,
            web_search_client=web_search_client,
            intelligent_search_client=intelligent_search_client,
            ai_client=ai_client,
        )
        if start_reaper and config.reaper.enabled:
            await instance.reaper.start()
        logger.info("ContextGate components initialization complete.")
        return instance

    # ------------------------------------------------------------------
    # Context records
    # ------------------------------------------------------------------

    async def create_context(
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
        """Store a new context. See :meth:`ContextStore.create`."""
        return await self.store.create(
            session_id=session_id,
            user_id=user_id,
            domain=domain,
            content=content,
            priority=priority,
            ttl=ttl,
            metadata=metadata,
            tags=tags,
        )

    async def get_context(self, context_id: str) -> Optional[Context]:
        return await self.store.get(context_id)

    async def update_context(
        self,
        context_id: str,
        content: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        priority: Optional[int] = None,
    ) -> Context:
        return await self.store.update(context_id, content=content, metadata=metadata, priority=priority)

    async def delete_context(self, context_id: str) -> None:
        await self.store.delete(context_id)

    async def get_contexts_by_session(self, session_id: str) -> List[Context]:
        return await self.store.get_by_session(session_id)

    async def get_contexts_by_user(self, user_id: str) -> List[Context]:
        return await self.store.get_by_user(user_id)

    async def get_contexts_by_domain(self, domain: str) -> List[Context]:
        return await self.store.get_by_domain(domain)

    async def cleanup_expired(self) -> int:
        return await self.store.cleanup_expired()

    # ------------------------------------------------------------------
    # Selection and admission
    # ------------------------------------------------------------------

    async def select(self, user_id: str, session_id: str, query: str, domain: str) -> List[Context]:
        """Rank contexts directly, bypassing admission control."""
        return await self.engine.select(user_id, session_id, query, domain)

    async def classify_domain(self, text: str) -> str:
        """
        Domain label for ``text`` from the classifier, or ``"general"``.

        A missing classifier, a failing one or an empty answer all fall back
        to ``"general"``.
        """
        if self.classifier is None:
            return FALLBACK_DOMAIN
        try:
            domain = await resolve(self.classifier.classify(text))
        except Exception as e:
            logger.warning(f"Domain classification failed, using '{FALLBACK_DOMAIN}': {e}")
            return FALLBACK_DOMAIN
        return str(domain).strip() or FALLBACK_DOMAIN

    async def process(
        self, user_id: str, session_id: str, query: str, domain: Optional[str] = None
    ) -> RequestResult:
        """
        Admit ``query`` and return the selected contexts.

        When ``domain`` is None it is classified from the query first.
        See :meth:`AdmissionOrchestrator.process` for the failure modes.
        """
        if domain is None:
            domain = await self.classify_domain(query)
            logger.debug(f"Classified query into domain '{domain}'")
        return await self.orchestrator.process(user_id, session_id, query, domain)

    # ------------------------------------------------------------------
    # External collaborators
    # ------------------------------------------------------------------

    async def create_context_from_web_search(
        self, query: str, session_id: str, user_id: str, domain: str, ttl: Optional[TTL] = None
    ) -> Context:
        return await self.search.create_context_from_web_search(query, session_id, user_id, domain, ttl=ttl)

    async def create_context_from_intelligent_search(
        self, query: str, session_id: str, user_id: str, domain: str, ttl: Optional[TTL] = None
    ) -> Context:
        return await self.search.create_context_from_intelligent_search(query, session_id, user_id, domain, ttl=ttl)

    async def aggregate_web_search(self, queries: Sequence[str], max_results: int = 10) -> List[SearchResult]:
        """Merged, URL-deduplicated web search hits for several queries."""
        return await self.search.aggregate_web_search(queries, max_results=max_results)

    async def complete(
        self, result: RequestResult, system_prompt: Optional[str] = DEFAULT_SYSTEM_PROMPT
    ) -> CompletionResult:
        """
        Answer a processed request with the AI client.

        Raises:
            ExternalServiceError: If no AI client is configured or the call fails.
        """
        if self.ai_client is None:
            raise ExternalServiceError("ai-completion", "AI client not configured.")
        return await complete_with_context(self.ai_client, result, system_prompt)

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    async def stats(self) -> Dict[str, Any]:
        """Snapshot of every component, keyed by component name."""
        store_stats = await self.store.stats()
        return {
            "store": store_stats.model_dump(),
            "selector": self.engine.stats().model_dump(),
            "admission": self.orchestrator.stats().model_dump(),
            "reaper": self.reaper.stats(),
            "monitoring": self.monitor.get_system_summary(),
        }

    async def close(self) -> None:
        """Stop the reaper and release in-memory state."""
        logger.info("Closing ContextGate resources...")
        await self.reaper.stop()
        self.engine.clear_cache()
        logger.info("ContextGate resources cleanup complete.")

    async def __aenter__(self) -> "ContextGate":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
