# src/contextgate/processing/orchestrator.py
"""
Admission Orchestrator - gates concurrent requests and drives selection.

Every call to :meth:`AdmissionOrchestrator.process` walks the stages::

    Started -> RateChecked -> PermitAcquired -> Selecting -> Completed

with a classified failure at each arrow:

- rate check (if enabled): :class:`RateLimitExceededError`; no permit is
  consumed by a rejected request
- permit acquisition from a fixed pool of ``max_concurrent_requests``:
  the whole call is bounded by ``request_timeout_seconds``, so an expired
  wait raises :class:`StageTimeoutError` with stage ``request``; an empty
  pool raises :class:`ResourceUnavailableError`
- selection, bounded by ``context_selection_timeout_seconds``:
  :class:`StageTimeoutError` with stage ``context_selection``; any other
  failure is wrapped in :class:`SelectionFailedError`

The permit is released on every exit path once acquired. Nothing is
retried internally.

Example::

    orchestrator = AdmissionOrchestrator(engine, AdmissionConfig(max_concurrent_requests=10))
    result = await orchestrator.process("u1", "s1", "How to treat pneumonia?", "medical")
    for ctx in result.selected_contexts:
        print(ctx.priority, ctx.content)
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

from ..config.models import AdmissionConfig
from ..exceptions import (
    ConfigError,
    ContextGateError,
    RateLimitExceededError,
    RequestStage,
    ResourceUnavailableError,
    SelectionFailedError,
    StageTimeoutError,
)
from ..models import AdmissionStats, RequestResult
from ..observability.monitoring import (
    MetricName,
    MonitoringEventKind,
    MonitoringSink,
    emit_event,
    emit_metric,
)
from ..selection.engine import SelectionEngine
from .rate_limiter import UserRateLimiter

logger = logging.getLogger(__name__)


class AdmissionOrchestrator:
    """
    Admission control, per-user rate limiting and staged timeouts around
    the selection engine.

    Args:
        engine: The selection engine to drive.
        config: Concurrency, timeout and rate-limit settings.
        rate_clock: Monotonic clock for the rate limiter; injectable for tests.
        monitor: Optional sink for request and rate-limit events.
    """

    def __init__(
        self,
        engine: SelectionEngine,
        config: Optional[AdmissionConfig] = None,
        rate_clock: Optional[Callable[[], float]] = None,
        monitor: Optional[MonitoringSink] = None,
    ) -> None:
        self.engine = engine
        self._config = (config or AdmissionConfig()).model_copy()
        self._monitor = monitor
        self._permits = asyncio.Semaphore(self._config.max_concurrent_requests)
        self._rate_limiter = UserRateLimiter(
            max_requests=self._config.max_requests_per_minute,
            window_seconds=self._config.rate_window_seconds,
            clock=rate_clock,
        )

        self._active = 0
        self._completed = 0
        self._failed = 0
        self._rate_limited = 0

        logger.debug(
            f"AdmissionOrchestrator initialized: max_concurrent={self._config.max_concurrent_requests}, "
            f"request_timeout={self._config.request_timeout_seconds}s, "
            f"selection_timeout={self._config.context_selection_timeout_seconds}s, "
            f"rate_limit={self._config.max_requests_per_minute if self._config.enable_rate_limiting else 'off'}"
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_config(self) -> AdmissionConfig:
        """A copy of the active configuration."""
        return self._config.model_copy()

    def update_config(self, config: AdmissionConfig) -> None:
        """
        Replace timeouts and rate-limit settings.

        Raises:
            ConfigError: If ``max_concurrent_requests`` differs from the
                current value; the permit pool is sized once at construction.
        """
        if config.max_concurrent_requests != self._config.max_concurrent_requests:
            raise ConfigError(
                "max_concurrent_requests cannot change at runtime "
                f"(current {self._config.max_concurrent_requests}, requested {config.max_concurrent_requests})"
            )
        self._config = config.model_copy()
        self._rate_limiter.max_requests = config.max_requests_per_minute
        self._rate_limiter.window_seconds = config.rate_window_seconds
        logger.info("Admission configuration updated")

    @property
    def rate_limiter(self) -> UserRateLimiter:
        return self._rate_limiter

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process(self, user_id: str, session_id: str, query: str, domain: str) -> RequestResult:
        """
        Admit a request and select its contexts.

        Returns:
            The assembled :class:`RequestResult`.

        Raises:
            RateLimitExceededError: The user is over the limit (no permit consumed).
            ResourceUnavailableError: The permit pool is empty by configuration.
            StageTimeoutError: The request or selection stage ran out of time.
            SelectionFailedError: The selection stage raised unexpectedly.
        """
        started = time.perf_counter()
        config = self._config

        if config.enable_rate_limiting:
            try:
                await self._rate_limiter.check_and_record(user_id)
            except RateLimitExceededError:
                self._rate_limited += 1
                logger.warning(
                    f"Rate limit exceeded for user '{user_id}' "
                    f"({config.max_requests_per_minute} per {config.rate_window_seconds}s)"
                )
                emit_event(
                    self._monitor,
                    MonitoringEventKind.RATE_LIMIT_TRIGGERED,
                    user_id=user_id,
                    limit=config.max_requests_per_minute,
                )
                raise

        try:
            result = await self._admit_and_select(config, user_id, session_id, query, domain, started)
        except ContextGateError as e:
            self._failed += 1
            self._record_request(user_id, session_id, started, success=False, error=e)
            raise

        self._completed += 1
        self._record_request(user_id, session_id, started, success=True)
        return result

    async def _acquire_permit(self, timeout: float) -> None:
        """
        Take one admission permit within ``timeout`` seconds.

        A permit granted in the same instant the timeout fires (or the caller
        is cancelled) is handed straight back, so the pool never shrinks.
        """
        acquire = asyncio.ensure_future(self._permits.acquire())
        try:
            await asyncio.wait_for(asyncio.shield(acquire), timeout=timeout)
        except (asyncio.TimeoutError, asyncio.CancelledError):
            if acquire.done() and not acquire.cancelled():
                self._permits.release()
            else:
                acquire.cancel()
            raise

    async def _admit_and_select(
        self,
        config: AdmissionConfig,
        user_id: str,
        session_id: str,
        query: str,
        domain: str,
        started: float,
    ) -> RequestResult:
        if config.max_concurrent_requests <= 0:
            raise ResourceUnavailableError("Admission permit pool has no capacity.")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + config.request_timeout_seconds

        try:
            await self._acquire_permit(config.request_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"Request from user '{user_id}' timed out waiting for an admission permit")
            raise StageTimeoutError(RequestStage.REQUEST, config.request_timeout_seconds)

        self._active += 1
        emit_metric(self._monitor, MetricName.CONCURRENT_REQUESTS, self._active)
        try:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise StageTimeoutError(RequestStage.REQUEST, config.request_timeout_seconds)

            # Whichever budget is tighter decides which stage a timeout is blamed on.
            if config.context_selection_timeout_seconds <= remaining:
                stage, budget = RequestStage.CONTEXT_SELECTION, config.context_selection_timeout_seconds
            else:
                stage, budget = RequestStage.REQUEST, remaining

            try:
                selected = await asyncio.wait_for(
                    self.engine.select(user_id, session_id, query, domain), timeout=budget
                )
            except asyncio.TimeoutError:
                logger.warning(f"Stage '{stage.value}' timed out after {budget:.3f}s for user '{user_id}'")
                raise StageTimeoutError(
                    stage,
                    config.context_selection_timeout_seconds
                    if stage is RequestStage.CONTEXT_SELECTION
                    else config.request_timeout_seconds,
                )
            except Exception as e:
                logger.error(f"Context selection failed for user '{user_id}': {e}", exc_info=True)
                raise SelectionFailedError(f"Context selection failed: {e}") from e

            return RequestResult(
                user_id=user_id,
                session_id=session_id,
                query=query,
                domain=domain,
                selected_contexts=selected,
                processing_time_ms=(time.perf_counter() - started) * 1000,
            )
        finally:
            self._active -= 1
            self._permits.release()

    def _record_request(
        self,
        user_id: str,
        session_id: str,
        started: float,
        success: bool,
        error: Optional[ContextGateError] = None,
    ) -> None:
        duration_ms = (time.perf_counter() - started) * 1000
        if success:
            emit_metric(self._monitor, MetricName.REQUEST_LATENCY_MS, duration_ms)
        total = self._completed + self._failed
        emit_metric(self._monitor, MetricName.ERROR_RATE, self._failed / total if total else 0.0)
        emit_event(
            self._monitor,
            MonitoringEventKind.REQUEST_PROCESSED,
            user_id=user_id,
            session_id=session_id,
            duration_ms=duration_ms,
            success=success,
            error=type(error).__name__ if error else None,
            stage=getattr(getattr(error, "stage", None), "value", None),
        )

    async def cleanup_rate_limits(self) -> int:
        """Forget users whose rate-limit window has elapsed."""
        return await self._rate_limiter.cleanup_expired()

    def stats(self) -> AdmissionStats:
        """Snapshot of permits, tracked users and request counters."""
        config = self._config
        return AdmissionStats(
            active_requests=self._active,
            max_concurrent_requests=config.max_concurrent_requests,
            available_permits=max(config.max_concurrent_requests - self._active, 0),
            total_users_tracked=self._rate_limiter.tracked_users,
            rate_limit_enabled=config.enable_rate_limiting,
            max_requests_per_minute=config.max_requests_per_minute,
            completed_requests=self._completed,
            failed_requests=self._failed,
            rate_limited_requests=self._rate_limited,
        )
