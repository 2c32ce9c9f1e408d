# src/contextgate/store/reaper.py
"""
Periodic reaping of expired contexts.

The context store hides expired records lazily but only frees them when
``cleanup_expired()`` runs. Without a timer, memory grows with every
context ever created. :class:`ContextReaper` is that timer: an asyncio task
calling ``cleanup_expired()`` at a fixed interval.

Example:
    reaper = ContextReaper(store, interval_seconds=60)
    await reaper.start()
    ...
    await reaper.stop()
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from ..config.models import ReaperConfig
from ..logging_config import log_display
from ..models import utcnow
from ..observability.monitoring import MetricName, MonitoringSink, emit_metric
from .context_store import ContextStore

logger = logging.getLogger(__name__)


class ContextReaper:
    """
    Runs ``ContextStore.cleanup_expired()`` every ``interval_seconds``.

    A failing pass is logged and recorded in ``last_error``; the loop keeps
    running.
    """

    def __init__(
        self,
        store: ContextStore,
        interval_seconds: float = 60,
        config: Optional[ReaperConfig] = None,
        monitor: Optional[MonitoringSink] = None,
    ) -> None:
        if config is not None:
            interval_seconds = config.interval_seconds
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.store = store
        self.interval_seconds = interval_seconds
        self._monitor = monitor
        self._loop_task: Optional[asyncio.Task] = None
        self._running = False

        self.runs = 0
        self.total_reaped = 0
        self.last_run_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """
        Start the reaping loop.

        Idempotent; calling it twice is safe.
        """
        if self._running:
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._reap_loop())
        logger.info(f"Context reaper started (interval: {self.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the reaping loop, waiting for the task to finish."""
        self._running = False
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        logger.info("Context reaper stopped")

    async def run_once(self) -> int:
        """
        Run a single cleanup pass immediately.

        Returns:
            Number of contexts removed.
        """
        removed = await self.store.cleanup_expired()
        self.runs += 1
        self.total_reaped += removed
        self.last_run_at = utcnow()
        self.last_error = None
        emit_metric(self._monitor, MetricName.CONTEXTS_REAPED, removed)
        if removed:
            log_display(logger, logging.INFO, f"Reaped {removed} expired contexts")
        return removed

    async def _reap_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.last_error = str(e)
                logger.error(f"Context reaper pass failed: {e}", exc_info=True)

    def stats(self) -> Dict[str, Any]:
        """Counters describing past passes."""
        return {
            "running": self._running,
            "interval_seconds": self.interval_seconds,
            "runs": self.runs,
            "total_reaped": self.total_reaped,
            "last_run_at": self.last_run_at,
            "last_error": self.last_error,
        }
