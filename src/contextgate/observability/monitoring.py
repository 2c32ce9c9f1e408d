# src/contextgate/observability/monitoring.py
"""
In-process monitoring sink for ContextGate.

The store, the selection engine and the admission orchestrator report
``{metric_name, value}`` samples and ``{event_kind, fields, timestamp}``
records into a sink. The core never reads the sink back and never lets a
sink failure escape into a request: emission goes through
:func:`emit_metric` / :func:`emit_event`, which log and drop errors.

Events emitted by the core:

    context_created       context_id, domain, priority
    context_selected      query_length, selected_count, duration_ms, cached
    cache_access          hit, key_type
    request_processed     user_id, session_id, duration_ms, success, stage
    rate_limit_triggered  user_id, limit
    performance_alert     metric, value, threshold   (from check_thresholds)

Usage::

    monitor = MonitoringSystem()
    store = ContextStore(monitor=monitor)
    ...
    for alert in monitor.check_thresholds():
        print(alert)
    print(monitor.get_system_summary())
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import defaultdict, deque
from datetime import datetime
from enum import Enum
from statistics import mean
from typing import Any, Deque, Dict, Iterable, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from ..config.models import MonitoringConfig
from ..models import utcnow

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS & MODELS
# =============================================================================


class MonitoringEventKind(str, Enum):
    """Kinds of events emitted by the core."""

    CONTEXT_CREATED = "context_created"
    CONTEXT_SELECTED = "context_selected"
    CACHE_ACCESS = "cache_access"
    REQUEST_PROCESSED = "request_processed"
    RATE_LIMIT_TRIGGERED = "rate_limit_triggered"
    PERFORMANCE_ALERT = "performance_alert"


class MetricName(str, Enum):
    """Metric names recorded by the core."""

    REQUEST_LATENCY_MS = "request_latency_ms"
    CONTEXT_SELECTION_TIME_MS = "context_selection_time_ms"
    CACHE_HIT_RATE = "cache_hit_rate"
    ERROR_RATE = "error_rate"
    CONCURRENT_REQUESTS = "concurrent_requests"
    CONTEXTS_REAPED = "contexts_reaped"


class MonitoringEvent(BaseModel):
    """A structured event record."""

    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: str
    fields: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


class MetricSample(BaseModel):
    """A single recorded metric value."""

    name: str
    value: float
    timestamp: datetime = Field(default_factory=utcnow)


@runtime_checkable
class MonitoringSink(Protocol):
    """Anything that accepts metric samples and events."""

    def record_metric(self, name: str, value: float) -> None: ...

    def log_event(self, kind: str, **fields: Any) -> None: ...


# =============================================================================
# SAFE EMISSION
# =============================================================================


def _name(value: Any) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def emit_metric(sink: Optional[MonitoringSink], name: Any, value: float) -> None:
    """Record a metric on ``sink`` if one is configured; sink errors are logged, not raised."""
    if sink is None:
        return
    try:
        sink.record_metric(_name(name), value)
    except Exception as e:
        logger.warning(f"Monitoring sink failed to record metric '{_name(name)}': {e}")


def emit_event(sink: Optional[MonitoringSink], kind: Any, **fields: Any) -> None:
    """Log an event on ``sink`` if one is configured; sink errors are logged, not raised."""
    if sink is None:
        return
    try:
        sink.log_event(_name(kind), **fields)
    except Exception as e:
        logger.warning(f"Monitoring sink failed to log event '{_name(kind)}': {e}")


# =============================================================================
# MONITORING SYSTEM
# =============================================================================


class MonitoringSystem:
    """
    Bounded in-memory store of metric samples and events.

    Only the most recent ``max_samples_per_metric`` samples per metric and
    ``max_events`` events are kept. All methods are synchronous and guarded
    by a single lock, so the sink is safe to call from tasks and threads
    alike and never suspends the caller.

    Args:
        max_events: Number of events retained.
        max_samples_per_metric: Number of samples retained per metric.
        thresholds: Alert thresholds by metric name.
        floor_metrics: Metrics that alert when they fall below their threshold.
        enabled: When False, every record call is a no-op.
        config: Optional configuration object (overrides other params).
    """

    def __init__(
        self,
        max_events: int = 1000,
        max_samples_per_metric: int = 1000,
        thresholds: Optional[Dict[str, float]] = None,
        floor_metrics: Optional[Iterable[str]] = None,
        enabled: bool = True,
        config: Optional[MonitoringConfig] = None,
    ) -> None:
        if config is None:
            config = MonitoringConfig()
            if thresholds is not None:
                config.thresholds = dict(thresholds)
            if floor_metrics is not None:
                config.floor_metrics = list(floor_metrics)
            config.max_events = max_events
            config.max_samples_per_metric = max_samples_per_metric
            config.enabled = enabled

        self.enabled = config.enabled
        self.max_events = config.max_events
        self.max_samples_per_metric = config.max_samples_per_metric
        self._thresholds: Dict[str, float] = dict(config.thresholds)
        self._floor_metrics = set(config.floor_metrics)

        self._lock = threading.Lock()
        self._metrics: Dict[str, Deque[MetricSample]] = defaultdict(
            lambda: deque(maxlen=self.max_samples_per_metric)
        )
        self._events: Deque[MonitoringEvent] = deque(maxlen=self.max_events)
        self._event_counts: Dict[str, int] = defaultdict(int)

    # ------------------------------------------------------------------
    # Sink API
    # ------------------------------------------------------------------

    def record_metric(self, name: str, value: float) -> None:
        if not self.enabled:
            return
        sample = MetricSample(name=_name(name), value=float(value))
        with self._lock:
            self._metrics[sample.name].append(sample)

    def log_event(self, kind: str, **fields: Any) -> None:
        if not self.enabled:
            return
        event = MonitoringEvent(kind=_name(kind), fields=fields)
        with self._lock:
            self._events.append(event)
            self._event_counts[event.kind] += 1

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_latest_metric(self, name: str) -> Optional[MetricSample]:
        """Most recent sample of ``name``, or None if never recorded."""
        with self._lock:
            samples = self._metrics.get(_name(name))
            return samples[-1] if samples else None

    def get_metric_history(self, name: str) -> List[MetricSample]:
        """All retained samples of ``name``, oldest first."""
        with self._lock:
            return list(self._metrics.get(_name(name), ()))

    def get_recent_events(self, count: int = 50, kind: Optional[str] = None) -> List[MonitoringEvent]:
        """
        The last ``count`` events, oldest first, optionally only those of ``kind``.
        """
        with self._lock:
            events = list(self._events)
        if kind is not None:
            events = [e for e in events if e.kind == _name(kind)]
        if count <= 0:
            return []
        return events[-count:]

    def event_count(self, kind: str) -> int:
        """Total events of ``kind`` ever logged, including ones no longer retained."""
        with self._lock:
            return self._event_counts.get(_name(kind), 0)

    def set_threshold(self, name: str, value: float, floor: bool = False) -> None:
        """Set (or replace) the alert threshold for a metric."""
        with self._lock:
            self._thresholds[_name(name)] = value
            if floor:
                self._floor_metrics.add(_name(name))
            else:
                self._floor_metrics.discard(_name(name))

    def check_thresholds(self) -> List[str]:
        """
        Compare the latest sample of each thresholded metric to its threshold.

        Every breach is returned as a human-readable alert and also logged as
        a ``performance_alert`` event.

        Returns:
            Alert messages, one per breached threshold.
        """
        breaches: List[tuple[str, float, float]] = []
        with self._lock:
            for name, threshold in self._thresholds.items():
                samples = self._metrics.get(name)
                if not samples:
                    continue
                value = samples[-1].value
                if name in self._floor_metrics:
                    breached = value < threshold
                else:
                    breached = value > threshold
                if breached:
                    breaches.append((name, value, threshold))

        alerts = []
        for name, value, threshold in breaches:
            direction = "below" if name in self._floor_metrics else "exceeds"
            alerts.append(f"Performance alert: {name} ({value:.3f}) {direction} threshold ({threshold:.3f})")
            self.log_event(
                MonitoringEventKind.PERFORMANCE_ALERT, metric=name, value=value, threshold=threshold
            )
        if alerts:
            logger.warning(f"{len(alerts)} performance threshold(s) breached")
        return alerts

    def get_system_summary(self) -> Dict[str, Any]:
        """
        Aggregate view over the retained metrics and events.

        Returns:
            Dictionary with averages of request latency and selection time,
            the cache hit rate and error rate derived from events, and
            counters for processed requests, rate-limit triggers, created
            contexts and alerts.
        """
        with self._lock:
            latencies = [s.value for s in self._metrics.get(MetricName.REQUEST_LATENCY_MS.value, ())]
            selection_times = [
                s.value for s in self._metrics.get(MetricName.CONTEXT_SELECTION_TIME_MS.value, ())
            ]
            events = list(self._events)
            counts = dict(self._event_counts)

        cache_events = [e for e in events if e.kind == MonitoringEventKind.CACHE_ACCESS.value]
        cache_hits = sum(1 for e in cache_events if e.fields.get("hit"))
        request_events = [e for e in events if e.kind == MonitoringEventKind.REQUEST_PROCESSED.value]
        failed = sum(1 for e in request_events if not e.fields.get("success", True))

        return {
            "avg_request_latency_ms": mean(latencies) if latencies else 0.0,
            "avg_context_selection_time_ms": mean(selection_times) if selection_times else 0.0,
            "cache_hit_rate": cache_hits / len(cache_events) if cache_events else 0.0,
            "error_rate": failed / len(request_events) if request_events else 0.0,
            "total_requests_processed": counts.get(MonitoringEventKind.REQUEST_PROCESSED.value, 0),
            "rate_limit_triggers": counts.get(MonitoringEventKind.RATE_LIMIT_TRIGGERED.value, 0),
            "contexts_created": counts.get(MonitoringEventKind.CONTEXT_CREATED.value, 0),
            "performance_alerts": counts.get(MonitoringEventKind.PERFORMANCE_ALERT.value, 0),
            "total_events": sum(counts.values()),
        }

    def reset(self) -> None:
        """Discard all samples, events and counters."""
        with self._lock:
            self._metrics.clear()
            self._events.clear()
            self._event_counts.clear()
