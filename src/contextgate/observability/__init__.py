# src/contextgate/observability/__init__.py
"""
Observability for ContextGate: the monitoring sink the core reports into.
"""

from .monitoring import (
    MetricName,
    MetricSample,
    MonitoringEvent,
    MonitoringEventKind,
    MonitoringSink,
    MonitoringSystem,
    emit_event,
    emit_metric,
)

__all__ = [
    "MetricName",
    "MetricSample",
    "MonitoringEvent",
    "MonitoringEventKind",
    "MonitoringSink",
    "MonitoringSystem",
    "emit_event",
    "emit_metric",
]
