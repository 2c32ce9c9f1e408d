# tests/observability/test_monitoring.py
"""
Tests for MonitoringSystem and the safe emission helpers.
"""

from unittest.mock import MagicMock

from contextgate.config.models import MonitoringConfig
from contextgate.observability.monitoring import (
    MetricName,
    MonitoringEventKind,
    MonitoringSink,
    MonitoringSystem,
    emit_event,
    emit_metric,
)


class TestRecording:
    def test_metrics_history_and_latest(self):
        monitor = MonitoringSystem()
        monitor.record_metric("request_latency_ms", 10)
        monitor.record_metric(MetricName.REQUEST_LATENCY_MS, 20)

        assert [s.value for s in monitor.get_metric_history("request_latency_ms")] == [10.0, 20.0]
        assert monitor.get_latest_metric(MetricName.REQUEST_LATENCY_MS).value == 20.0
        assert monitor.get_latest_metric("unknown") is None

    def test_sample_retention_bounded(self):
        monitor = MonitoringSystem(max_samples_per_metric=3)
        for value in range(10):
            monitor.record_metric("m", value)
        assert [s.value for s in monitor.get_metric_history("m")] == [7.0, 8.0, 9.0]

    def test_event_retention_bounded_but_counts_kept(self):
        monitor = MonitoringSystem(max_events=2)
        for i in range(5):
            monitor.log_event("context_created", context_id=str(i))

        events = monitor.get_recent_events()
        assert [e.fields["context_id"] for e in events] == ["3", "4"]
        assert monitor.event_count("context_created") == 5

    def test_recent_events_filtered_by_kind(self):
        monitor = MonitoringSystem()
        monitor.log_event(MonitoringEventKind.CACHE_ACCESS, hit=True)
        monitor.log_event(MonitoringEventKind.CONTEXT_CREATED, context_id="a")
        monitor.log_event(MonitoringEventKind.CACHE_ACCESS, hit=False)

        events = monitor.get_recent_events(count=10, kind="cache_access")
        assert [e.fields["hit"] for e in events] == [True, False]
        assert monitor.get_recent_events(count=0) == []

    def test_disabled_is_noop(self):
        monitor = MonitoringSystem(enabled=False)
        monitor.record_metric("m", 1)
        monitor.log_event("e")
        assert monitor.get_latest_metric("m") is None
        assert monitor.event_count("e") == 0

    def test_reset(self):
        monitor = MonitoringSystem()
        monitor.record_metric("m", 1)
        monitor.log_event("e")
        monitor.reset()
        assert monitor.get_metric_history("m") == []
        assert monitor.get_system_summary()["total_events"] == 0

    def test_satisfies_sink_protocol(self):
        assert isinstance(MonitoringSystem(), MonitoringSink)


class TestThresholds:
    def test_ceiling_and_floor_breaches(self):
        monitor = MonitoringSystem(config=MonitoringConfig())
        monitor.record_metric("request_latency_ms", 900)
        monitor.record_metric("error_rate", 0.01)
        monitor.record_metric("cache_hit_rate", 0.2)

        alerts = monitor.check_thresholds()
        assert len(alerts) == 2
        assert any("request_latency_ms" in a and "exceeds" in a for a in alerts)
        assert any("cache_hit_rate" in a and "below" in a for a in alerts)
        assert monitor.event_count("performance_alert") == 2

    def test_no_samples_no_alerts(self):
        assert MonitoringSystem().check_thresholds() == []

    def test_set_threshold(self):
        monitor = MonitoringSystem(thresholds={})
        monitor.set_threshold("concurrent_requests", 5)
        monitor.record_metric("concurrent_requests", 6)
        assert len(monitor.check_thresholds()) == 1

        monitor.set_threshold("concurrent_requests", 10, floor=True)
        assert len(monitor.check_thresholds()) == 1


class TestSummary:
    def test_summary_aggregates(self):
        monitor = MonitoringSystem()
        monitor.record_metric("request_latency_ms", 10)
        monitor.record_metric("request_latency_ms", 30)
        monitor.log_event("cache_access", hit=True)
        monitor.log_event("cache_access", hit=False)
        monitor.log_event("request_processed", success=True)
        monitor.log_event("request_processed", success=True)
        monitor.log_event("request_processed", success=True)
        monitor.log_event("request_processed", success=False)
        monitor.log_event("rate_limit_triggered", user_id="u1")

        summary = monitor.get_system_summary()
        assert summary["avg_request_latency_ms"] == 20
        assert summary["avg_context_selection_time_ms"] == 0.0
        assert summary["cache_hit_rate"] == 0.5
        assert summary["error_rate"] == 0.25
        assert summary["total_requests_processed"] == 4
        assert summary["rate_limit_triggers"] == 1
        assert summary["total_events"] == 7


class TestEmitHelpers:
    def test_none_sink_ignored(self):
        emit_metric(None, "m", 1)
        emit_event(None, "e")

    def test_enum_names_converted(self):
        sink = MagicMock()
        emit_metric(sink, MetricName.ERROR_RATE, 0.5)
        emit_event(sink, MonitoringEventKind.CACHE_ACCESS, hit=True)
        sink.record_metric.assert_called_once_with("error_rate", 0.5)
        sink.log_event.assert_called_once_with("cache_access", hit=True)

    def test_sink_failures_swallowed_and_logged(self, caplog):
        sink = MagicMock()
        sink.record_metric.side_effect = RuntimeError("down")
        sink.log_event.side_effect = RuntimeError("down")

        emit_metric(sink, "m", 1)
        emit_event(sink, "e")
        assert "Monitoring sink failed" in caplog.text
