# tests/conftest.py
"""
Shared fixtures for ContextGate tests.

Provides controllable clocks so TTL, recency, cache and rate-window
behavior can be tested without sleeping, plus pre-wired component
instances.
"""

from datetime import datetime, timedelta, timezone

import pytest

from contextgate.config.models import AdmissionConfig, SelectorConfig
from contextgate.observability.monitoring import MonitoringSystem
from contextgate.selection.engine import SelectionEngine
from contextgate.store.context_store import ContextStore


class FakeClock:
    """Wall clock returning a fixed aware UTC datetime until advanced."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeMonotonic:
    """Monotonic clock in seconds, advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mono_clock():
    return FakeMonotonic()


@pytest.fixture
def monitor():
    return MonitoringSystem()


@pytest.fixture
def store(clock):
    """A store with a one-hour default TTL driven by the fake clock."""
    return ContextStore(default_ttl_seconds=3600, clock=clock)


@pytest.fixture
def make_engine(store, clock, mono_clock):
    """Factory building a SelectionEngine over the shared store."""

    def _make(**config_kwargs) -> SelectionEngine:
        config_kwargs.setdefault("enable_cache", False)
        return SelectionEngine(
            store,
            config=SelectorConfig(**config_kwargs),
            clock=clock,
            cache_clock=mono_clock,
        )

    return _make


@pytest.fixture
def admission_config():
    return AdmissionConfig(
        max_concurrent_requests=4,
        request_timeout_seconds=2.0,
        context_selection_timeout_seconds=1.0,
        enable_rate_limiting=True,
        max_requests_per_minute=100,
    )
