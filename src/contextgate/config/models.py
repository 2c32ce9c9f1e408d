# src/contextgate/config/models.py
"""
Pydantic models for ContextGate configuration validation.

Each section of the configuration file maps to one model below. The
components accept these models in their constructors, so every tunable
(TTL, concurrency cap, rate limit, selection strategy, relevance threshold)
is passed in explicitly rather than read from process-wide state.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..models import ContextSelectionStrategy


class ContextStoreConfig(BaseModel):
    """
    Context store configuration.

    A ``default_ttl_seconds`` of None or 0 stores contexts that never expire
    unless ``create`` is given an explicit TTL.
    """

    default_ttl_seconds: Optional[float] = Field(
        default=3600, ge=0, description="TTL applied when create() gets no ttl (None/0 = never expires)"
    )

    @field_validator("default_ttl_seconds")
    @classmethod
    def zero_means_never(cls, v: Optional[float]) -> Optional[float]:
        return v or None


class SelectorConfig(BaseModel):
    """Selection engine configuration."""

    model_config = ConfigDict(validate_assignment=True)

    strategy: ContextSelectionStrategy = Field(
        ContextSelectionStrategy.HYBRID, description="Ranking strategy"
    )
    max_results: int = Field(5, ge=0, description="Maximum contexts returned per selection")
    min_relevance_score: float = Field(
        0.3, ge=0.0, le=1.0, description="Threshold for relevance and hybrid strategies"
    )
    enable_cache: bool = Field(True, description="Cache results keyed by (query, domain, user_id, session_id)")
    cache_ttl_seconds: float = Field(300, gt=0, description="Lifetime of a cached selection")


class AdmissionConfig(BaseModel):
    """Admission orchestrator configuration."""

    model_config = ConfigDict(validate_assignment=True)

    max_concurrent_requests: int = Field(100, ge=0, description="Size of the permit pool")
    request_timeout_seconds: float = Field(30, gt=0, description="Bound on the whole process() call")
    context_selection_timeout_seconds: float = Field(5, gt=0, description="Bound on the selection stage")
    enable_rate_limiting: bool = Field(True, description="Enable per-user rate limiting")
    max_requests_per_minute: int = Field(1000, ge=1, description="Requests allowed per user per window")
    rate_window_seconds: float = Field(60, gt=0, description="Length of the rate-limit window")

    @model_validator(mode="after")
    def check_stage_timeouts(self) -> "AdmissionConfig":
        """The selection stage cannot be given more time than the whole request."""
        if self.context_selection_timeout_seconds > self.request_timeout_seconds:
            raise ValueError(
                "context_selection_timeout_seconds must not exceed request_timeout_seconds"
            )
        return self


class MonitoringConfig(BaseModel):
    """
    Monitoring sink configuration.

    ``thresholds`` maps a metric name to its alert threshold. Metrics listed
    in ``floor_metrics`` alert when they fall *below* the threshold; all
    others alert when they rise above it.
    """

    enabled: bool = Field(True, description="Emit metrics and events")
    max_events: int = Field(1000, ge=1, description="Events retained in memory")
    max_samples_per_metric: int = Field(1000, ge=1, description="Samples retained per metric")
    thresholds: Dict[str, float] = Field(
        default_factory=lambda: {
            "request_latency_ms": 500.0,
            "context_selection_time_ms": 200.0,
            "error_rate": 0.05,
            "cache_hit_rate": 0.8,
        }
    )
    floor_metrics: list[str] = Field(default_factory=lambda: ["cache_hit_rate"])


class ReaperConfig(BaseModel):
    """Periodic cleanup of expired contexts."""

    enabled: bool = Field(True, description="Run cleanup_expired() on a timer")
    interval_seconds: float = Field(60, gt=0, description="Seconds between cleanup passes")


class ContextGateConfig(BaseModel):
    """Root configuration, one attribute per TOML section."""

    store: ContextStoreConfig = Field(default_factory=ContextStoreConfig)
    selector: SelectorConfig = Field(default_factory=SelectorConfig)
    admission: AdmissionConfig = Field(default_factory=AdmissionConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    reaper: ReaperConfig = Field(default_factory=ReaperConfig)
    logging: Dict[str, Any] = Field(default_factory=dict, description="Passed to configure_logging()")
