# src/contextgate/processing/__init__.py
"""
Request admission: per-user rate limiting, the permit pool and staged timeouts.
"""

from .orchestrator import AdmissionOrchestrator
from .rate_limiter import RateWindow, UserRateLimiter

__all__ = ["AdmissionOrchestrator", "RateWindow", "UserRateLimiter"]
