# src/contextgate/processing/rate_limiter.py
"""
Per-user reset-window rate limiter.

Each user has a ``(count, last_seen)`` pair. A request is rejected when the
window since ``last_seen`` is still open and ``count`` has already reached
the limit. Otherwise the count resets to 1 if the window has elapsed, or
increments if not, and ``last_seen`` moves to now.

The check happens before the increment, so with a limit of ``m`` the
``(m+1)``-th request inside one window is the one rejected. A rejected
request does not touch ``last_seen``. This is a reset-on-expiry window,
not a sliding log.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ..exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)


@dataclass
class RateWindow:
    """Request counter of one user."""

    count: int
    last_seen: float


class UserRateLimiter:
    """
    Tracks request counts per user and rejects users over their allowance.

    Args:
        max_requests: Requests allowed per user inside one window.
        window_seconds: Length of the window (default 60).
        clock: Monotonic clock in seconds; injectable for tests.
    """

    def __init__(
        self,
        max_requests: int = 1000,
        window_seconds: float = 60,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock or time.monotonic
        self._windows: Dict[str, RateWindow] = {}
        self._lock = asyncio.Lock()

    async def check_and_record(self, user_id: str) -> int:
        """
        Admit one request for ``user_id`` or reject it.

        Returns:
            The user's request count in the current window, this request included.

        Raises:
            RateLimitExceededError: If the user already reached the limit
                within the open window.
        """
        async with self._lock:
            now = self._clock()
            window = self._windows.get(user_id)
            window_open = window is not None and now - window.last_seen < self.window_seconds

            if window_open and window.count >= self.max_requests:
                raise RateLimitExceededError(user_id, self.max_requests)

            if window_open:
                window.count += 1
                window.last_seen = now
            else:
                window = RateWindow(count=1, last_seen=now)
                self._windows[user_id] = window
            return window.count

    def get_window(self, user_id: str) -> Optional[RateWindow]:
        """The user's current counter, or None if the user is not tracked."""
        window = self._windows.get(user_id)
        return RateWindow(window.count, window.last_seen) if window else None

    async def cleanup_expired(self) -> int:
        """
        Forget users whose window has elapsed.

        Returns:
            Number of users dropped.
        """
        async with self._lock:
            now = self._clock()
            stale = [
                user for user, w in self._windows.items() if now - w.last_seen >= self.window_seconds
            ]
            for user in stale:
                del self._windows[user]
        if stale:
            logger.debug(f"Dropped {len(stale)} idle rate-limit windows")
        return len(stale)

    async def reset(self, user_id: Optional[str] = None) -> None:
        """Forget one user's counter, or every counter when ``user_id`` is None."""
        async with self._lock:
            if user_id is None:
                self._windows.clear()
            else:
                self._windows.pop(user_id, None)

    @property
    def tracked_users(self) -> int:
        return len(self._windows)
