"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- State is lost on restart.
- Check-and-increment happens under a lock, so a key's count never exceeds
  the limit within a window.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from relay.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult


@dataclass
class _Window:
    start: int
    count: int = 0


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Counts requests per key within fixed, clock-aligned windows.

    With ``limit=100`` and ``window_seconds=900`` a client may make 100
    requests between 12:00:00 and 12:14:59; the 101st is blocked until 12:15.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            limit: Maximum number of allowed units per window.
            window_seconds: Size of the fixed window in seconds.
            clock: Time source returning UNIX time in seconds.

        Raises:
            ValueError: If limit or window_seconds are invalid.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        self._limit = limit
        self._window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, _Window] = {}
        self._pruned_start: int | None = None

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    def _window_start(self, now: float) -> int:
        return int(now // self._window_seconds) * self._window_seconds

    def _prune_locked(self, current_start: int) -> None:
        self._pruned_start = current_start
        stale = [key for key, window in self._windows.items() if window.start < current_start]
        for key in stale:
            del self._windows[key]

    async def consume(self, key: str, *, cost: int = 1) -> RateLimitResult:
        """Consume budget for ``key`` in the current window.

        Raises:
            ValueError: If key is empty or cost is invalid.
        """
        if cost < 1:
            raise ValueError("cost must be >= 1")
        if not key:
            raise ValueError("key must be a non-empty string")

        now = self._clock()
        start = self._window_start(now)
        reset_at = start + self._window_seconds

        with self._lock:
            window = self._windows.get(key)
            if window is None or window.start != start:
                # Expired state only appears when the window rolls over
                if self._pruned_start != start:
                    self._prune_locked(start)
                window = self._windows[key] = _Window(start=start)

            if window.count + cost <= self._limit:
                window.count += cost
                return RateLimitResult(
                    allowed=True,
                    limit=self._limit,
                    remaining=self._limit - window.count,
                    reset_at=reset_at,
                )

            return RateLimitResult(
                allowed=False,
                limit=self._limit,
                remaining=max(0, self._limit - window.count),
                reset_at=reset_at,
                retry_after_seconds=max(1, math.ceil(reset_at - now)),
            )

    def tracked_keys(self) -> int:
        """Number of keys currently holding window state."""
        with self._lock:
            return len(self._windows)
