"""Rate limiter interfaces.

The HTTP layer depends on this abstraction, not on a concrete store. The
limiter instance is owned by the application (``app.state.rate_limiter``) so
tests can inject one with a fake clock and deployments running several
workers can swap in a shared store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a consume operation.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the current window resets.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None = None


class AbstractRateLimiter(ABC):
    """Interface for per-client request quotas."""

    @abstractmethod
    async def consume(self, key: str, *, cost: int = 1) -> RateLimitResult:
        """Atomically check and consume budget for a client.

        Args:
            key: Client identifier (e.g. ``ip:203.0.113.7``).
            cost: Units to consume (default 1).

        Returns:
            RateLimitResult describing whether the request may proceed.
        """
        raise NotImplementedError
