"""Rate limiting adapters.

The relay starts with an in-memory fixed-window limiter; a shared store can
be added behind ``AbstractRateLimiter`` without touching the HTTP layer.
"""

from relay.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from relay.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "InMemoryFixedWindowRateLimiter",
    "RateLimitResult",
]
