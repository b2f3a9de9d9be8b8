"""Rate limiting dependency for FastAPI routes.

This module wires the rate limiting adapter into the HTTP layer.

Design goals:
- Minimal coupling: routers depend on ``enforce_rate_limit`` only.
- Injectable state: the limiter lives on ``app.state.rate_limiter`` and is
  built by ``build_rate_limiter`` unless the caller supplies one.
- Health checks are never throttled; the dependency is attached to the relay
  router only.

Rate limiting strategy:
- Fixed-window limit per client IP (100 requests / 15 minutes by default).
- Behind a reverse proxy, APP_TRUST_FORWARDED_FOR=true keys on the first
  X-Forwarded-For hop instead of the socket peer.
"""

from __future__ import annotations

import hashlib
import logging

from fastapi import HTTPException, Request, status

from relay.adapters.rate_limit.base import AbstractRateLimiter
from relay.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from relay.core.config import AppSettings

logger = logging.getLogger(__name__)


def build_rate_limiter(app_settings: AppSettings) -> AbstractRateLimiter:
    """Create the default limiter from configuration."""

    return InMemoryFixedWindowRateLimiter(
        limit=app_settings.rate_limit_requests,
        window_seconds=app_settings.rate_limit_window_seconds,
    )


def get_rate_limiter(request: Request) -> AbstractRateLimiter:
    """Return the limiter owned by the running application."""

    return request.app.state.rate_limiter


def client_address(request: Request, *, trust_forwarded_for: bool = False) -> str:
    """Resolve the address a request is accounted to.

    Args:
        request: FastAPI request.
        trust_forwarded_for: Use the first X-Forwarded-For hop when present.

    Returns:
        Client address, or "unknown" when the transport does not expose one.
    """

    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    return request.client.host if request.client else "unknown"


def _hash_limiter_key(key: str) -> str:
    """Hash the limiter key so client addresses stay out of logs."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


async def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency enforcing the per-client quota.

    When enabled, consumes 1 unit from the client's budget. Once the budget
    for the current window is spent, raises HTTP 429 before the request body
    is read or anything is sent upstream.

    Raises:
        HTTPException: 429 Too Many Requests when rate limit is exceeded.
    """

    app_settings: AppSettings = request.app.state.settings.app
    if not app_settings.rate_limit_enabled:
        return

    limiter = get_rate_limiter(request)
    address = client_address(request, trust_forwarded_for=app_settings.trust_forwarded_for)
    key = f"ip:{address}"
    key_hash = _hash_limiter_key(key)

    result = await limiter.consume(key)
    if result.allowed:
        logger.debug(
            "rate_limit.allowed",
            extra={
                "key_hash": key_hash,
                "limit": result.limit,
                "remaining": result.remaining,
            },
        )
        return

    retry_after = result.retry_after_seconds or 0
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_hash": key_hash,
            "limit": result.limit,
            "window_s": app_settings.rate_limit_window_seconds,
            "retry_after_s": retry_after,
            "request_path": request.url.path,
        },
    )

    headers: dict[str, str] = {}
    if app_settings.rate_limit_include_headers:
        headers["Retry-After"] = str(retry_after)
        headers["X-RateLimit-Limit"] = str(result.limit)
        headers["X-RateLimit-Remaining"] = str(result.remaining)
        headers["X-RateLimit-Reset"] = str(result.reset_at)

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Too Many Requests",
        headers=headers or None,
    )
