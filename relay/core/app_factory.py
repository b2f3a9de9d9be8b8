from __future__ import annotations

"""Application factory for the relay.

Centralizes app construction (state, middleware, handlers, routers) so tests
can build an app with their own settings, rate limiter and upstream client.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from relay.adapters.rate_limit.base import AbstractRateLimiter
from relay.adapters.upstream.base import AbstractUpstreamClient
from relay.adapters.upstream.factory import create_upstream_client
from relay.api.routes import health_router, relay_router
from relay.core.config import Settings
from relay.core.config import settings as default_settings
from relay.core.exception_handlers import setup_exception_handlers
from relay.core.logging import configure_logging
from relay.core.middleware import request_id_middleware, security_headers_middleware
from relay.core.rate_limit import build_rate_limiter
from relay.services.relay_service import RelayService

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    rate_limiter: AbstractRateLimiter | None = None,
    upstream: AbstractUpstreamClient | None = None,
    configure_logs: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        settings: Settings to use; defaults to the environment-derived global.
        rate_limiter: Limiter to own; built from settings when omitted.
        upstream: Upstream client; built from settings when omitted.
        configure_logs: Install the JSON root log handler.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.

    Raises:
        ValidationAppError: If no upstream client is given and no API key is
            configured.
    """
    cfg = settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    if configure_logs:
        configure_logging(cfg.log)

    upstream_client = upstream or create_upstream_client(cfg.upstream)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "relay.started",
            extra={
                "app_env": cfg.app_env,
                "upstream_base_url": cfg.upstream.base_url,
                "rate_limit_requests": cfg.app.rate_limit_requests,
                "rate_limit_window_s": cfg.app.rate_limit_window_seconds,
            },
        )
        try:
            yield
        finally:
            await upstream_client.aclose()
            logger.info("relay.stopped")

    app = FastAPI(
        title="AI Relay API",
        description=(
            "Relays chat completions, audio transcription and note analysis "
            "requests to an OpenAI-compatible API with a server-held key, "
            "per-client rate limiting and hardened response headers."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = cfg
    app.state.rate_limiter = rate_limiter or build_rate_limiter(cfg.app)
    app.state.upstream = upstream_client
    app.state.relay_service = RelayService(upstream_client, cfg.upstream)

    # Middleware (last registered runs first)
    app.middleware("http")(request_id_middleware)
    app.middleware("http")(security_headers_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(relay_router)
    app.include_router(health_router)

    return app
