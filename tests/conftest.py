"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment variables are set before any ``relay`` import so the global
settings object is built from them.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("OPENAI_API_KEY", "sk-test-relay-key")
os.environ.setdefault("OPENAI_BASE_URL", "https://upstream.test/v1")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Any, Callable  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from relay.adapters.upstream.httpx_client import HttpxUpstreamClient  # noqa: E402
from relay.core.app_factory import create_app  # noqa: E402
from relay.core.config import AppSettings, Settings, UpstreamSettings  # noqa: E402

UPSTREAM_BASE_URL = "https://upstream.test/v1"
TEST_API_KEY = "sk-test-relay-key"


class UpstreamRecorder:
    """httpx handler standing in for the upstream API.

    Records every request and answers with ``response`` (or calls it when it
    is a callable taking the request).
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.response: httpx.Response | Callable[[httpx.Request], httpx.Response] = httpx.Response(
            200, json={"ok": True}
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        if callable(self.response):
            return self.response(request)
        # Fresh response per call; httpx binds a response to one request
        return httpx.Response(
            self.response.status_code,
            headers=self.response.headers,
            content=self.response.content,
        )

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def build_settings(**app_overrides: Any) -> Settings:
    return Settings(
        app_env="testing",
        upstream=UpstreamSettings(api_key=TEST_API_KEY, base_url=UPSTREAM_BASE_URL),
        app=AppSettings(**app_overrides),
    )


@pytest.fixture
def upstream_recorder() -> UpstreamRecorder:
    return UpstreamRecorder()


@pytest.fixture
def make_client(upstream_recorder: UpstreamRecorder):
    """Build a TestClient around a fresh app wired to the recorder."""

    def _make(settings: Settings | None = None, **kwargs: Any) -> TestClient:
        cfg = settings or build_settings()
        upstream = HttpxUpstreamClient(
            api_key=cfg.upstream.api_key or TEST_API_KEY,
            base_url=cfg.upstream.base_url,
            timeout_seconds=cfg.upstream.timeout_seconds,
            transport=httpx.MockTransport(upstream_recorder),
        )
        app = create_app(cfg, upstream=upstream, configure_logs=False, **kwargs)
        return TestClient(app)

    return _make


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()
