"""Upstream adapter layer - the completions API the relay forwards to."""

from relay.adapters.upstream.base import AbstractUpstreamClient
from relay.adapters.upstream.factory import create_upstream_client
from relay.adapters.upstream.httpx_client import HttpxUpstreamClient

__all__ = [
    "AbstractUpstreamClient",
    "HttpxUpstreamClient",
    "create_upstream_client",
]
