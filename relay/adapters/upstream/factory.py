"""Factory for the upstream client."""

from relay.adapters.upstream.base import AbstractUpstreamClient
from relay.adapters.upstream.httpx_client import HttpxUpstreamClient
from relay.core.config import UpstreamSettings
from relay.core.errors import ValidationAppError


def create_upstream_client(upstream_settings: UpstreamSettings) -> AbstractUpstreamClient:
    """Instantiate the upstream client from configuration.

    Returns:
        AbstractUpstreamClient: Configured client instance.

    Raises:
        ValidationAppError: If no API key is configured.
    """
    if not upstream_settings.api_key:
        raise ValidationAppError(
            code="upstream_missing_api_key",
            message="The relay requires the OPENAI_API_KEY environment variable",
        )

    return HttpxUpstreamClient(
        api_key=upstream_settings.api_key,
        base_url=upstream_settings.base_url,
        timeout_seconds=upstream_settings.timeout_seconds,
    )
