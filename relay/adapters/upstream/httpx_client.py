"""httpx-based client for an OpenAI-compatible upstream."""

import json
import logging
import time
from typing import Any, Mapping, Sequence

import httpx

from relay.adapters.upstream.base import AbstractUpstreamClient, FileField
from relay.core.errors import UpstreamAppError

logger = logging.getLogger(__name__)

GENERIC_UPSTREAM_ERROR = "An error occurred while processing your request."

# Upstream error bodies are logged, truncated to this many characters
_MAX_LOGGED_BODY = 1000


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON and cannot be rendered back to the client
    raise ValueError(f"non-standard JSON constant: {name}")


class HttpxUpstreamClient(AbstractUpstreamClient):
    """Forwards requests with an injected bearer credential.

    Every call has an explicit timeout and is attempted exactly once. Any
    failure is raised as ``UpstreamAppError`` carrying the generic client
    message; upstream detail goes to the logs only.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout_seconds: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the async HTTP client.

        Args:
            api_key: Bearer credential for the upstream API.
            base_url: Base URL, e.g. "https://api.openai.com/v1".
            timeout_seconds: Timeout applied to connect, read, write and pool.
            transport: Optional transport override (tests use httpx.MockTransport).
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def post_json(self, path: str, payload: Any) -> Any:
        return await self._send(path, json=payload)

    async def forward_json(self, path: str, body: bytes) -> Any:
        return await self._send(path, content=body, headers={"Content-Type": "application/json"})

    async def post_form(
        self,
        path: str,
        *,
        data: Mapping[str, str],
        files: Sequence[FileField],
    ) -> Any:
        return await self._send(path, data=dict(data), files=list(files))

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _send(self, path: str, **kwargs: Any) -> Any:
        start = time.perf_counter()
        try:
            response = await self.client.post(path, **kwargs)
        except httpx.TimeoutException as exc:
            self._log_failure(path, start, reason="timeout", error=str(exc) or type(exc).__name__)
            raise UpstreamAppError(code="upstream_timeout", message=GENERIC_UPSTREAM_ERROR) from exc
        except httpx.HTTPError as exc:
            self._log_failure(path, start, reason="network_error", error=str(exc) or type(exc).__name__)
            raise UpstreamAppError(code="upstream_unavailable", message=GENERIC_UPSTREAM_ERROR) from exc

        if not response.is_success:
            self._log_failure(
                path,
                start,
                reason="http_status",
                upstream_status=response.status_code,
                upstream_body=response.text[:_MAX_LOGGED_BODY],
            )
            raise UpstreamAppError(
                code="upstream_error",
                message=GENERIC_UPSTREAM_ERROR,
                details={"upstream_status": response.status_code},
            )

        try:
            body = json.loads(response.content, parse_constant=_reject_constant)
        except ValueError as exc:
            self._log_failure(
                path,
                start,
                reason="invalid_json",
                upstream_status=response.status_code,
                upstream_body=response.text[:_MAX_LOGGED_BODY],
            )
            raise UpstreamAppError(code="upstream_invalid_json", message=GENERIC_UPSTREAM_ERROR) from exc

        logger.info(
            "upstream.request_succeeded",
            extra={
                "upstream_path": path,
                "upstream_status": response.status_code,
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        return body

    def _log_failure(self, path: str, start: float, *, reason: str, **fields: Any) -> None:
        logger.error(
            "upstream.request_failed",
            extra={
                "upstream_path": path,
                "reason": reason,
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                **fields,
            },
        )
