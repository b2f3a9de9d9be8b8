"""Tests for the httpx upstream adapter and its factory."""

import json
import logging

import httpx
import pytest

from relay.adapters.upstream import HttpxUpstreamClient, create_upstream_client
from relay.adapters.upstream.httpx_client import GENERIC_UPSTREAM_ERROR
from relay.core.config import UpstreamSettings
from relay.core.errors import UpstreamAppError, ValidationAppError


def _client(handler, **kwargs) -> HttpxUpstreamClient:
    return HttpxUpstreamClient(
        api_key="sk-unit-secret",
        base_url="https://api.example.test/v1/",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_post_json_returns_decoded_reply() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"choices": [{"index": 0}]})

    client = _client(handler)
    result = await client.post_json("/chat/completions", {"model": "m"})
    await client.aclose()

    assert result == {"choices": [{"index": 0}]}
    assert str(seen[0].url) == "https://api.example.test/v1/chat/completions"
    assert seen[0].headers["Authorization"] == "Bearer sk-unit-secret"
    assert json.loads(seen[0].content) == {"model": "m"}


@pytest.mark.asyncio
async def test_forward_json_sends_raw_bytes() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "r"})

    client = _client(handler)
    raw = b'{ "model" : "m", "n": 1.0 }'
    result = await client.forward_json("/chat/completions", raw)
    await client.aclose()

    assert result == {"id": "r"}
    assert seen[0].content == raw
    assert seen[0].headers["Content-Type"] == "application/json"


@pytest.mark.asyncio
async def test_post_form_sends_multipart() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"text": "ok"})

    client = _client(handler)
    result = await client.post_form(
        "/audio/transcriptions",
        data={"model": "whisper-1"},
        files=[("file", ("a.wav", b"RIFF", "audio/wav"))],
    )

    assert result == {"text": "ok"}
    assert seen[0].headers["Content-Type"].startswith("multipart/form-data; boundary=")
    assert b'filename="a.wav"' in seen[0].content
    assert b"Content-Type: audio/wav" in seen[0].content


@pytest.mark.asyncio
async def test_timeout_is_explicit() -> None:
    client = _client(lambda request: httpx.Response(200, json={}), timeout_seconds=7.5)

    assert client.client.timeout == httpx.Timeout(7.5)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("response", "code"),
    [
        (httpx.Response(500, json={"error": "internal"}), "upstream_error"),
        (httpx.Response(400, json={"error": {"message": "bad model"}}), "upstream_error"),
        (httpx.Response(200, content=b"not-json"), "upstream_invalid_json"),
        (httpx.Response(200, content=b'{"score": NaN}'), "upstream_invalid_json"),
        (httpx.Response(200, content=b"[Infinity]"), "upstream_invalid_json"),
    ],
)
async def test_bad_replies_raise_upstream_error(response, code) -> None:
    client = _client(lambda request: response)

    with pytest.raises(UpstreamAppError) as exc_info:
        await client.post_json("/chat/completions", {})

    assert exc_info.value.code == code
    assert exc_info.value.message == GENERIC_UPSTREAM_ERROR


@pytest.mark.asyncio
async def test_timeout_raises_upstream_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(UpstreamAppError) as exc_info:
        await _client(handler).post_json("/chat/completions", {})

    assert exc_info.value.code == "upstream_timeout"


@pytest.mark.asyncio
async def test_no_retry_on_failure() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(502, text="bad gateway")

    with pytest.raises(UpstreamAppError):
        await _client(handler).post_json("/chat/completions", {})

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_failure_detail_is_logged_without_credential(caplog) -> None:
    client = _client(lambda request: httpx.Response(503, json={"error": "overloaded"}))

    with caplog.at_level(logging.ERROR, logger="relay.adapters.upstream.httpx_client"):
        with pytest.raises(UpstreamAppError):
            await client.post_json("/chat/completions", {})

    record = next(r for r in caplog.records if r.getMessage() == "upstream.request_failed")
    assert record.upstream_status == 503
    assert "overloaded" in record.upstream_body
    assert "sk-unit-secret" not in caplog.text


def test_factory_requires_api_key() -> None:
    with pytest.raises(ValidationAppError) as exc_info:
        create_upstream_client(UpstreamSettings(api_key=None))

    assert exc_info.value.code == "upstream_missing_api_key"


def test_factory_builds_httpx_client() -> None:
    client = create_upstream_client(
        UpstreamSettings(api_key="k", base_url="https://x.test/v1", timeout_seconds=12)
    )

    assert isinstance(client, HttpxUpstreamClient)
    assert client.base_url == "https://x.test/v1"
    assert client.timeout_seconds == 12
