from __future__ import annotations

import httpx


def test_health_returns_plain_ok(client) -> None:
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.text == "OK"
    assert resp.headers["content-type"].startswith("text/plain")


def test_health_does_not_touch_upstream(make_client, upstream_recorder) -> None:
    upstream_recorder.response = httpx.Response(503, json={"error": "down"})
    client = make_client()

    assert client.get("/health").status_code == 200
    assert upstream_recorder.requests == []
