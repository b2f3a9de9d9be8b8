from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_class=PlainTextResponse)
def health_check() -> str:
    """Liveness probe.

    Always answers 200 "OK". It checks neither the upstream API nor the rate
    limiter, and it is not rate limited itself.
    """

    return "OK"
