"""HTTP middleware for request correlation and response hardening.

- ``request_id_middleware`` accepts an incoming X-Request-ID header or
  generates a UUID, stores it in contextvars for log correlation, and echoes
  it back together with the request duration. Exceptions no other handler
  caught are rendered here, so the fallback 500 still carries the request id
  and passes back through the hardening middleware.
- ``security_headers_middleware`` adds the hardening headers browsers honour
  (the same defaults Express' helmet ships) to every response, including
  error responses and 429s.

Usage:
    app.middleware("http")(request_id_middleware)
    app.middleware("http")(security_headers_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from relay.core.exception_handlers import general_exception_handler
from relay.core.logging import clear_request_id, set_request_id

SECURITY_HEADERS: dict[str, str] = {
    "Content-Security-Policy": (
        "default-src 'self';base-uri 'self';font-src 'self' https: data:;"
        "form-action 'self';frame-ancestors 'self';img-src 'self' data:;"
        "object-src 'none';script-src 'self';script-src-attr 'none';"
        "style-src 'self' https: 'unsafe-inline';upgrade-insecure-requests"
    ),
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}

# Headers that only advertise the server stack
_FINGERPRINT_HEADERS = ("X-Powered-By",)


async def request_id_middleware(request: Request, call_next) -> Response:
    """HTTP middleware for request ID generation and propagation.

    If the client provides the configured request id header (LOG_REQUEST_ID_HEADER,
    default X-Request-ID) that value is used, otherwise a new UUID is
    generated. The id is stored in contextvars for the lifetime of the request
    and propagated back in the response headers.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The response from the next handler with request_id and
            duration headers added.
    """

    header_name = request.app.state.settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    except Exception as exc:
        response = await general_exception_handler(request, exc)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response


async def security_headers_middleware(request: Request, call_next) -> Response:
    """Add hardening headers to every response.

    Headers already set by a route are left untouched. Disabled entirely with
    APP_SECURITY_HEADERS_ENABLED=false.
    """

    response: Response = await call_next(request)
    if not request.app.state.settings.app.security_headers_enabled:
        return response

    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    for name in _FINGERPRINT_HEADERS:
        if name in response.headers:
            del response.headers[name]
    return response
