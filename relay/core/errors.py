"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional so each error only carries what is relevant to it.
    """

    hint: str
    field_name: str
    expected_field: str
    content_type: str
    allowed_types: list[str]
    max_bytes: int
    actual_bytes: int
    max_files: int
    upstream_status: int
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    status_code = 400
    expose_details = True

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class PayloadTooLargeAppError(AppError):
    """Raised when an upload or request body exceeds its size cap."""

    status_code = 413


class LengthRequiredAppError(AppError):
    """Raised when an upload arrives without a Content-Length header."""

    status_code = 411


class UnsupportedMediaTypeAppError(AppError):
    """Raised when an uploaded file's MIME type is not allowed."""

    status_code = 415


class UpstreamAppError(AppError):
    """Raised when the upstream API call fails.

    Details are kept for logs only and are never returned to clients.
    """

    status_code = 500
    expose_details = False
