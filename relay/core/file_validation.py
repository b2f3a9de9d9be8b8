"""Upload filters: field name, MIME type, size and count checks.

Each relay route that accepts files declares an ``UploadFilter``. Every file
in the multipart form is checked against it before the route's relay logic
runs, and accepted files are buffered in memory as ``BufferedUpload``.

Rejections map to explicit statuses:
- unexpected field name, too many files, missing file -> 400
- MIME type not allowed -> 415
- file over the size cap -> 413
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from starlette.datastructures import FormData, UploadFile

from relay.core.config import MB, AppSettings
from relay.core.errors import (
    PayloadTooLargeAppError,
    UnsupportedMediaTypeAppError,
    ValidationAppError,
)

logger = logging.getLogger(__name__)

AUDIO_MIME_TYPES = frozenset(
    {
        "audio/mpeg",
        "audio/mp4",
        "audio/wav",
        "audio/webm",
        "audio/m4a",
    }
)

_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class BufferedUpload:
    """An accepted file held fully in memory for one request."""

    field_name: str
    filename: str | None
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class UploadFilter:
    """Acceptance rules for the files of one route.

    Attributes:
        field_name: The only form field allowed to carry files.
        max_bytes: Size cap per file.
        allowed_types: Exact MIME types accepted.
        allowed_prefixes: MIME prefixes accepted (e.g. ``"image/"``).
        max_files: Maximum number of files under ``field_name``.
    """

    field_name: str
    max_bytes: int
    allowed_types: frozenset[str] = field(default_factory=frozenset)
    allowed_prefixes: tuple[str, ...] = ()
    max_files: int = 1

    def accepts_type(self, content_type: str) -> bool:
        return content_type in self.allowed_types or any(
            content_type.startswith(prefix) for prefix in self.allowed_prefixes
        )

    def describe_types(self) -> list[str]:
        return sorted(self.allowed_types) + [f"{prefix}*" for prefix in self.allowed_prefixes]


def image_upload_filter(app_settings: AppSettings) -> UploadFilter:
    """Images for note analysis: field ``images``, any ``image/*``, 10 MB each."""

    return UploadFilter(
        field_name="images",
        max_bytes=app_settings.max_image_upload_mb * MB,
        allowed_prefixes=("image/",),
        max_files=app_settings.max_note_images,
    )


def audio_upload_filter(app_settings: AppSettings) -> UploadFilter:
    """Audio for transcription: field ``file``, one file, 25 MB."""

    return UploadFilter(
        field_name="file",
        max_bytes=app_settings.max_audio_upload_mb * MB,
        allowed_types=AUDIO_MIME_TYPES,
        max_files=1,
    )


def normalize_content_type(content_type: str | None) -> str:
    """Lower-case a MIME type and strip parameters (``audio/webm;codecs=opus``)."""

    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def _too_large(max_bytes: int, actual: int | None = None) -> PayloadTooLargeAppError:
    details = {"max_bytes": max_bytes}
    if actual is not None:
        details["actual_bytes"] = actual
    return PayloadTooLargeAppError(
        code="file_too_large",
        message=f"File too large. Maximum size: {max_bytes // MB}MB",
        details=details,
    )


async def read_upload_file_limited(file: UploadFile, max_bytes: int) -> bytes:
    """Read an uploaded file in chunks enforcing the max size limit.

    Uses ``file.size`` when the multipart parser recorded it, and falls back
    to counting bytes while reading.

    Args:
        file: Upload from the parsed form.
        max_bytes: Size cap in bytes.

    Returns:
        File content as bytes if within the allowed size limit.

    Raises:
        PayloadTooLargeAppError: If the file exceeds the size limit.
    """
    file_size = getattr(file, "size", None)

    if file_size is not None and file_size > max_bytes:
        logger.warning(
            "file_validation.rejected_by_header",
            extra={"file_size": file_size, "max_bytes": max_bytes},
        )
        raise _too_large(max_bytes, file_size)

    size = 0
    chunks: list[bytes] = []

    while True:
        chunk = await file.read(_CHUNK_SIZE)
        if not chunk:
            break

        size += len(chunk)
        if size > max_bytes:
            logger.warning(
                "file_validation.rejected_by_chunked_read",
                extra={"size": size, "max_bytes": max_bytes},
            )
            raise _too_large(max_bytes)
        chunks.append(chunk)

    return b"".join(chunks)


async def collect_uploads(form: FormData, upload_filter: UploadFilter) -> list[BufferedUpload]:
    """Validate and buffer every file in ``form``.

    All files are checked for field name, count and MIME type before any of
    them is read, then each is read under the size cap. Non-file form fields
    are ignored here.

    Args:
        form: Parsed multipart form.
        upload_filter: Rules for this route.

    Returns:
        Accepted files in upload order.

    Raises:
        ValidationAppError: Unexpected field name or too many files (400).
        UnsupportedMediaTypeAppError: MIME type not allowed (415).
        PayloadTooLargeAppError: File over the size cap (413).
    """
    files: list[UploadFile] = []
    for name, value in form.multi_items():
        if not isinstance(value, UploadFile):
            continue
        if name != upload_filter.field_name:
            logger.warning(
                "file_validation.unexpected_field",
                extra={"field_name": name, "expected_field": upload_filter.field_name},
            )
            raise ValidationAppError(
                code="unexpected_field",
                message=f"Unexpected file field '{name}'. Expected '{upload_filter.field_name}'.",
                details={"field_name": name, "expected_field": upload_filter.field_name},
            )
        files.append(value)

    if len(files) > upload_filter.max_files:
        raise ValidationAppError(
            code="too_many_files",
            message=f"Too many files. Maximum: {upload_filter.max_files}",
            details={"max_files": upload_filter.max_files},
        )

    for upload in files:
        content_type = normalize_content_type(upload.content_type)
        if not upload_filter.accepts_type(content_type):
            logger.warning(
                "file_validation.rejected_type",
                extra={"content_type": content_type, "field_name": upload_filter.field_name},
            )
            raise UnsupportedMediaTypeAppError(
                code="unsupported_media_type",
                message=f"Unsupported file type '{content_type or 'unknown'}'.",
                details={
                    "content_type": content_type,
                    "allowed_types": upload_filter.describe_types(),
                },
            )

    accepted: list[BufferedUpload] = []
    for upload in files:
        content = await read_upload_file_limited(upload, upload_filter.max_bytes)
        accepted.append(
            BufferedUpload(
                field_name=upload_filter.field_name,
                filename=upload.filename,
                content_type=normalize_content_type(upload.content_type),
                content=content,
            )
        )

    logger.info(
        "file_validation.accepted",
        extra={
            "field_name": upload_filter.field_name,
            "file_count": len(accepted),
            "total_bytes": sum(upload.size for upload in accepted),
        },
    )
    return accepted
