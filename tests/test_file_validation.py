"""Unit tests for upload filters."""

from io import BytesIO

import pytest
from starlette.datastructures import FormData, Headers, UploadFile

from relay.core.config import AppSettings
from relay.core.errors import (
    PayloadTooLargeAppError,
    UnsupportedMediaTypeAppError,
    ValidationAppError,
)
from relay.core.file_validation import (
    AUDIO_MIME_TYPES,
    UploadFilter,
    audio_upload_filter,
    collect_uploads,
    image_upload_filter,
    normalize_content_type,
    read_upload_file_limited,
)

MB = 1024 * 1024


def _upload(content: bytes, content_type: str, filename: str = "f", *, size: int | None = None) -> UploadFile:
    return UploadFile(
        BytesIO(content),
        size=len(content) if size is None else size,
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


@pytest.fixture
def images_filter() -> UploadFilter:
    return image_upload_filter(AppSettings())


@pytest.fixture
def audio_filter() -> UploadFilter:
    return audio_upload_filter(AppSettings())


def test_default_filters_match_documented_limits(images_filter, audio_filter) -> None:
    assert images_filter.field_name == "images"
    assert images_filter.max_bytes == 10 * MB
    assert audio_filter.field_name == "file"
    assert audio_filter.max_bytes == 25 * MB
    assert audio_filter.max_files == 1
    assert AUDIO_MIME_TYPES == {"audio/mpeg", "audio/mp4", "audio/wav", "audio/webm", "audio/m4a"}


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("audio/webm;codecs=opus", "audio/webm"),
        ("Image/PNG", "image/png"),
        (None, ""),
        ("", ""),
    ],
)
def test_normalize_content_type(raw, expected) -> None:
    assert normalize_content_type(raw) == expected


def test_image_filter_accepts_any_image_type(images_filter) -> None:
    for mime in ("image/png", "image/jpeg", "image/heic", "image/svg+xml"):
        assert images_filter.accepts_type(mime)
    assert not images_filter.accepts_type("application/pdf")
    assert not images_filter.accepts_type("")


@pytest.mark.asyncio
async def test_collect_keeps_upload_order_and_ignores_plain_fields(images_filter) -> None:
    form = FormData(
        [
            ("images", _upload(b"first", "image/png", "1.png")),
            ("text", "a note"),
            ("images", _upload(b"second", "image/jpeg", "2.jpg")),
        ]
    )

    uploads = await collect_uploads(form, images_filter)

    assert [u.filename for u in uploads] == ["1.png", "2.jpg"]
    assert [u.content for u in uploads] == [b"first", b"second"]
    assert uploads[1].content_type == "image/jpeg"
    assert uploads[0].size == 5


@pytest.mark.asyncio
async def test_collect_with_no_files_returns_empty(images_filter) -> None:
    assert await collect_uploads(FormData([("text", "only text")]), images_filter) == []


@pytest.mark.asyncio
async def test_unexpected_field_rejected(audio_filter) -> None:
    form = FormData([("upload", _upload(b"x", "audio/mpeg"))])

    with pytest.raises(ValidationAppError) as exc_info:
        await collect_uploads(form, audio_filter)

    assert exc_info.value.code == "unexpected_field"
    assert exc_info.value.details["expected_field"] == "file"


@pytest.mark.asyncio
async def test_disallowed_type_rejected(audio_filter) -> None:
    form = FormData([("file", _upload(b"x", "audio/flac"))])

    with pytest.raises(UnsupportedMediaTypeAppError) as exc_info:
        await collect_uploads(form, audio_filter)

    assert exc_info.value.status_code == 415
    assert "audio/mpeg" in exc_info.value.details["allowed_types"]


@pytest.mark.asyncio
async def test_type_checked_before_any_file_is_read(images_filter) -> None:
    good = _upload(b"ok", "image/png")
    form = FormData([("images", good), ("images", _upload(b"x", "text/plain"))])

    with pytest.raises(UnsupportedMediaTypeAppError):
        await collect_uploads(form, images_filter)

    assert good.file.tell() == 0


@pytest.mark.asyncio
async def test_too_many_files_rejected() -> None:
    upload_filter = UploadFilter(field_name="images", max_bytes=MB, allowed_prefixes=("image/",), max_files=2)
    form = FormData([("images", _upload(b"x", "image/png")) for _ in range(3)])

    with pytest.raises(ValidationAppError) as exc_info:
        await collect_uploads(form, upload_filter)

    assert exc_info.value.code == "too_many_files"


@pytest.mark.asyncio
async def test_oversized_file_rejected_by_declared_size() -> None:
    upload = _upload(b"small", "image/png", size=11 * MB)

    with pytest.raises(PayloadTooLargeAppError) as exc_info:
        await read_upload_file_limited(upload, 10 * MB)

    assert exc_info.value.details["actual_bytes"] == 11 * MB


@pytest.mark.asyncio
async def test_oversized_file_rejected_while_reading() -> None:
    content = b"\x00" * (256 * 1024 + 1)
    upload = UploadFile(BytesIO(content), filename="x", headers=Headers({"content-type": "image/png"}))

    with pytest.raises(PayloadTooLargeAppError) as exc_info:
        await read_upload_file_limited(upload, 256 * 1024)

    assert exc_info.value.code == "file_too_large"


@pytest.mark.asyncio
async def test_file_at_limit_is_read_fully() -> None:
    content = b"\x01" * (128 * 1024)

    assert await read_upload_file_limited(_upload(content, "audio/wav"), 128 * 1024) == content
