import json

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from relay.core.config import MB, AppSettings
from relay.core.errors import LengthRequiredAppError, PayloadTooLargeAppError, ValidationAppError
from relay.core.file_validation import (
    UploadFilter,
    audio_upload_filter,
    collect_uploads,
    image_upload_filter,
)
from relay.core.rate_limit import enforce_rate_limit
from relay.services.relay_service import RelayService

router = APIRouter(
    prefix="/api/openai",
    tags=["Relay"],
    dependencies=[Depends(enforce_rate_limit)],
)

# Room for multipart framing and the plain text fields next to the files
_FORM_OVERHEAD_BYTES = MB
_MAX_FORM_FIELDS = 20


def get_relay_service(request: Request) -> RelayService:
    return request.app.state.relay_service


def get_app_settings(request: Request) -> AppSettings:
    return request.app.state.settings.app


def _declared_length(request: Request) -> int | None:
    declared = request.headers.get("content-length")
    return int(declared) if declared and declared.isdigit() else None


def _body_too_large(max_bytes: int) -> PayloadTooLargeAppError:
    return PayloadTooLargeAppError(
        code="body_too_large",
        message=f"Request body too large. Maximum size: {max_bytes} bytes",
        details={"max_bytes": max_bytes},
    )


async def read_json_body(request: Request, max_bytes: int) -> bytes:
    """Read a JSON request body under a size cap.

    The body is decoded only to check that it is JSON; the raw bytes are
    returned so they can be forwarded unchanged.

    Raises:
        PayloadTooLargeAppError: Body larger than ``max_bytes`` (413).
        ValidationAppError: Empty body or invalid JSON (400).
    """
    too_large = _body_too_large(max_bytes)

    declared = _declared_length(request)
    if declared is not None and declared > max_bytes:
        raise too_large

    size = 0
    chunks: list[bytes] = []
    async for chunk in request.stream():
        size += len(chunk)
        if size > max_bytes:
            raise too_large
        chunks.append(chunk)

    raw = b"".join(chunks)
    if not raw.strip():
        raise ValidationAppError(code="invalid_json", message="Request body must be a JSON document.")
    try:
        json.loads(raw)
    except ValueError as exc:
        raise ValidationAppError(
            code="invalid_json",
            message="Request body must be a JSON document.",
        ) from exc
    return raw


def check_form_length(request: Request, upload_filter: UploadFilter) -> None:
    """Refuse a multipart body that cannot fit the filter's caps.

    Runs before the form is parsed, because the parser spools every file part
    to disk whatever its size.

    Raises:
        LengthRequiredAppError: No Content-Length header (411).
        PayloadTooLargeAppError: Declared length above ``max_files * max_bytes``
            plus framing overhead (413).
    """
    declared = _declared_length(request)
    if declared is None:
        raise LengthRequiredAppError(
            code="length_required",
            message="Uploads must declare a Content-Length.",
        )

    max_bytes = upload_filter.max_files * upload_filter.max_bytes + _FORM_OVERHEAD_BYTES
    if declared > max_bytes:
        raise _body_too_large(max_bytes)


def _invalid_multipart(exc: StarletteHTTPException) -> ValidationAppError:
    return ValidationAppError(code="invalid_multipart", message=str(exc.detail))


@router.post("", summary="Relay a chat completion request")
@router.post("/chat", summary="Relay a chat completion request")
async def chat_completion(
    request: Request,
    service: RelayService = Depends(get_relay_service),
    app_settings: AppSettings = Depends(get_app_settings),
) -> JSONResponse:
    """Forward an arbitrary chat completion JSON body to the upstream API.

    The body is sent verbatim with the relay's bearer credential and the
    upstream JSON reply is returned unchanged.

    Raises:
        PayloadTooLargeAppError: 413 when the body exceeds APP_MAX_JSON_BODY_BYTES.
        ValidationAppError: 400 when the body is not JSON.
        UpstreamAppError: 500 with a generic message when the upstream call fails.
    """
    body = await read_json_body(request, app_settings.max_json_body_bytes)
    result = await service.chat(body)
    return JSONResponse(content=result)


@router.post("/transcribe", summary="Relay an audio transcription request")
async def transcribe_audio(
    request: Request,
    service: RelayService = Depends(get_relay_service),
    app_settings: AppSettings = Depends(get_app_settings),
) -> JSONResponse:
    """Transcribe one audio file uploaded under the ``file`` form field.

    Accepted types: audio/mpeg, audio/mp4, audio/wav, audio/webm, audio/m4a,
    up to APP_MAX_AUDIO_UPLOAD_MB (25 MB by default).

    Raises:
        LengthRequiredAppError: 411 when the upload has no Content-Length.
        ValidationAppError: 400 for a missing file or unexpected field.
        UnsupportedMediaTypeAppError: 415 for a disallowed audio type.
        PayloadTooLargeAppError: 413 for an oversized file.
        UpstreamAppError: 500 when the upstream call fails.
    """
    upload_filter = audio_upload_filter(app_settings)
    check_form_length(request, upload_filter)
    try:
        async with request.form(
            max_files=upload_filter.max_files + 1, max_fields=_MAX_FORM_FIELDS
        ) as form:
            uploads = await collect_uploads(form, upload_filter)
    except StarletteHTTPException as exc:
        raise _invalid_multipart(exc) from exc

    if not uploads:
        raise ValidationAppError(
            code="missing_file",
            message="No audio file provided. Upload one file in the 'file' field.",
            details={"expected_field": upload_filter.field_name},
        )

    result = await service.transcribe(uploads[0])
    return JSONResponse(content=result)


@router.post("/process-notes", summary="Analyze note text and images")
async def process_notes(
    request: Request,
    service: RelayService = Depends(get_relay_service),
    app_settings: AppSettings = Depends(get_app_settings),
) -> JSONResponse:
    """Analyze notes made of optional ``text`` plus zero or more ``images``.

    Images are inlined as base64 data URIs after the text, in upload order,
    and sent to the configured vision model.

    Raises:
        ValidationAppError: 400 when both text and images are missing, or a
            file arrives under a field other than ``images``.
        UnsupportedMediaTypeAppError: 415 for a non-image upload.
        LengthRequiredAppError: 411 when the upload has no Content-Length.
        PayloadTooLargeAppError: 413 for an image over APP_MAX_IMAGE_UPLOAD_MB.
        UpstreamAppError: 500 when the upstream call fails.
    """
    upload_filter = image_upload_filter(app_settings)
    check_form_length(request, upload_filter)
    try:
        async with request.form(
            max_files=upload_filter.max_files + 1, max_fields=_MAX_FORM_FIELDS
        ) as form:
            images = await collect_uploads(form, upload_filter)
            text = form.get("text")
    except StarletteHTTPException as exc:
        raise _invalid_multipart(exc) from exc

    result = await service.process_notes(text if isinstance(text, str) else None, images)
    return JSONResponse(content=result)

