"""Relay service assembling outbound requests for the upstream API.

This service holds the little business logic the relay has:
- chat completions are forwarded verbatim
- a single buffered audio file is repackaged as a transcription form
- note text and images are combined into one vision chat request

Upstream failures surface as ``UpstreamAppError`` from the adapter and are
not caught here.
"""

import base64
import logging
import mimetypes
from typing import Any, Sequence

from relay.adapters.upstream.base import AbstractUpstreamClient
from relay.core.config import UpstreamSettings
from relay.core.errors import ValidationAppError
from relay.core.file_validation import BufferedUpload

logger = logging.getLogger(__name__)

# Used as the text part when notes arrive as images only
DEFAULT_NOTES_INSTRUCTION = "Please analyze these notes."


def to_data_uri(upload: BufferedUpload) -> str:
    """Encode an upload inline as ``data:<mime>;base64,<payload>``."""
    encoded = base64.b64encode(upload.content).decode("ascii")
    return f"data:{upload.content_type};base64,{encoded}"


def build_notes_messages(
    text: str | None,
    images: Sequence[BufferedUpload],
    *,
    system_prompt: str,
) -> list[dict[str, Any]]:
    """Build the chat messages for note analysis.

    The user message always starts with one text part, followed by one
    ``image_url`` part per image in upload order, so K images yield K+1 parts.

    Args:
        text: Free text from the client, may be empty.
        images: Accepted image uploads.
        system_prompt: Instructions sent as the system message.

    Returns:
        list[dict[str, Any]]: ``[system message, user message]``.

    Raises:
        ValidationAppError: If neither text nor images were provided.
    """
    note_text = (text or "").strip()
    if not note_text and not images:
        raise ValidationAppError(
            code="empty_notes",
            message="Provide note text, at least one image, or both.",
        )

    content: list[dict[str, Any]] = [
        {"type": "text", "text": note_text or DEFAULT_NOTES_INSTRUCTION}
    ]
    content.extend(
        {"type": "image_url", "image_url": {"url": to_data_uri(image)}}
        for image in images
    )

    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": content},
    ]


def _upload_filename(upload: BufferedUpload) -> str:
    if upload.filename:
        return upload.filename
    extension = mimetypes.guess_extension(upload.content_type) or ""
    return f"{upload.field_name}{extension}"


class RelayService:
    """Stateless request assembly on top of an upstream client."""

    def __init__(self, upstream: AbstractUpstreamClient, config: UpstreamSettings) -> None:
        self.upstream = upstream
        self.config = config

    async def chat(self, body: bytes) -> Any:
        """Forward a chat completion request body byte for byte.

        The caller has already checked that ``body`` is a JSON document.
        """
        logger.info("relay.chat.forwarding", extra={"size_bytes": len(body)})
        return await self.upstream.forward_json(self.config.chat_path, body)

    async def transcribe(self, audio: BufferedUpload) -> Any:
        """Send one audio file to the transcription endpoint.

        The form carries the file under ``file`` and the configured model
        under ``model``.
        """
        logger.info(
            "relay.transcribe.forwarding",
            extra={
                "model": self.config.transcription_model,
                "content_type": audio.content_type,
                "size_bytes": audio.size,
            },
        )
        return await self.upstream.post_form(
            self.config.transcription_path,
            data={"model": self.config.transcription_model},
            files=[("file", (_upload_filename(audio), audio.content, audio.content_type))],
        )

    async def process_notes(self, text: str | None, images: Sequence[BufferedUpload]) -> Any:
        """Analyze note text and images with the configured vision model."""
        messages = build_notes_messages(
            text,
            images,
            system_prompt=self.config.notes_system_prompt,
        )
        payload = {
            "model": self.config.notes_model,
            "messages": messages,
            "max_tokens": self.config.notes_max_tokens,
        }
        logger.info(
            "relay.notes.forwarding",
            extra={
                "model": self.config.notes_model,
                "image_count": len(images),
                "has_text": bool((text or "").strip()),
            },
        )
        return await self.upstream.post_json(self.config.chat_path, payload)
