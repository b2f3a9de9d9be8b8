"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=False)


DEFAULT_NOTES_SYSTEM_PROMPT = (
    "You are an assistant that reads handwritten or typed notes. "
    "Transcribe the content of the provided images and text, then organize it "
    "into a concise, well-structured summary with key points and action items."
)

MB = 1024 * 1024


def _build_upstream_settings() -> "UpstreamSettings":
    """Build upstream settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return UpstreamSettings()  # type: ignore[call-arg]


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    See _build_upstream_settings() for rationale about the type ignore.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


def _build_server_settings() -> "ServerSettings":
    return ServerSettings()  # type: ignore[call-arg]


class UpstreamSettings(BaseSettings):
    """Upstream completions API configuration.

    The API key is the only secret the relay holds. It is injected as a bearer
    credential on every outbound call and never logged.
    """

    api_key: str | None = Field(
        None,
        description="Bearer credential for the upstream API (OPENAI_API_KEY)",
    )
    base_url: str = Field(
        "https://api.uniapi.me/v1",
        description="Base URL of the OpenAI-compatible upstream API",
    )
    chat_path: str = Field(
        "/chat/completions",
        description="Chat completions endpoint, relative to base_url",
    )
    transcription_path: str = Field(
        "/audio/transcriptions",
        description="Audio transcription endpoint, relative to base_url",
    )
    timeout_seconds: float = Field(
        60.0,
        description="Upstream request timeout in seconds",
        gt=0,
    )
    transcription_model: str = Field(
        "whisper-1",
        description="Model sent with every transcription request",
    )
    notes_model: str = Field(
        "gpt-4o",
        description="Vision-capable chat model used for note analysis",
    )
    notes_max_tokens: int = Field(
        1000,
        description="Completion token cap for note analysis",
        ge=1,
    )
    notes_system_prompt: str = Field(
        DEFAULT_NOTES_SYSTEM_PROMPT,
        description="System prompt prepended to every note analysis request",
    )

    model_config = SettingsConfigDict(
        env_prefix="OPENAI_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enable rate limiting per client address",
    )
    rate_limit_requests: int = Field(
        100,
        description="Maximum number of requests allowed per window (per client)",
        ge=1,
    )
    rate_limit_window_seconds: int = Field(
        15 * 60,
        description="Rate limit window size in seconds",
        ge=1,
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )
    trust_forwarded_for: bool = Field(
        False,
        description="Key rate limits on the first X-Forwarded-For hop (behind a proxy)",
    )

    max_image_upload_mb: int = Field(
        10,
        description="Maximum size of a single uploaded image in megabytes",
        ge=1,
    )
    max_audio_upload_mb: int = Field(
        25,
        description="Maximum size of an uploaded audio file in megabytes",
        ge=1,
    )
    max_note_images: int = Field(
        10,
        description="Maximum number of images accepted by the note analysis relay",
        ge=1,
    )
    max_json_body_bytes: int = Field(
        1 * MB,
        description="Maximum size of a JSON request body in bytes",
        ge=1,
    )

    security_headers_enabled: bool = Field(
        True,
        description="Add HTTP hardening headers to every response",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * MB,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and echo the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class ServerSettings(BaseSettings):
    """Listen address for the bundled uvicorn runner."""

    host: str = Field("0.0.0.0", description="Interface to bind")
    port: int = Field(3000, description="Port to listen on", ge=1, le=65535)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    upstream: UpstreamSettings = Field(default_factory=_build_upstream_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    server: ServerSettings = Field(default_factory=_build_server_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
