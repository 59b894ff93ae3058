"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the queue worker, and the
command line tools share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class GeminiSettings(BaseSettings):
    """Configuration for Gemini model access."""

    model_config = SettingsConfigDict(env_prefix="GEMINI_", extra="ignore")

    api_key: Optional[str] = None
    model_name: str = "gemini-1.5-pro"
    vision_model_name: str = "gemini-1.5-flash"


class OpenAISettings(BaseSettings):
    """Configuration for an OpenAI-compatible chat completions endpoint."""

    model_config = SettingsConfigDict(env_prefix="OPENAI_", extra="ignore")

    api_key: Optional[str] = None
    base_url: str = "https://api.openai.com/v1"
    model_name: str = "gpt-4o"
    vision_model_name: str = "gpt-4o"
    request_timeout_seconds: float = 120.0


class PipelineSettings(BaseSettings):
    """Budgets and bounds for the analysis pipeline and chat."""

    model_config = SettingsConfigDict(env_prefix="APP_", extra="ignore")

    analysis_timeout_seconds: float = Field(300.0, gt=0)
    timeout_safety_margin_seconds: float = Field(20.0, ge=0)
    attempt_timeout_seconds: Optional[float] = Field(120.0, gt=0)
    max_retries: int = Field(3, ge=0)
    retry_backoff_seconds: float = Field(2.0, ge=0)
    chat_timeout_seconds: float = Field(30.0, gt=0)
    chat_max_retries: int = Field(1, ge=0)
    cache_capacity: int = Field(20, ge=1)
    cache_ttl_seconds: Optional[float] = Field(300.0, gt=0)
    cache_fallback_results: bool = True
    max_text_chars: int = Field(60_000, ge=1)
    max_upload_bytes: int = Field(10 * 1024 * 1024, ge=1)
    min_extracted_chars: int = Field(20, ge=1)
    prompt_version: str = "v1"
    chat_history_limit: int = Field(20, ge=0)
    worker_concurrency: int = Field(2, ge=1)
    worker_poll_interval_seconds: float = Field(2.0, gt=0)


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        env_prefix="APP_", extra="ignore", populate_by_name=True
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = "INFO"
    database_path: str = Field(
        "var/credit_analysis.db",
        description="SQLite file holding analyses, chat messages, and notifications.",
    )
    queue_path: str = Field(
        "var/analysis_queue.db",
        description="SQLite file backing the analysis job queue.",
    )
    reasoning_provider: Literal["gemini", "openai"] = "gemini"
    gemini: GeminiSettings = Field(default_factory=GeminiSettings)
    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)

    @field_validator("reasoning_provider", mode="before")
    @classmethod
    def _normalize_provider(cls, value: object) -> object:
        """Accept provider names regardless of case or padding."""
        if isinstance(value, str):
            return value.strip().lower()
        return value


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()


__all__ = [
    "AppSettings",
    "GeminiSettings",
    "OpenAISettings",
    "PipelineSettings",
    "get_settings",
]
