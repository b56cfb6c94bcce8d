"""Environment-based configuration."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from shepherd.constants import MAX_ATTRIBUTE_CHARS, MAX_PROMPT_CHARS, Provider

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Reads from .env file and environment variables."""

    # Collector (same variable the shell hooks honoured)
    otel_http_url: str = "http://localhost:4318"
    export_timeout_seconds: float = 5.0

    # Tracing
    trace_enabled: bool = True
    meta_span_enabled: bool = True
    max_attribute_chars: int = MAX_ATTRIBUTE_CHARS
    max_prompt_chars: int = MAX_PROMPT_CHARS

    # Logging
    log_level: str = "WARNING"

    # Session log locations
    claude_projects_dir: Path = Field(
        default_factory=lambda: Path.home() / ".claude" / "projects"
    )
    codex_sessions_dir: Path = Field(
        default_factory=lambda: Path.home() / ".codex" / "sessions"
    )
    gemini_tmp_dir: Path = Field(
        default_factory=lambda: Path.home() / ".gemini" / "tmp"
    )

    # service.name per provider
    claude_service_name: str = "claude-code-session"
    codex_service_name: str = "codex-session"
    gemini_service_name: str = "gemini-session"

    @field_validator("otel_http_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("otel_http_url must not be empty")
        return v

    @field_validator("max_attribute_chars", "max_prompt_chars")
    @classmethod
    def _positive_limit(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("truncation limits must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            logger.warning("Unknown LOG_LEVEL %s, using WARNING", v)
            return "WARNING"
        return level

    def service_name(self, provider: Provider) -> str:
        """Logical service label the trace is exported under."""
        return {
            Provider.CLAUDE: self.claude_service_name,
            Provider.CODEX: self.codex_service_name,
            Provider.GEMINI: self.gemini_service_name,
        }[provider]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "",
        "extra": "ignore",
    }
