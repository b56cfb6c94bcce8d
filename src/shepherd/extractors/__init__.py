"""Per-provider session log extractors and format detection."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from shepherd.config import Settings
from shepherd.constants import Provider
from shepherd.errors import SessionLogUnreadable
from shepherd.extractors.base import Extractor
from shepherd.extractors.claude import ClaudeExtractor
from shepherd.extractors.codex import CodexExtractor, is_legacy_header
from shepherd.extractors.gemini import GeminiExtractor
from shepherd.tracing.models import ParsedSession

logger = logging.getLogger(__name__)

__all__ = [
    "ClaudeExtractor",
    "CodexExtractor",
    "Extractor",
    "GeminiExtractor",
    "detect_provider",
    "get_extractor",
    "parse_session",
]


def get_extractor(
    provider: Provider, settings: Settings | None = None
) -> Extractor:
    match provider:
        case Provider.CLAUDE:
            return ClaudeExtractor(settings)
        case Provider.CODEX:
            return CodexExtractor()
        case Provider.GEMINI:
            return GeminiExtractor()


def detect_provider(path: Path) -> Provider:
    """Pick the log schema from the file's first line.

    * not a complete JSON value (pretty-printed document) → Gemini
    * a single-line document with ``messages`` → Gemini
    * a ``session_meta`` envelope or bare session header → Codex
    * anything else (type-tagged transcript records) → Claude
    """
    try:
        with path.open(encoding="utf-8") as fh:
            first_line = fh.readline()
    except (OSError, UnicodeDecodeError) as exc:
        raise SessionLogUnreadable(path, "Cannot read session log") from exc

    if not first_line.strip():
        return Provider.CLAUDE
    try:
        head = json.loads(first_line)
    except json.JSONDecodeError:
        return Provider.GEMINI
    if not isinstance(head, dict):
        return Provider.CLAUDE
    if "messages" in head:
        return Provider.GEMINI
    if head.get("type") == "session_meta" or is_legacy_header(head):  # pyright: ignore[reportUnknownArgumentType]
        return Provider.CODEX
    return Provider.CLAUDE


def parse_session(
    path: Path,
    provider: Provider | None = None,
    settings: Settings | None = None,
) -> ParsedSession:
    """Extract a session log, detecting its provider when not given."""
    if provider is None:
        provider = detect_provider(path)
        logger.debug(
            "event=provider_detected path=%s provider=%s", path, provider
        )
    return get_extractor(provider, settings).extract(path)
