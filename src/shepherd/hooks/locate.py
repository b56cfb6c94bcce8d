"""Find the session log a hook invocation refers to."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from shepherd.config import Settings
from shepherd.constants import GEMINI_SESSION_PREFIX_CHARS

logger = logging.getLogger(__name__)


def claude_project_slug(cwd: str) -> str:
    """``/home/me/src/app`` → ``-home-me-src-app``."""
    return cwd.replace("/", "-")


def _newest(candidates: Iterable[Path]) -> Path | None:
    files = [p for p in candidates if p.is_file()]
    if not files:
        return None
    return max(files, key=lambda p: p.stat().st_mtime)


def find_claude_session(
    session_id: str,
    cwd: str,
    settings: Settings,
    transcript_path: str = "",
) -> Path | None:
    """Project-slug lookup first, then the path the hook payload names."""
    if session_id and cwd:
        path = (
            settings.claude_projects_dir
            / claude_project_slug(cwd)
            / f"{session_id}.jsonl"
        )
        if path.is_file():
            return path
    if transcript_path:
        path = Path(transcript_path).expanduser()
        if path.is_file():
            return path
    return None


def find_codex_rollout(thread_id: str, settings: Settings) -> Path | None:
    """``sessions/YYYY/MM/DD/rollout-<ts>-<thread id>.jsonl``, newest first."""
    root = settings.codex_sessions_dir
    if not thread_id or not root.is_dir():
        return None
    return _newest(root.rglob(f"rollout-*{thread_id}.jsonl"))


def find_gemini_session(session_id: str, settings: Settings) -> Path | None:
    """Chat files are named after the first id characters only."""
    root = settings.gemini_tmp_dir
    if not session_id or not root.is_dir():
        return None
    prefix = session_id[:GEMINI_SESSION_PREFIX_CHARS]
    found = _newest(root.glob(f"*/chats/session-*-{prefix}*.json"))
    if found is None:
        logger.debug(
            "event=gemini_session_not_found session_id=%s", session_id
        )
    return found
