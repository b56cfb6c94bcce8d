"""Shared test fixtures: sample session logs, settings, recording transport."""

import json
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import pytest

from shepherd.config import Settings

FIXTURES_DIR = Path(__file__).parent / "fixtures" / "sessions"

CLAUDE_SESSION = FIXTURES_DIR / "claude_session.jsonl"
CODEX_ROLLOUT = FIXTURES_DIR / "codex_rollout.jsonl"
CODEX_LEGACY = FIXTURES_DIR / "codex_legacy.jsonl"
GEMINI_SESSION = FIXTURES_DIR / "gemini_session.json"


class RecordingTransport:
    """In-memory transport; keeps every (path, decoded body) it is handed."""

    def __init__(self, *, fail: bool = False) -> None:
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self._fail = fail

    @property
    def name(self) -> str:
        return "recording"

    def send(self, path: str, body: bytes) -> None:
        if self._fail:
            msg = "collector unreachable"
            raise ConnectionError(msg)
        self.sent.append((path, json.loads(body)))

    def paths(self) -> list[str]:
        return [p for p, _ in self.sent]

    def bodies(self, path: str) -> list[dict[str, Any]]:
        return [b for p, b in self.sent if p == path]


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from the developer's .env and home directory."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        claude_projects_dir=tmp_path / "claude" / "projects",
        codex_sessions_dir=tmp_path / "codex" / "sessions",
        gemini_tmp_dir=tmp_path / "gemini" / "tmp",
    )


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def write_jsonl(tmp_path: Path) -> Callable[..., Path]:
    """Write records (dicts or raw strings) as one NDJSON file."""

    def _write(
        records: Iterable[dict[str, Any] | str], name: str = "session.jsonl"
    ) -> Path:
        path = tmp_path / name
        lines = [
            r if isinstance(r, str) else json.dumps(r) for r in records
        ]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def failing_transport() -> RecordingTransport:
    return RecordingTransport(fail=True)


@pytest.fixture
def claude_log() -> Path:
    return CLAUDE_SESSION


@pytest.fixture
def codex_log() -> Path:
    return CODEX_ROLLOUT


@pytest.fixture
def codex_legacy_log() -> Path:
    return CODEX_LEGACY


@pytest.fixture
def gemini_log() -> Path:
    return GEMINI_SESSION
