"""Tests for the parse → assemble → export sequence."""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path
from typing import Any

import pytest
from conftest import RecordingTransport

from shepherd.config import Settings
from shepherd.constants import OTLP_TRACES_PATH, Provider
from shepherd.errors import SessionLogUnreadable
from shepherd.extractors import parse_session
from shepherd.pipeline import (
    build_trace,
    export_session,
    export_trace,
    launch_export,
)


class TestBuildTrace:
    def test_detects_provider(self, gemini_log: Path, settings: Settings) -> None:
        spans = build_trace(gemini_log, settings=settings)
        assert spans[0].name == "gemini.session"

    def test_meta_span_can_be_disabled(
        self, claude_log: Path, settings: Settings
    ) -> None:
        cfg = settings.model_copy(update={"meta_span_enabled": False})
        names = [s.name for s in build_trace(claude_log, Provider.CLAUDE, cfg)]
        assert "claude.session.meta" not in names

    def test_unreadable_log(self, tmp_path: Path, settings: Settings) -> None:
        with pytest.raises(SessionLogUnreadable):
            build_trace(tmp_path / "missing.jsonl", Provider.CLAUDE, settings)


class TestExport:
    def test_export_trace_sends_one_body(
        self,
        codex_log: Path,
        settings: Settings,
        transport: RecordingTransport,
    ) -> None:
        assert export_trace(codex_log, None, settings, transport) is True
        assert transport.paths() == [OTLP_TRACES_PATH]
        [body] = transport.bodies(OTLP_TRACES_PATH)
        spans = body["resourceSpans"][0]["scopeSpans"][0]["spans"]
        assert len(spans) == 5

    def test_trace_disabled(
        self,
        claude_log: Path,
        settings: Settings,
        transport: RecordingTransport,
    ) -> None:
        cfg = settings.model_copy(update={"trace_enabled": False})
        session = parse_session(claude_log, settings=cfg)
        assert export_session(session, cfg, transport) is False
        assert transport.sent == []

    def test_transport_failure_reported_not_raised(
        self,
        claude_log: Path,
        settings: Settings,
        failing_transport: RecordingTransport,
    ) -> None:
        session = parse_session(claude_log, settings=settings)
        assert export_session(session, settings, failing_transport) is False


def _root_repo(transport: RecordingTransport) -> str:
    [body] = transport.bodies(OTLP_TRACES_PATH)
    root = body["resourceSpans"][0]["scopeSpans"][0]["spans"][0]
    [value] = [a["value"] for a in root["attributes"] if a["key"] == "git.repo"]
    return value["stringValue"]


class TestGitRepoFallback:
    def test_fills_repo_the_log_never_names(
        self,
        claude_log: Path,
        settings: Settings,
        transport: RecordingTransport,
    ) -> None:
        export_trace(
            claude_log, Provider.CLAUDE, settings, transport, git_repo="widgets"
        )
        assert _root_repo(transport) == "widgets"

    def test_repo_named_in_log_wins(
        self,
        codex_log: Path,
        settings: Settings,
        transport: RecordingTransport,
    ) -> None:
        export_trace(
            codex_log, Provider.CODEX, settings, transport, git_repo="elsewhere"
        )
        assert _root_repo(transport) == "widgets"

    def test_without_fallback_repo_stays_unknown(
        self,
        claude_log: Path,
        settings: Settings,
        transport: RecordingTransport,
    ) -> None:
        export_trace(claude_log, Provider.CLAUDE, settings, transport)
        assert _root_repo(transport) == "unknown"


class TestLaunchExport:
    @pytest.fixture
    def spawned(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> list[tuple[list[str], dict[str, Any]]]:
        calls: list[tuple[list[str], dict[str, Any]]] = []

        def _popen(argv: list[str], **kwargs: Any) -> None:
            calls.append((argv, kwargs))

        monkeypatch.setattr("shepherd.tracing.exporter.subprocess.Popen", _popen)
        return calls

    def test_child_runs_export_command(
        self,
        tmp_path: Path,
        spawned: list[tuple[list[str], dict[str, Any]]],
    ) -> None:
        log = tmp_path / "rollout.jsonl"
        launch_export(log, Provider.CODEX)
        [(argv, kwargs)] = spawned
        assert argv == [
            sys.executable,
            "-m",
            "shepherd.cli",
            "export",
            str(log),
            "--provider",
            "codex",
        ]
        assert kwargs["start_new_session"] is True
        assert kwargs["stdin"] is subprocess.DEVNULL
        assert kwargs["stderr"] is subprocess.DEVNULL

    def test_git_repo_forwarded(
        self,
        tmp_path: Path,
        spawned: list[tuple[list[str], dict[str, Any]]],
    ) -> None:
        launch_export(tmp_path / "s.jsonl", Provider.CLAUDE, "widgets")
        [(argv, _)] = spawned
        assert argv[-2:] == ["--git-repo", "widgets"]
