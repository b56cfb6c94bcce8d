"""Tests for the Gemini CLI session extractor."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from shepherd.config import Settings
from shepherd.constants import SpanStatus, TokenCategory
from shepherd.errors import MissingSessionId, SessionLogUnreadable
from shepherd.extractors.gemini import GeminiExtractor
from shepherd.tracing.assembler import assemble, token_totals
from shepherd.tracing.models import ToolCallBegin, ToolCallEnd


def _write(tmp_path: Path, document: dict[str, Any]) -> Path:
    path = tmp_path / "session-2025-10-02T08-00-abcdef12.json"
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


class TestGeminiExtractor:
    def test_metadata(self, gemini_log: Path) -> None:
        meta = GeminiExtractor().extract(gemini_log).meta
        assert meta.session_id == "9f8e7d6c-5b4a-4321-8fed-cba987654321"
        assert meta.model == "gemini-2.5-pro"
        assert meta.start_ts == "2025-10-02T08:00:00.000Z"
        assert meta.end_ts == "2025-10-02T08:01:00.000Z"
        assert meta.git_branch == "unknown"

    def test_usage_summed_across_messages(self, gemini_log: Path) -> None:
        session = GeminiExtractor().extract(gemini_log)
        assert token_totals(session.meta, session.entries) == {
            TokenCategory.INPUT: 2100,
            TokenCategory.OUTPUT: 70,
            TokenCategory.CACHE_READ: 200,
            TokenCategory.REASONING: 30,
            TokenCategory.TOTAL: 2400,
        }

    def test_trace(self, gemini_log: Path, settings: Settings) -> None:
        spans = assemble(GeminiExtractor().extract(gemini_log), settings)
        assert [s.name for s in spans] == [
            "gemini.session",
            "gemini.session.meta",
            "gemini.tool.run_shell_command",
            "gemini.tool.read_file",
        ]
        root, meta_span, shell, read = spans
        assert root.duration_ns == 60_000_000_000
        assert root.attributes["provider"] == "gemini-cli"
        assert root.attributes["turn.count"] == "2"
        assert root.attributes["thinking.block_count"] == "1"
        assert root.attributes["has_interruption"] == "true"
        assert root.attributes["stop_reason"] == "interrupted"
        assert meta_span.attributes["provider"] == "gemini-cli"

        assert shell.status == SpanStatus.OK
        assert shell.duration_ns == 2_000_000_000
        assert shell.attributes["tool.input.command"] == "ls -la"
        assert read.status == SpanStatus.ERROR
        assert read.attributes["tool.input.file_path"] == "missing.txt"

    def test_bounds_fall_back_to_messages(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            {
                "sessionId": "s-1",
                "messages": [
                    {"type": "user", "timestamp": "2025-10-02T08:00:09Z"},
                    {"type": "user", "timestamp": "2025-10-02T08:00:01Z"},
                ],
            },
        )
        meta = GeminiExtractor().extract(path).meta
        assert meta.start_ts == "2025-10-02T08:00:01Z"
        assert meta.end_ts == "2025-10-02T08:00:09Z"

    def test_call_without_status_or_timestamp_has_no_result(
        self, tmp_path: Path
    ) -> None:
        path = _write(
            tmp_path,
            {
                "sessionId": "s-1",
                "messages": [
                    {
                        "id": "g1",
                        "type": "gemini",
                        "timestamp": "2025-10-02T08:00:05Z",
                        "toolCalls": [{"name": "glob", "args": {"pattern": "*.py"}}],
                    }
                ],
            },
        )
        entries = GeminiExtractor().extract(path).entries
        begins = [e for e in entries if isinstance(e, ToolCallBegin)]
        assert [b.call_id for b in begins] == ["g1:0"]
        assert not any(isinstance(e, ToolCallEnd) for e in entries)

    def test_cancelled_status_is_error(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            {
                "sessionId": "s-1",
                "messages": [
                    {
                        "type": "gemini",
                        "timestamp": "2025-10-02T08:00:05Z",
                        "toolCalls": [
                            {
                                "id": "c1",
                                "name": "write_file",
                                "status": "cancelled",
                                "timestamp": "2025-10-02T08:00:06Z",
                            }
                        ],
                    }
                ],
            },
        )
        ends = [
            e
            for e in GeminiExtractor().extract(path).entries
            if isinstance(e, ToolCallEnd)
        ]
        assert [e.is_error for e in ends] == [True]

    def test_no_decisive_entry_means_end_turn(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            {
                "sessionId": "s-1",
                "messages": [
                    {"type": "user", "timestamp": "2025-10-02T08:00:01Z"},
                    {"type": "gemini", "timestamp": "2025-10-02T08:00:02Z"},
                ],
            },
        )
        root = assemble(GeminiExtractor().extract(path))[0]
        assert root.attributes["stop_reason"] == "end_turn"

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text('{"sessionId": "s-1", "messages": [', encoding="utf-8")
        with pytest.raises(SessionLogUnreadable):
            GeminiExtractor().extract(path)

    def test_missing_session_id(self, tmp_path: Path) -> None:
        path = _write(tmp_path, {"messages": []})
        with pytest.raises(MissingSessionId):
            GeminiExtractor().extract(path)
