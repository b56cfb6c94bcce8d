"""Tests for CLI argument parsing and the parse / hook / export / send commands."""

from __future__ import annotations

import io
import json
import logging
from pathlib import Path
from typing import Any

import httpx
import pytest
from conftest import RecordingTransport

from shepherd.cli import AUTO_PROVIDER, _build_parser, main
from shepherd.config import Settings
from shepherd.constants import OTLP_METRICS_PATH, OTLP_TRACES_PATH
from shepherd.hooks.git_context import GitContext


@pytest.fixture(autouse=True)
def _isolated_env(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    """No developer .env, no real session directories."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CLAUDE_PROJECTS_DIR", str(tmp_path / "claude"))
    monkeypatch.setenv("CODEX_SESSIONS_DIR", str(tmp_path / "codex"))
    monkeypatch.setenv("GEMINI_TMP_DIR", str(tmp_path / "gemini"))


class FakeHttpTransport:
    """Stands in for HttpTransport; records what would be posted."""

    name = "fake-http"
    posted: list[tuple[str, str, bytes]] = []
    error: Exception | None = None

    def __init__(self, settings: Settings) -> None:
        self._url = settings.otel_http_url

    def send(self, path: str, body: bytes) -> None:
        if self.error is not None:
            raise self.error
        self.posted.append((self._url, path, body))


@pytest.fixture
def fake_http(monkeypatch: pytest.MonkeyPatch) -> type[FakeHttpTransport]:
    FakeHttpTransport.posted = []
    FakeHttpTransport.error = None
    monkeypatch.setattr("shepherd.cli.HttpTransport", FakeHttpTransport)
    return FakeHttpTransport


class TestArgParser:
    def test_version_flag(self) -> None:
        args = _build_parser().parse_args(["--version"])
        assert args.version is True

    def test_parse_defaults(self) -> None:
        args = _build_parser().parse_args(["parse", "s.jsonl"])
        assert args.command == "parse"
        assert args.session_file == "s.jsonl"
        assert args.provider == AUTO_PROVIDER
        assert args.emit is False
        assert args.service_name is None

    def test_send_defaults(self) -> None:
        args = _build_parser().parse_args(["send"])
        assert args.path == OTLP_TRACES_PATH
        assert args.endpoint is None
        assert args.body_file is None

    def test_export_defaults(self) -> None:
        args = _build_parser().parse_args(["export", "s.jsonl"])
        assert args.command == "export"
        assert args.session_file == "s.jsonl"
        assert args.provider == AUTO_PROVIDER
        assert args.git_repo == ""

    def test_unknown_hook_rejected(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["hook", "claude-pre-tool-use"])

    def test_no_command_prints_help(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        main([])
        assert "usage: shepherd" in capsys.readouterr().out


class TestVersion:
    def test_prints_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["--version"])
        assert capsys.readouterr().out.strip() == "shepherd 0.1.0"


class TestParseCommand:
    def test_prints_one_json_line_per_span(
        self, claude_log: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        main(["parse", str(claude_log)])
        lines = capsys.readouterr().out.splitlines()
        spans = [json.loads(line) for line in lines]
        assert spans[0]["name"] == "claude.session"
        assert spans[0]["parent_span_id"] == ""
        assert spans[0]["trace_id"] == "abc123"
        assert all(s["parent_span_id"] == "0000000000000001" for s in spans[1:])

    def test_explicit_provider(
        self, codex_legacy_log: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        main(["parse", "-p", "codex", str(codex_legacy_log)])
        first = json.loads(capsys.readouterr().out.splitlines()[0])
        assert first["name"] == "codex.session"

    def test_log_without_session_id_exits_1(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        log = tmp_path / "anon.jsonl"
        log.write_text(
            json.dumps({"type": "user", "message": {"content": "hi"}}) + "\n",
            encoding="utf-8",
        )
        with pytest.raises(SystemExit) as excinfo:
            main(["parse", str(log)])
        assert excinfo.value.code == 1
        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err.startswith("Error:")

    def test_emit_uses_service_name_override(
        self,
        gemini_log: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        transport = RecordingTransport()
        monkeypatch.setattr(
            "shepherd.cli.DetachedTransport", lambda settings: transport
        )
        main(["parse", "--emit", "--service-name", "ci-gemini", str(gemini_log)])
        assert capsys.readouterr().out == ""
        [body] = transport.bodies(OTLP_TRACES_PATH)
        resource = body["resourceSpans"][0]["resource"]
        assert resource["attributes"][0]["value"]["stringValue"] == "ci-gemini"

    def test_invalid_configuration_exits_1(
        self,
        claude_log: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.setenv("MAX_PROMPT_CHARS", "0")
        with pytest.raises(SystemExit) as excinfo:
            main(["parse", str(claude_log)])
        assert excinfo.value.code == 1
        assert "invalid configuration" in capsys.readouterr().err


class TestHookCommand:
    @pytest.fixture
    def transport(self, monkeypatch: pytest.MonkeyPatch) -> RecordingTransport:
        recording = RecordingTransport()
        monkeypatch.setattr(
            "shepherd.hooks.handlers.DetachedTransport",
            lambda settings: recording,
        )
        monkeypatch.setattr(
            "shepherd.hooks.handlers.get_git_context",
            lambda cwd: GitContext(branch="main", repo="widgets"),
        )
        return recording

    def test_payload_argument(
        self, transport: RecordingTransport, capsys: pytest.CaptureFixture[str]
    ) -> None:
        main(["hook", "codex-notify", json.dumps({"type": "agent-turn-complete"})])
        assert transport.paths() == [OTLP_METRICS_PATH]
        assert capsys.readouterr().out == ""

    def test_payload_on_stdin_and_gemini_reply(
        self,
        transport: RecordingTransport,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.setattr("sys.stdin", io.StringIO('{"session_id": "g-1"}'))
        main(["hook", "gemini-after-agent"])
        assert capsys.readouterr().out.strip() == "{}"
        assert transport.paths() == [OTLP_METRICS_PATH]

    def test_invalid_configuration_exits_0(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("OTEL_HTTP_URL", " ")
        with pytest.raises(SystemExit) as excinfo:
            main(["hook", "claude-stop", "{}"])
        assert excinfo.value.code == 0


class TestExportCommand:
    @staticmethod
    def _trace(fake_http: type[FakeHttpTransport]) -> dict[str, Any]:
        [(_, path, body)] = fake_http.posted
        assert path == OTLP_TRACES_PATH
        return json.loads(body)

    def test_posts_trace_with_git_repo(
        self, claude_log: Path, fake_http: type[FakeHttpTransport]
    ) -> None:
        main(["export", str(claude_log), "-p", "claude", "--git-repo", "widgets"])
        resource_spans = self._trace(fake_http)["resourceSpans"][0]
        service = resource_spans["resource"]["attributes"][0]["value"]
        assert service["stringValue"] == "claude-code-session"
        root = resource_spans["scopeSpans"][0]["spans"][0]
        attrs = {a["key"]: a["value"] for a in root["attributes"]}
        assert root["name"] == "claude.session"
        assert attrs["git.repo"] == {"stringValue": "widgets"}

    def test_log_without_session_id_posts_nothing(
        self,
        tmp_path: Path,
        fake_http: type[FakeHttpTransport],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        log = tmp_path / "anon.jsonl"
        log.write_text(
            json.dumps({"type": "user", "message": {"content": "hi"}}) + "\n",
            encoding="utf-8",
        )
        with caplog.at_level(logging.WARNING, logger="shepherd.cli"):
            main(["export", str(log)])
        assert fake_http.posted == []
        assert "export_session_log_error" in caplog.text

    def test_collector_errors_swallowed(
        self, gemini_log: Path, fake_http: type[FakeHttpTransport]
    ) -> None:
        fake_http.error = httpx.ConnectError("refused")
        main(["export", str(gemini_log)])
        assert fake_http.posted == []


class TestSendCommand:
    def test_body_file_posted_and_deleted(
        self, tmp_path: Path, fake_http: type[FakeHttpTransport]
    ) -> None:
        body_file = tmp_path / "body.json"
        body_file.write_bytes(b'{"resourceSpans":[]}')
        main(
            [
                "send",
                "--endpoint",
                "http://collector:4318/",
                "--path",
                OTLP_METRICS_PATH,
                "--body-file",
                str(body_file),
            ]
        )
        assert fake_http.posted == [
            ("http://collector:4318", OTLP_METRICS_PATH, b'{"resourceSpans":[]}')
        ]
        assert not body_file.exists()

    def test_missing_body_file_is_ignored(
        self, tmp_path: Path, fake_http: type[FakeHttpTransport]
    ) -> None:
        main(["send", "--body-file", str(tmp_path / "gone.json")])
        assert fake_http.posted == []

    def test_empty_stdin_sends_nothing(
        self,
        monkeypatch: pytest.MonkeyPatch,
        fake_http: type[FakeHttpTransport],
    ) -> None:
        monkeypatch.setattr("sys.stdin", io.TextIOWrapper(io.BytesIO(b"")))
        main(["send"])
        assert fake_http.posted == []

    @pytest.mark.parametrize(
        "error",
        [httpx.ConnectError("refused"), httpx.InvalidURL("Invalid port: 'x'")],
    )
    def test_transport_errors_swallowed(
        self,
        tmp_path: Path,
        fake_http: type[FakeHttpTransport],
        error: Exception,
    ) -> None:
        fake_http.error = error
        body_file = tmp_path / "body.json"
        body_file.write_bytes(b"{}")
        main(["send", "--body-file", str(body_file)])
        assert not body_file.exists()
