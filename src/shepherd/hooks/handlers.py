"""Hook entry points for Claude Code, Codex CLI and Gemini CLI.

Each handler receives the raw hook payload (stdin for Claude and Gemini,
the first argv for Codex), emits activity counters and, at session or
turn end, locates the session log and launches a detached
``shepherd export`` child for it. The hook process itself never parses
a log. :func:`run_hook` is the single dispatch point and never raises:
a hook failure must not surface in the AI CLI.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import NamedTuple

from pydantic import BaseModel

from shepherd.config import Settings
from shepherd.constants import PROVIDER_LABELS, UNKNOWN, Provider
from shepherd.hooks.git_context import GitContext, get_git_context
from shepherd.hooks.locate import (
    find_claude_session,
    find_codex_rollout,
    find_gemini_session,
)
from shepherd.hooks.metrics import emit_counter
from shepherd.hooks.schemas import (
    CodexNotifyPayload,
    HookPayload,
    ModelResponsePayload,
    StopPayload,
    ToolUsePayload,
)
from shepherd.pipeline import launch_export
from shepherd.tracing.exporter import DetachedTransport, Transport
from shepherd.tracing.pairing import ErrorMarkers

logger = logging.getLogger(__name__)

type ExportLauncher = Callable[[Path, Provider, str], None]

GEMINI_REPLY = "{}"
CODEX_TURN_COMPLETE = "agent-turn-complete"

_error_markers = ErrorMarkers()


@dataclass
class HookContext:
    """What a handler may touch besides its payload."""

    settings: Settings = field(default_factory=Settings)
    transport: Transport | None = None
    environ: Mapping[str, str] = field(default_factory=lambda: os.environ)
    launch: ExportLauncher = launch_export

    def __post_init__(self) -> None:
        if self.transport is None:
            self.transport = DetachedTransport(self.settings)


type Handler = Callable[[str, HookContext], None]


class HookSpec(NamedTuple):
    handler: Handler
    reply: str | None = None


def _load[M: BaseModel](model: type[M], raw: str) -> M:
    return model.model_validate_json(raw) if raw.strip() else model()


def _gemini_cwd(payload: HookPayload, ctx: HookContext) -> str:
    return (
        payload.cwd
        or ctx.environ.get("GEMINI_CWD", "")
        or ctx.environ.get("GEMINI_PROJECT_DIR", "")
    )


def _count_event(
    provider: Provider, event_type: str, git: GitContext, ctx: HookContext
) -> None:
    emit_counter(
        "events",
        1,
        {
            "source": PROVIDER_LABELS[provider],
            "event_type": event_type,
            "git_repo": git.repo,
        },
        ctx.transport,
    )


def _count_tool_call(
    provider: Provider,
    payload: ToolUsePayload,
    git: GitContext,
    ctx: HookContext,
) -> None:
    status = "error" if _error_markers(payload.tool_response) else "success"
    emit_counter(
        "tool_calls",
        1,
        {
            "source": PROVIDER_LABELS[provider],
            "tool": payload.tool_name or UNKNOWN,
            "tool_status": status,
            "git_repo": git.repo,
        },
        ctx.transport,
    )
    _count_event(provider, "tool_use", git, ctx)


def _launch_export(
    path: Path, provider: Provider, ctx: HookContext, git_repo: str = ""
) -> None:
    if not ctx.settings.trace_enabled:
        logger.debug("event=trace_disabled provider=%s", provider.value)
        return
    try:
        ctx.launch(path, provider, git_repo)
    except OSError:
        logger.debug(
            "event=export_spawn_failed provider=%s path=%s",
            provider.value,
            path,
            exc_info=True,
        )


# ── Claude Code ──────────────────────────────────────────


def claude_post_tool_use(raw: str, ctx: HookContext) -> None:
    payload = _load(ToolUsePayload, raw)
    git = get_git_context(payload.cwd)
    _count_tool_call(Provider.CLAUDE, payload, git, ctx)


def claude_stop(raw: str, ctx: HookContext) -> None:
    payload = _load(StopPayload, raw)
    # Stop hooks that block re-enter Stop; only the first one counts
    if payload.stop_hook_active:
        return
    git = get_git_context(payload.cwd)
    _count_event(Provider.CLAUDE, "session_end", git, ctx)

    path = find_claude_session(
        payload.session_id, payload.cwd, ctx.settings, payload.transcript_path
    )
    if path is None:
        logger.debug(
            "event=claude_session_not_found session_id=%s cwd=%s",
            payload.session_id,
            payload.cwd,
        )
        return
    # Claude transcripts name the branch but never the repository
    _launch_export(path, Provider.CLAUDE, ctx, git.repo)


# ── Codex CLI ────────────────────────────────────────────


def codex_notify(raw: str, ctx: HookContext) -> None:
    if not raw.strip():
        return
    payload = _load(CodexNotifyPayload, raw)
    if payload.type != CODEX_TURN_COMPLETE:
        return
    git = get_git_context(payload.cwd)
    _count_event(Provider.CODEX, "turn_end", git, ctx)

    path = find_codex_rollout(payload.thread_id, ctx.settings)
    if path is None:
        logger.debug(
            "event=codex_rollout_not_found thread_id=%s", payload.thread_id
        )
        return
    _launch_export(path, Provider.CODEX, ctx)


# ── Gemini CLI ───────────────────────────────────────────


def gemini_after_tool(raw: str, ctx: HookContext) -> None:
    payload = _load(ToolUsePayload, raw)
    git = get_git_context(_gemini_cwd(payload, ctx))
    _count_tool_call(Provider.GEMINI, payload, git, ctx)


def gemini_after_agent(raw: str, ctx: HookContext) -> None:
    payload = _load(HookPayload, raw)
    git = get_git_context(_gemini_cwd(payload, ctx))
    _count_event(Provider.GEMINI, "turn_end", git, ctx)


def gemini_after_model(raw: str, ctx: HookContext) -> None:
    """Fires per streamed chunk; only the final one is counted."""
    payload = _load(ModelResponsePayload, raw)
    if not payload.finish_reason:
        return
    git = get_git_context(_gemini_cwd(payload, ctx))
    _count_event(Provider.GEMINI, "model_call", git, ctx)


def gemini_session_end(raw: str, ctx: HookContext) -> None:
    payload = _load(HookPayload, raw)
    git = get_git_context(_gemini_cwd(payload, ctx))
    _count_event(Provider.GEMINI, "session_end", git, ctx)

    session_id = payload.session_id or ctx.environ.get("GEMINI_SESSION_ID", "")
    path = find_gemini_session(session_id, ctx.settings)
    if path is None:
        return
    _launch_export(path, Provider.GEMINI, ctx)


HOOKS: dict[str, HookSpec] = {
    "claude-post-tool-use": HookSpec(claude_post_tool_use),
    "claude-stop": HookSpec(claude_stop),
    "codex-notify": HookSpec(codex_notify),
    "gemini-after-tool": HookSpec(gemini_after_tool, GEMINI_REPLY),
    "gemini-after-agent": HookSpec(gemini_after_agent, GEMINI_REPLY),
    "gemini-after-model": HookSpec(gemini_after_model, GEMINI_REPLY),
    "gemini-session-end": HookSpec(gemini_session_end, GEMINI_REPLY),
}


def run_hook(event: str, raw: str, ctx: HookContext | None = None) -> str | None:
    """Run the handler for ``event``. Returns what to print on stdout.

    Best-effort: handler failures are logged, never raised.
    """
    spec = HOOKS[event]
    context = ctx if ctx is not None else HookContext()
    try:
        spec.handler(raw, context)
    except Exception:
        logger.warning("event=hook_error hook=%s", event, exc_info=True)
    return spec.reply
