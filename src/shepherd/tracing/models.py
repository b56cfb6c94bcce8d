"""Normalized session entries and the spans built from them.

Every provider's log is decoded into the same closed set of entry
variants; the assembler never looks at raw provider JSON.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from shepherd.constants import (
    UNKNOWN,
    EntryKind,
    ProgressKind,
    Provider,
    SpanStatus,
    StopReason,
    SystemEventKind,
    TokenCategory,
)

# ── Log entries ──────────────────────────────────────────


@dataclass(frozen=True, kw_only=True)
class LogEntry:
    """Base for all normalized entries. ``timestamp`` is raw ISO-8601."""

    kind: ClassVar[EntryKind]

    timestamp: str | None = None


@dataclass(frozen=True, kw_only=True)
class HumanInput(LogEntry):
    """A genuinely human-authored prompt (one conversational turn)."""

    kind: ClassVar[EntryKind] = EntryKind.HUMAN_INPUT


@dataclass(frozen=True, kw_only=True)
class AssistantOutput(LogEntry):
    """One logical model response, after streaming dedup."""

    kind: ClassVar[EntryKind] = EntryKind.ASSISTANT_OUTPUT

    message_id: str | None = None
    model: str | None = None
    usage: dict[TokenCategory, int] = field(
        default_factory=lambda: dict[TokenCategory, int]()
    )
    thinking_blocks: int = 0
    stop_reason: str | None = None


@dataclass(frozen=True, kw_only=True)
class ToolCallBegin(LogEntry):
    kind: ClassVar[EntryKind] = EntryKind.TOOL_CALL_BEGIN

    call_id: str
    name: str
    arguments: dict[str, Any] = field(
        default_factory=lambda: dict[str, Any]()
    )
    output_tokens: int | None = None


@dataclass(frozen=True, kw_only=True)
class ToolCallEnd(LogEntry):
    """Result of a call.

    ``is_error`` is None when the provider's result record has no
    failure flag; the pairing resolver then falls back to a heuristic.
    """

    kind: ClassVar[EntryKind] = EntryKind.TOOL_CALL_END

    call_id: str
    is_error: bool | None = None
    response: Any = None


@dataclass(frozen=True, kw_only=True)
class ProgressEvent(LogEntry):
    kind: ClassVar[EntryKind] = EntryKind.PROGRESS

    progress: ProgressKind
    # mcp
    server: str = UNKNOWN
    tool: str = UNKNOWN
    elapsed_ms: float = 0
    # agent
    agent_id: str = UNKNOWN
    prompt: str = ""


@dataclass(frozen=True, kw_only=True)
class SystemEvent(LogEntry):
    kind: ClassVar[EntryKind] = EntryKind.SYSTEM

    event: SystemEventKind
    # token_totals only: cumulative usage, the last one wins
    usage: dict[TokenCategory, int] = field(
        default_factory=lambda: dict[TokenCategory, int]()
    )


type Entry = (
    HumanInput
    | AssistantOutput
    | ToolCallBegin
    | ToolCallEnd
    | ProgressEvent
    | SystemEvent
)


# ── Session ──────────────────────────────────────────────


@dataclass(frozen=True)
class SessionMeta:
    """Identifying metadata derived once per log."""

    provider: Provider
    session_id: str
    model: str = UNKNOWN
    git_branch: str = UNKNOWN
    git_repo: str = UNKNOWN
    start_ts: str | None = None
    end_ts: str | None = None
    # Only categories the provider actually reports get root attributes
    token_categories: tuple[TokenCategory, ...] = ()
    default_stop_reason: str = StopReason.UNKNOWN


@dataclass(frozen=True)
class ParsedSession:
    """Extractor output: metadata plus the ordered entry sequence."""

    meta: SessionMeta
    entries: tuple[Entry, ...] = ()


# ── Spans ────────────────────────────────────────────────


@dataclass(frozen=True)
class Span:
    """One timed operation. Times are nanosecond-epoch decimal strings."""

    trace_id: str
    span_id: str
    name: str
    start_ns: str
    end_ns: str
    parent_span_id: str | None = None
    status: SpanStatus = SpanStatus.OK
    attributes: dict[str, str] = field(
        default_factory=lambda: dict[str, str]()
    )

    @property
    def is_root(self) -> bool:
        return self.parent_span_id is None

    @property
    def duration_ns(self) -> int:
        return int(self.end_ns) - int(self.start_ns)

    def to_dict(self) -> dict[str, Any]:
        return {
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "parent_span_id": self.parent_span_id or "",
            "name": self.name,
            "start_ns": self.start_ns,
            "end_ns": self.end_ns,
            "status": int(self.status),
            "attributes": dict(self.attributes),
        }
