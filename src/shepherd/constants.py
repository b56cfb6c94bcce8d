"""Shared constants: single source of truth for cross-module values.

All magic strings and numbers that appear in 2+ files belong here.
StrEnum members are str-compatible, so downstream code (span names,
OTLP attributes, CLI choices) works unchanged.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum

# ── String Enums ─────────────────────────────────────────


class Provider(StrEnum):
    """AI coding-assistant CLIs whose session logs we understand.

    The value doubles as the span-name prefix (``claude.session``).
    """

    CLAUDE = "claude"
    CODEX = "codex"
    GEMINI = "gemini"


class EntryKind(StrEnum):
    """Type tag carried by every normalized log entry."""

    HUMAN_INPUT = "human_input"
    ASSISTANT_OUTPUT = "assistant_output"
    TOOL_CALL_BEGIN = "tool_call_begin"
    TOOL_CALL_END = "tool_call_end"
    PROGRESS = "progress"
    SYSTEM = "system"


class ProgressKind(StrEnum):
    """Progress events that turn into their own spans."""

    MCP = "mcp"
    AGENT = "agent"


class SystemEventKind(StrEnum):
    """Out-of-band session events."""

    COMPACTION = "compaction"
    INTERRUPTION = "interruption"
    TURN_COMPLETE = "turn_complete"
    TOKEN_TOTALS = "token_totals"


class TokenCategory(StrEnum):
    """Token buckets; emitted as ``tokens.<value>`` on the root span."""

    INPUT = "input"
    OUTPUT = "output"
    CACHE_READ = "cache_read"
    CACHE_WRITE = "cache_write"
    REASONING = "reasoning"
    TOTAL = "total"


class StopReason(StrEnum):
    """Session termination reasons we synthesize ourselves."""

    END_TURN = "end_turn"
    INTERRUPTED = "interrupted"
    UNKNOWN = "unknown"


class SpanStatus(IntEnum):
    """OTLP status codes."""

    OK = 0  # STATUS_CODE_UNSET
    ERROR = 2  # STATUS_CODE_ERROR


# ── Metadata Fallbacks ───────────────────────────────────

UNKNOWN = "unknown"

# ``provider`` attribute / ``source`` metric label per CLI
PROVIDER_LABELS: dict[Provider, str] = {
    Provider.CLAUDE: "claude-code",
    Provider.CODEX: "codex",
    Provider.GEMINI: "gemini-cli",
}

# Claude writes this model label on locally synthesized messages.
PLACEHOLDER_MODEL = "<synthetic>"

# ── Span Identity ────────────────────────────────────────

ROOT_SPAN_ID = "0000000000000001"
META_SPAN_ID = "0000000000000002"
SPAN_ID_HEX_LENGTH = 16

# First span id of each category. Categories are spaced 10000 apart;
# a session with more entries than that in one category collides with
# the next range.
TOOL_SPAN_BASE = 16
MCP_SPAN_BASE = 10_016
AGENT_SPAN_BASE = 20_016
COMPACTION_SPAN_BASE = 30_016

# ── Timestamps ───────────────────────────────────────────

ISO_SECONDS_FORMAT = "%Y-%m-%dT%H:%M:%S"
NANOS_DIGITS = 9
NANOS_PER_SECOND = 1_000_000_000
NANOS_PER_MILLI = 1_000_000
EPOCH_ZERO_NS = "0"

# ── OTLP Wire ────────────────────────────────────────────

OTLP_TRACES_PATH = "/v1/traces"
OTLP_METRICS_PATH = "/v1/metrics"
OTLP_SPAN_KIND_INTERNAL = 1
OTLP_AGGREGATION_DELTA = 1
SCOPE_NAME = "shepherd-session-parser"
METRICS_SERVICE_NAME = "shepherd-hooks"

# ── Truncation ───────────────────────────────────────────

MAX_ATTRIBUTE_CHARS = 200
MAX_PROMPT_CHARS = 80

# ── Misc ─────────────────────────────────────────────────

GIT_COMMAND_TIMEOUT = 5
GEMINI_SESSION_PREFIX_CHARS = 8
