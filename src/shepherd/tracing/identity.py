"""Deterministic trace and span identifiers.

Re-parsing the same log must yield byte-identical ids, so nothing here
is random: the trace id is derived from the session id, and span ids are
``category base + ordinal`` rendered as 16 hex digits.

Known limitation: categories are spaced 10000 ids apart. A session with
more than 10000 entries in one category produces span ids that collide
with the next category's range. This is not defended against.
"""

from __future__ import annotations

from enum import Enum

from shepherd.constants import (
    AGENT_SPAN_BASE,
    COMPACTION_SPAN_BASE,
    MCP_SPAN_BASE,
    SPAN_ID_HEX_LENGTH,
    TOOL_SPAN_BASE,
)


class SpanCategory(Enum):
    """Span-id ranges, one per child span category."""

    TOOL = TOOL_SPAN_BASE
    MCP = MCP_SPAN_BASE
    AGENT = AGENT_SPAN_BASE
    COMPACTION = COMPACTION_SPAN_BASE


def trace_id_for(session_id: str) -> str:
    """Session ids are already unique opaque tokens; strip separators."""
    return session_id.replace("-", "").lower()


def span_id_for(category: SpanCategory, ordinal: int) -> str:
    """Fixed-width hex span id for the ``ordinal``-th span of a category."""
    return format(category.value + ordinal, f"0{SPAN_ID_HEX_LENGTH}x")
