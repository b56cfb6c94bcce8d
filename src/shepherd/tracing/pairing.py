"""Pair tool-call begin events with their results and classify outcome.

Error classification prefers an explicit failure flag on the result
record. Result kinds without such a flag fall back to
:class:`ErrorMarkers`, a permissive string heuristic: it is an
approximate classifier, not a precise one (``"0 tests failed"`` counts
as an error, a failure message phrased without any marker does not).
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from shepherd.constants import MAX_ATTRIBUTE_CHARS
from shepherd.tracing.models import Entry, ToolCallBegin, ToolCallEnd

# Checked in order; the first hit wins. Case-insensitive, and ``^``
# anchors at any line start.
DEFAULT_ERROR_MARKERS: tuple[str, ...] = (
    r"^error",
    r'"error"',
    r"traceback",
    r'exit[ _]code"?:?\s*[1-9]',
    r"command failed",
    r"failed",
    r"panic:",
)

# (attribute suffix, argument keys tried in order)
_ARGUMENT_FIELDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("command", ("command", "cmd")),
    ("file_path", ("file_path", "path")),
    ("pattern", ("pattern", "query")),
)


def stringify_payload(payload: Any) -> str:
    """Render a response payload the way it would appear on the wire."""
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload
    return json.dumps(
        payload, separators=(",", ":"), ensure_ascii=False, default=str
    )


class ErrorMarkers:
    """Ordered, case-insensitive marker set over a stringified payload."""

    def __init__(
        self, markers: Sequence[str] = DEFAULT_ERROR_MARKERS
    ) -> None:
        self._patterns = tuple(
            re.compile(m, re.IGNORECASE | re.MULTILINE) for m in markers
        )

    def first_match(self, payload: Any) -> str | None:
        """Return the first marker pattern that matches, if any."""
        text = stringify_payload(payload)
        if not text:
            return None
        for pattern in self._patterns:
            if pattern.search(text):
                return pattern.pattern
        return None

    def __call__(self, payload: Any) -> bool:
        return self.first_match(payload) is not None


@dataclass(frozen=True)
class ResolvedCall:
    """A begin event joined with its result (or lack of one)."""

    call_id: str
    name: str
    start_ts: str | None
    end_ts: str | None
    is_error: bool = False
    paired: bool = False
    inputs: dict[str, str] = field(
        default_factory=lambda: dict[str, str]()
    )
    output_tokens: int | None = None


def truncate(value: str, limit: int) -> str:
    return value if len(value) <= limit else value[:limit]


def extract_inputs(
    arguments: Mapping[str, Any],
    max_chars: int = MAX_ATTRIBUTE_CHARS,
) -> dict[str, str]:
    """Pull command / file path / search pattern out of call arguments."""
    inputs: dict[str, str] = {}
    for suffix, keys in _ARGUMENT_FIELDS:
        for key in keys:
            value = arguments.get(key)
            if isinstance(value, list):
                value = " ".join(str(v) for v in value)
            if isinstance(value, str) and value:
                inputs[suffix] = truncate(value, max_chars)
                break
    return inputs


def index_call_ends(entries: Iterable[Entry]) -> dict[str, ToolCallEnd]:
    """call_id → result. A repeated result for one call keeps the last."""
    return {
        e.call_id: e for e in entries if isinstance(e, ToolCallEnd)
    }


def resolve_calls(
    begins: Sequence[ToolCallBegin],
    ends: Mapping[str, ToolCallEnd],
    *,
    is_error_response: Callable[[Any], bool] | None = None,
    max_chars: int = MAX_ATTRIBUTE_CHARS,
) -> list[ResolvedCall]:
    """One :class:`ResolvedCall` per begin event, in begin order.

    A begin event with no result ends where it starts (zero duration)
    and is classified ok.
    """
    predicate = is_error_response or ErrorMarkers()
    resolved: list[ResolvedCall] = []
    for begin in begins:
        end = ends.get(begin.call_id)
        if end is None:
            end_ts = begin.timestamp
            is_error = False
        else:
            end_ts = end.timestamp or begin.timestamp
            if end.is_error is not None:
                is_error = end.is_error
            else:
                is_error = predicate(end.response)
        resolved.append(
            ResolvedCall(
                call_id=begin.call_id,
                name=begin.name,
                start_ts=begin.timestamp,
                end_ts=end_ts,
                is_error=is_error,
                paired=end is not None,
                inputs=extract_inputs(begin.arguments, max_chars),
                output_tokens=begin.output_tokens,
            )
        )
    return resolved
