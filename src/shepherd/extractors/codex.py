"""Codex CLI rollout logs.

Location: ``~/.codex/sessions/YYYY/MM/DD/rollout-<ts>-<uuid>.jsonl``.

Two on-disk layouts exist and are told apart by content, not by a flag:

* enveloped (current): every line is ``{"timestamp", "type", "payload"}``
  with types ``session_meta``, ``turn_context``, ``response_item``,
  ``event_msg`` and ``compacted``.
* legacy: the first line is a bare session header ``{"id",
  "timestamp", "git", ...}`` followed by bare response items with no
  per-item timestamp, interleaved with ``{"record_type": "state"}``.

Function-call outputs carry no failure flag, so their status is left to
the pairing resolver's error-marker heuristic.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any

from shepherd.constants import (
    UNKNOWN,
    Provider,
    SystemEventKind,
    TokenCategory,
)
from shepherd.errors import MissingSessionId
from shepherd.extractors.base import (
    as_dict,
    first_model,
    first_value,
    iter_records,
    map_usage,
    repo_name,
    session_bounds,
)
from shepherd.tracing.models import (
    AssistantOutput,
    Entry,
    HumanInput,
    ParsedSession,
    SessionMeta,
    SystemEvent,
    ToolCallBegin,
    ToolCallEnd,
)

logger = logging.getLogger(__name__)

RELEVANT_TYPES = frozenset(
    {"session_meta", "turn_context", "response_item", "event_msg"}
)

# Envelope header of a ``compacted`` record (the replacement history,
# often megabytes); matched on the raw line so it is never decoded
_COMPACTED_LINE = re.compile(
    r'\s*\{\s*"timestamp"\s*:\s*"[^"]*"\s*,\s*"type"\s*:\s*"compacted"'
)

USAGE_FIELDS = {
    "input_tokens": TokenCategory.INPUT,
    "output_tokens": TokenCategory.OUTPUT,
    "cached_input_tokens": TokenCategory.CACHE_READ,
    "reasoning_output_tokens": TokenCategory.REASONING,
    "total_tokens": TokenCategory.TOTAL,
}
TOKEN_CATEGORIES = tuple(USAGE_FIELDS.values())

_CALL_TYPES = frozenset({"function_call", "custom_tool_call"})
_OUTPUT_TYPES = frozenset(
    {"function_call_output", "custom_tool_call_output"}
)

_EVENT_KINDS = {
    "context_compacted": SystemEventKind.COMPACTION,
    "turn_aborted": SystemEventKind.INTERRUPTION,
    "task_complete": SystemEventKind.TURN_COMPLETE,
}

type Record = dict[str, Any]


def is_enveloped(records: Sequence[Record]) -> bool:
    return any(r.get("type") == "session_meta" for r in records)


def is_legacy_header(record: Record) -> bool:
    return "id" in record and "type" not in record and "record_type" not in record


class CodexExtractor:
    """Rollout JSONL → normalized entries, either layout."""

    @property
    def provider(self) -> Provider:
        return Provider.CODEX

    def extract(self, path: Path) -> ParsedSession:
        records = list(iter_records(path, skip_line=_COMPACTED_LINE))
        if is_enveloped(records):
            session = self._extract_enveloped(path, records)
            strategy = "enveloped"
        else:
            session = self._extract_legacy(path, records)
            strategy = "legacy"
        logger.debug(
            "event=codex_extracted strategy=%s session_id=%s entries=%d",
            strategy,
            session.meta.session_id,
            len(session.entries),
        )
        return session

    # ── enveloped layout ─────────────────────────────────

    def _extract_enveloped(
        self, path: Path, records: Sequence[Record]
    ) -> ParsedSession:
        records = [r for r in records if r.get("type") in RELEVANT_TYPES]
        metas = [
            as_dict(r.get("payload"))
            for r in records
            if r.get("type") == "session_meta"
        ]
        session_id = first_value(m.get("id") for m in metas)
        if session_id is None:
            raise MissingSessionId(path, "No session_meta id in Codex log")

        git = next(
            (as_dict(m.get("git")) for m in metas if m.get("git")), {}
        )
        start_ts, end_ts = session_bounds(r.get("timestamp") for r in records)
        meta = SessionMeta(
            provider=Provider.CODEX,
            session_id=session_id,
            model=first_model(
                as_dict(r.get("payload")).get("model")
                for r in records
                if r.get("type") == "turn_context"
            ),
            git_branch=first_value([git.get("branch")]) or UNKNOWN,
            git_repo=repo_name(git.get("repository_url")),
            start_ts=start_ts,
            end_ts=end_ts,
            token_categories=TOKEN_CATEGORIES,
        )
        entries: list[Entry] = []
        for r in records:
            timestamp = r.get("timestamp")
            payload = as_dict(r.get("payload"))
            match r.get("type"):
                case "response_item":
                    entries.extend(_response_item(payload, timestamp))
                case "event_msg":
                    entries.extend(_event_msg(payload, timestamp))
                case _:
                    pass
        return ParsedSession(meta=meta, entries=tuple(entries))

    # ── legacy layout ────────────────────────────────────

    def _extract_legacy(
        self, path: Path, records: Sequence[Record]
    ) -> ParsedSession:
        header = next((r for r in records if is_legacy_header(r)), None)
        session_id = (
            first_value([header.get("id")]) if header is not None else None
        )
        if header is None or session_id is None:
            raise MissingSessionId(path, "No session header in Codex log")

        # Legacy items carry no timestamps; pin them to the session start
        session_ts = header.get("timestamp")
        git = as_dict(header.get("git"))
        meta = SessionMeta(
            provider=Provider.CODEX,
            session_id=session_id,
            git_branch=first_value([git.get("branch")]) or UNKNOWN,
            git_repo=repo_name(git.get("repository_url")),
            start_ts=session_ts,
            end_ts=session_ts,
            token_categories=TOKEN_CATEGORIES,
        )
        entries: list[Entry] = []
        for r in records:
            if r is header or "record_type" in r:
                continue
            timestamp = r.get("timestamp") or session_ts
            if r.get("type") == "message" and r.get("role") == "user":
                if _is_human_text(r.get("content")):
                    entries.append(HumanInput(timestamp=timestamp))
                continue
            entries.extend(_response_item(r, timestamp))
        return ParsedSession(meta=meta, entries=tuple(entries))


def _response_item(payload: Record, timestamp: str | None) -> Iterator[Entry]:
    item_type = payload.get("type")
    call_id = payload.get("call_id")
    if item_type in _CALL_TYPES and isinstance(call_id, str):
        raw_args = payload.get("arguments", payload.get("input"))
        yield ToolCallBegin(
            timestamp=timestamp,
            call_id=call_id,
            name=str(payload.get("name") or UNKNOWN),
            arguments=_decode_arguments(raw_args),
        )
    elif item_type in _OUTPUT_TYPES and isinstance(call_id, str):
        yield ToolCallEnd(
            timestamp=timestamp,
            call_id=call_id,
            is_error=None,
            response=payload.get("output"),
        )
    elif item_type == "reasoning":
        yield AssistantOutput(timestamp=timestamp, thinking_blocks=1)


def _event_msg(payload: Record, timestamp: str | None) -> Iterator[Entry]:
    event_type = payload.get("type")
    if event_type == "task_started":
        yield HumanInput(timestamp=timestamp)
    elif event_type == "token_count":
        info = payload.get("info")
        if isinstance(info, dict):
            yield SystemEvent(
                timestamp=timestamp,
                event=SystemEventKind.TOKEN_TOTALS,
                usage=map_usage(
                    info.get("total_token_usage"),  # pyright: ignore[reportUnknownMemberType,reportUnknownArgumentType]
                    USAGE_FIELDS,
                ),
            )
    elif event_type in _EVENT_KINDS:
        yield SystemEvent(timestamp=timestamp, event=_EVENT_KINDS[event_type])


def _decode_arguments(raw: Any) -> dict[str, Any]:
    """Arguments arrive as a JSON string (function calls) or raw text."""
    if isinstance(raw, dict):
        return raw  # pyright: ignore[reportUnknownVariableType]
    if isinstance(raw, str):
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        return as_dict(decoded)
    return {}


def _is_human_text(content: Any) -> bool:
    """Injected context blocks are XML-tagged; typed prompts are not."""
    if not isinstance(content, list):
        return False
    texts = [
        str(c.get("text", ""))  # pyright: ignore[reportUnknownMemberType]
        for c in content  # pyright: ignore[reportUnknownVariableType]
        if isinstance(c, dict) and c.get("type") == "input_text"  # pyright: ignore[reportUnknownMemberType]
    ]
    return any(t and not t.lstrip().startswith("<") for t in texts)
