"""Gemini CLI chat sessions.

Location: ``~/.gemini/tmp/<project hash>/chats/session-<ts>-<id>.json``.
Unlike the other two CLIs this is a single JSON document with a
``messages`` array, rewritten in place as the session progresses.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from shepherd.constants import (
    UNKNOWN,
    Provider,
    StopReason,
    SystemEventKind,
    TokenCategory,
)
from shepherd.errors import MissingSessionId, SessionLogUnreadable
from shepherd.extractors.base import (
    as_dict,
    first_model,
    first_value,
    map_usage,
    read_text,
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

USAGE_FIELDS = {
    "input": TokenCategory.INPUT,
    "output": TokenCategory.OUTPUT,
    "cached": TokenCategory.CACHE_READ,
    "thoughts": TokenCategory.REASONING,
    "total": TokenCategory.TOTAL,
}
TOKEN_CATEGORIES = tuple(USAGE_FIELDS.values())

CANCELLED_NOTICE = "Request cancelled."
_FAILED_STATUSES = frozenset({"error", "cancelled"})

type Message = dict[str, Any]


class GeminiExtractor:
    """Session JSON document → normalized entries."""

    @property
    def provider(self) -> Provider:
        return Provider.GEMINI

    def extract(self, path: Path) -> ParsedSession:
        try:
            document = json.loads(read_text(path))
        except json.JSONDecodeError as exc:
            raise SessionLogUnreadable(
                path, "Gemini session is not valid JSON"
            ) from exc

        doc = as_dict(document)
        session_id = first_value([doc.get("sessionId")])
        if session_id is None:
            raise MissingSessionId(path, "No sessionId in Gemini session")

        raw_messages = doc.get("messages")
        messages: list[Message] = [
            m
            for m in (raw_messages if isinstance(raw_messages, list) else [])
            if isinstance(m, dict)
        ]
        start_ts = doc.get("startTime")
        end_ts = doc.get("lastUpdated")
        if not start_ts or not end_ts:
            first, last = session_bounds(m.get("timestamp") for m in messages)
            start_ts = start_ts or first
            end_ts = end_ts or last

        meta = SessionMeta(
            provider=Provider.GEMINI,
            session_id=session_id,
            model=first_model(
                m.get("model") for m in messages if m.get("type") == "gemini"
            ),
            start_ts=start_ts,
            end_ts=end_ts,
            token_categories=TOKEN_CATEGORIES,
            default_stop_reason=StopReason.END_TURN,
        )
        entries: list[Entry] = []
        for index, message in enumerate(messages):
            entries.extend(_message_entries(message, index))
        logger.debug(
            "event=gemini_extracted session_id=%s messages=%d entries=%d",
            session_id,
            len(messages),
            len(entries),
        )
        return ParsedSession(meta=meta, entries=tuple(entries))


def _message_entries(message: Message, index: int) -> Iterator[Entry]:
    timestamp = message.get("timestamp")
    match message.get("type"):
        case "user":
            yield HumanInput(timestamp=timestamp)
        case "gemini":
            thoughts = message.get("thoughts")
            yield AssistantOutput(
                timestamp=timestamp,
                message_id=message.get("id"),
                model=message.get("model"),
                usage=map_usage(message.get("tokens"), USAGE_FIELDS),
                thinking_blocks=len(thoughts) if isinstance(thoughts, list) else 0,
            )
            yield from _tool_calls(message, index)
        case "info" if message.get("content") == CANCELLED_NOTICE:
            yield SystemEvent(
                timestamp=timestamp, event=SystemEventKind.INTERRUPTION
            )
        case _:
            pass


def _tool_calls(message: Message, index: int) -> Iterator[Entry]:
    """A call starts at its message and ends at its own timestamp."""
    calls = message.get("toolCalls")
    if not isinstance(calls, list):
        return
    message_key = message.get("id") or f"message-{index}"
    for n, raw in enumerate(calls):
        call = as_dict(raw)
        if not call:
            continue
        call_id = str(call.get("id") or f"{message_key}:{n}")
        yield ToolCallBegin(
            timestamp=message.get("timestamp"),
            call_id=call_id,
            name=str(call.get("name") or UNKNOWN),
            arguments=as_dict(call.get("args")),
        )
        status = call.get("status")
        if status is None and not call.get("timestamp"):
            continue
        yield ToolCallEnd(
            timestamp=call.get("timestamp"),
            call_id=call_id,
            is_error=status in _FAILED_STATUSES if status is not None else None,
            response=call.get("result"),
        )
