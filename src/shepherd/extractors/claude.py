"""Claude Code session logs.

Location: ``~/.claude/projects/<cwd slug>/<session id>.jsonl``, one
type-tagged record per line. Only ``user``, ``assistant``, ``progress``
and ``system`` records matter; ``file-history-snapshot`` and
``queue-operation`` records are large and are dropped before decoding.

Claude streams one logical assistant message as several records that
share ``message.id``. Later records are the more complete ones (final
content, final usage), so per message id only the last record is kept.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any

from shepherd.config import Settings
from shepherd.constants import (
    UNKNOWN,
    ProgressKind,
    Provider,
    SystemEventKind,
    TokenCategory,
)
from shepherd.errors import MissingSessionId
from shepherd.extractors.base import (
    as_dict,
    as_float,
    first_model,
    first_value,
    iter_records,
    map_usage,
    session_bounds,
)
from shepherd.tracing.models import (
    AssistantOutput,
    Entry,
    HumanInput,
    ParsedSession,
    ProgressEvent,
    SessionMeta,
    SystemEvent,
    ToolCallBegin,
    ToolCallEnd,
)
from shepherd.tracing.pairing import truncate

logger = logging.getLogger(__name__)

RELEVANT_TYPES = frozenset({"user", "assistant", "progress", "system"})
_RELEVANT_LINE = re.compile(
    r'"type"\s*:\s*"(?:user|assistant|progress|system)"'
)

USAGE_FIELDS = {
    "input_tokens": TokenCategory.INPUT,
    "output_tokens": TokenCategory.OUTPUT,
    "cache_read_input_tokens": TokenCategory.CACHE_READ,
    "cache_creation_input_tokens": TokenCategory.CACHE_WRITE,
}
TOKEN_CATEGORIES = tuple(USAGE_FIELDS.values())

INTERRUPT_MARKER = "[Request interrupted by user"
_COMPACTION_SUBTYPES = frozenset({"compact_boundary", "microcompact_boundary"})
_THINKING_BLOCKS = frozenset({"thinking", "redacted_thinking"})

type Record = dict[str, Any]


class ClaudeExtractor:
    """NDJSON transcript → normalized entries."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings if settings is not None else Settings()

    @property
    def provider(self) -> Provider:
        return Provider.CLAUDE

    def extract(self, path: Path) -> ParsedSession:
        records = list(
            iter_records(
                path, line_filter=_RELEVANT_LINE, types=RELEVANT_TYPES
            )
        )

        session_id = first_value(r.get("sessionId") for r in records)
        if session_id is None:
            raise MissingSessionId(path, "No sessionId in Claude log")

        conversation = [
            r for r in records if r.get("type") in ("user", "assistant")
        ]
        start_ts, end_ts = session_bounds(
            r.get("timestamp") for r in conversation
        )
        meta = SessionMeta(
            provider=Provider.CLAUDE,
            session_id=session_id,
            model=first_model(
                _message(r).get("model")
                for r in records
                if r.get("type") == "assistant"
            ),
            git_branch=first_value(r.get("gitBranch") for r in records)
            or UNKNOWN,
            start_ts=start_ts,
            end_ts=end_ts,
            token_categories=TOKEN_CATEGORIES,
        )
        entries = tuple(self._entries(records))
        logger.debug(
            "event=claude_extracted session_id=%s records=%d entries=%d",
            session_id,
            len(records),
            len(entries),
        )
        return ParsedSession(meta=meta, entries=entries)

    def _entries(self, records: Sequence[Record]) -> Iterator[Entry]:
        # message id → index of its last (most complete) record
        last_index: dict[str, int] = {}
        # tool_use id → (block, record) from its last occurrence
        latest_calls: dict[str, tuple[Record, Record]] = {}
        for i, r in enumerate(records):
            if r.get("type") != "assistant":
                continue
            message = _message(r)
            message_id = message.get("id")
            if isinstance(message_id, str):
                last_index[message_id] = i
            for block in _blocks(message, "tool_use"):
                call_id = block.get("id")
                if isinstance(call_id, str):
                    latest_calls[call_id] = (block, r)

        emitted_calls: set[str] = set()
        for i, r in enumerate(records):
            match r.get("type"):
                case "assistant":
                    yield from self._assistant(
                        r, i, last_index, latest_calls, emitted_calls
                    )
                case "user":
                    yield from self._user(r)
                case "progress":
                    yield from self._progress(r)
                case "system":
                    if r.get("subtype") in _COMPACTION_SUBTYPES:
                        yield SystemEvent(
                            timestamp=r.get("timestamp"),
                            event=SystemEventKind.COMPACTION,
                        )
                case _:
                    pass

    def _assistant(
        self,
        record: Record,
        index: int,
        last_index: dict[str, int],
        latest_calls: dict[str, tuple[Record, Record]],
        emitted_calls: set[str],
    ) -> Iterator[Entry]:
        message = _message(record)
        message_id = message.get("id")
        is_final = (
            not isinstance(message_id, str)
            or last_index.get(message_id) == index
        )
        if is_final:
            stop = message.get("stop_reason")
            yield AssistantOutput(
                timestamp=record.get("timestamp"),
                message_id=message_id if isinstance(message_id, str) else None,
                model=message.get("model"),
                usage=map_usage(message.get("usage"), USAGE_FIELDS),
                thinking_blocks=sum(
                    1
                    for b in _blocks(message)
                    if b.get("type") in _THINKING_BLOCKS
                ),
                stop_reason=stop if isinstance(stop, str) else None,
            )

        for block in _blocks(message, "tool_use"):
            call_id = block.get("id")
            if not isinstance(call_id, str) or call_id in emitted_calls:
                continue
            emitted_calls.add(call_id)
            latest_block, latest_record = latest_calls[call_id]
            output_tokens = as_dict(
                _message(latest_record).get("usage")
            ).get("output_tokens", 0)
            yield ToolCallBegin(
                timestamp=latest_record.get("timestamp"),
                call_id=call_id,
                name=str(latest_block.get("name") or UNKNOWN),
                arguments=as_dict(latest_block.get("input")),
                output_tokens=output_tokens
                if isinstance(output_tokens, int)
                else 0,
            )

    def _user(self, record: Record) -> Iterator[Entry]:
        timestamp = record.get("timestamp")
        content = _message(record).get("content")

        if isinstance(content, list):
            results = _blocks({"content": content}, "tool_result")
            if results:
                # Relayed call results share the user type but are not turns
                for block in results:
                    call_id = block.get("tool_use_id")
                    if isinstance(call_id, str):
                        yield ToolCallEnd(
                            timestamp=timestamp,
                            call_id=call_id,
                            is_error=bool(block.get("is_error", False)),
                            response=block.get("content"),
                        )
                return
            text = " ".join(
                str(b.get("text", "")) for b in _blocks({"content": content}, "text")
            )
        elif isinstance(content, str):
            text = content
        else:
            return

        if record.get("isMeta") or record.get("isCompactSummary"):
            return
        if text.lstrip().startswith(INTERRUPT_MARKER):
            yield SystemEvent(
                timestamp=timestamp, event=SystemEventKind.INTERRUPTION
            )
            return
        yield HumanInput(timestamp=timestamp)

    def _progress(self, record: Record) -> Iterator[Entry]:
        data = as_dict(record.get("data"))
        timestamp = record.get("timestamp")
        match data.get("type"):
            case "mcp_progress" if data.get("status") == "completed":
                yield ProgressEvent(
                    timestamp=timestamp,
                    progress=ProgressKind.MCP,
                    server=str(data.get("serverName") or UNKNOWN),
                    tool=str(data.get("toolName") or UNKNOWN),
                    elapsed_ms=as_float(data.get("elapsedTimeMs")),
                )
            case "agent_progress" if (
                as_dict(data.get("message")).get("type") == "user"
            ):
                yield ProgressEvent(
                    timestamp=timestamp,
                    progress=ProgressKind.AGENT,
                    agent_id=str(data.get("agentId") or UNKNOWN),
                    prompt=truncate(
                        str(data.get("prompt") or ""),
                        self._settings.max_prompt_chars,
                    ),
                )
            case _:
                pass


def _message(record: Record) -> Record:
    return as_dict(record.get("message"))


def _blocks(message: Record, block_type: str | None = None) -> list[Record]:
    content = message.get("content")
    if not isinstance(content, list):
        return []
    return [
        b
        for b in content  # pyright: ignore[reportUnknownVariableType]
        if isinstance(b, dict)
        and (block_type is None or b.get("type") == block_type)  # pyright: ignore[reportUnknownMemberType]
    ]
