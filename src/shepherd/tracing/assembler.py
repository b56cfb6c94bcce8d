"""Build the span set for one session trace.

:func:`assemble` is a pure function of the parsed session: no I/O, no
clock, no shared state. Spans come out in a fixed order:

1. root ``<provider>.session`` span
2. optional zero-duration ``<provider>.session.meta`` child
3. one ``<provider>.tool.<name>`` span per tool call
4. one ``<provider>.mcp.<server>.<tool>`` span per completed MCP call
5. one ``<provider>.agent.<id>`` span per sub-agent
6. one zero-duration ``<provider>.compaction`` span per compaction

Every child's parent is the root; there is no deeper nesting.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from shepherd.config import Settings
from shepherd.constants import (
    EPOCH_ZERO_NS,
    META_SPAN_ID,
    PROVIDER_LABELS,
    ROOT_SPAN_ID,
    ProgressKind,
    SpanStatus,
    StopReason,
    SystemEventKind,
    TokenCategory,
)
from shepherd.tracing.identity import SpanCategory, span_id_for, trace_id_for
from shepherd.tracing.models import (
    AssistantOutput,
    Entry,
    HumanInput,
    ParsedSession,
    ProgressEvent,
    SessionMeta,
    Span,
    SystemEvent,
    ToolCallBegin,
)
from shepherd.tracing.pairing import (
    ResolvedCall,
    index_call_ends,
    resolve_calls,
)
from shepherd.tracing.timestamps import subtract_ms, to_ns

logger = logging.getLogger(__name__)


def assemble(
    session: ParsedSession,
    settings: Settings | None = None,
    *,
    is_error_response: Callable[[Any], bool] | None = None,
) -> list[Span]:
    """Return every span of the session's trace, root first."""
    cfg = settings if settings is not None else Settings()
    meta = session.meta
    entries = session.entries
    trace_id = trace_id_for(meta.session_id)
    prefix = meta.provider.value

    calls = resolve_calls(
        [e for e in entries if isinstance(e, ToolCallBegin)],
        index_call_ends(entries),
        is_error_response=is_error_response,
        max_chars=cfg.max_attribute_chars,
    )
    mcps = [
        e for e in entries
        if isinstance(e, ProgressEvent) and e.progress == ProgressKind.MCP
    ]
    agents = _group_agents(entries)
    compactions = _system_events(entries, SystemEventKind.COMPACTION)

    root_start = to_ns(meta.start_ts)
    spans = [
        _span(
            trace_id,
            ROOT_SPAN_ID,
            f"{prefix}.session",
            root_start,
            to_ns(meta.end_ts),
            parent=None,
            attributes=_root_attributes(meta, entries, calls),
        )
    ]

    if cfg.meta_span_enabled:
        spans.append(
            _span(
                trace_id,
                META_SPAN_ID,
                f"{prefix}.session.meta",
                root_start,
                root_start,
                attributes={
                    "session.id": meta.session_id,
                    "provider": PROVIDER_LABELS[meta.provider],
                },
            )
        )

    for i, call in enumerate(calls):
        spans.append(
            _span(
                trace_id,
                span_id_for(SpanCategory.TOOL, i),
                f"{prefix}.tool.{call.name}",
                to_ns(call.start_ts),
                to_ns(call.end_ts),
                status=SpanStatus.ERROR if call.is_error else SpanStatus.OK,
                attributes=_tool_attributes(call),
            )
        )

    for i, mcp in enumerate(mcps):
        spans.append(
            _span(
                trace_id,
                span_id_for(SpanCategory.MCP, i),
                f"{prefix}.mcp.{mcp.server}.{mcp.tool}",
                subtract_ms(mcp.timestamp, mcp.elapsed_ms),
                to_ns(mcp.timestamp),
                attributes={
                    "mcp.server": mcp.server,
                    "mcp.tool": mcp.tool,
                    "mcp.duration_ms": _number(mcp.elapsed_ms),
                },
            )
        )

    for i, (agent_id, events) in enumerate(agents.items()):
        stamps = sorted(
            int(ns)
            for ns in (to_ns(e.timestamp) for e in events)
            if ns != EPOCH_ZERO_NS
        )
        start = str(stamps[0]) if stamps else EPOCH_ZERO_NS
        end = str(stamps[-1]) if stamps else EPOCH_ZERO_NS
        spans.append(
            _span(
                trace_id,
                span_id_for(SpanCategory.AGENT, i),
                f"{prefix}.agent.{agent_id}",
                start,
                end,
                attributes={
                    "agent.id": agent_id,
                    "agent.prompt": events[0].prompt,
                    "agent.progress_count": str(len(events)),
                },
            )
        )

    for i, compaction in enumerate(compactions):
        at = to_ns(compaction.timestamp)
        spans.append(
            _span(
                trace_id,
                span_id_for(SpanCategory.COMPACTION, i),
                f"{prefix}.compaction",
                at,
                at,
            )
        )

    logger.debug(
        "event=trace_assembled provider=%s trace_id=%s spans=%d",
        prefix,
        trace_id,
        len(spans),
    )
    return spans


def _span(
    trace_id: str,
    span_id: str,
    name: str,
    start_ns: str,
    end_ns: str,
    *,
    parent: str | None = ROOT_SPAN_ID,
    status: SpanStatus = SpanStatus.OK,
    attributes: dict[str, str] | None = None,
) -> Span:
    # Epoch zero means unknown; one known end makes a point span there
    if start_ns == EPOCH_ZERO_NS:
        start_ns = end_ns
    elif end_ns == EPOCH_ZERO_NS:
        end_ns = start_ns
    # end_ns >= start_ns holds for every span we emit
    if int(end_ns) < int(start_ns):
        end_ns = start_ns
    return Span(
        trace_id=trace_id,
        span_id=span_id,
        name=name,
        start_ns=start_ns,
        end_ns=end_ns,
        parent_span_id=parent,
        status=status,
        attributes=attributes or {},
    )


def _root_attributes(
    meta: SessionMeta,
    entries: Sequence[Entry],
    calls: Sequence[ResolvedCall],
) -> dict[str, str]:
    attrs = {
        "session.id": meta.session_id,
        "model": meta.model,
        "provider": PROVIDER_LABELS[meta.provider],
        "git.branch": meta.git_branch,
        "git.repo": meta.git_repo,
    }
    for category, count in token_totals(meta, entries).items():
        attrs[f"tokens.{category}"] = str(count)

    interruptions = len(
        _system_events(entries, SystemEventKind.INTERRUPTION)
    )
    attrs.update({
        "tool.count": str(len(calls)),
        "tool.error_count": str(sum(1 for c in calls if c.is_error)),
        "turn.count": str(
            sum(1 for e in entries if isinstance(e, HumanInput))
        ),
        "thinking.block_count": str(
            sum(
                e.thinking_blocks
                for e in entries
                if isinstance(e, AssistantOutput)
            )
        ),
        "compaction.count": str(
            len(_system_events(entries, SystemEventKind.COMPACTION))
        ),
        "stop_reason": stop_reason(meta, entries),
    })
    if interruptions:
        attrs["has_interruption"] = "true"
        attrs["interruption.count"] = str(interruptions)
    return attrs


def _tool_attributes(call: ResolvedCall) -> dict[str, str]:
    attrs = {
        "tool.name": call.name,
        "tool.call_id": call.call_id,
        "tool.is_error": "true" if call.is_error else "false",
    }
    for suffix, value in call.inputs.items():
        attrs[f"tool.input.{suffix}"] = value
    if call.output_tokens is not None:
        attrs["tokens.output"] = str(call.output_tokens)
    return attrs


def token_totals(
    meta: SessionMeta, entries: Sequence[Entry]
) -> dict[TokenCategory, int]:
    """Token counts for the categories the provider reports.

    A provider that logs cumulative totals is read from its last
    ``token_totals`` event; otherwise per-message usage is summed.
    """
    totals = _system_events(entries, SystemEventKind.TOKEN_TOTALS)
    if totals:
        usage = totals[-1].usage
    else:
        usage = dict[TokenCategory, int]()
        for e in entries:
            if isinstance(e, AssistantOutput):
                for category, count in e.usage.items():
                    usage[category] = usage.get(category, 0) + count
    return {c: usage.get(c, 0) for c in meta.token_categories}


def stop_reason(meta: SessionMeta, entries: Sequence[Entry]) -> str:
    """Why the session ended, judged from its last decisive entry."""
    for entry in reversed(entries):
        match entry:
            case SystemEvent(event=SystemEventKind.INTERRUPTION):
                return StopReason.INTERRUPTED
            case SystemEvent(event=SystemEventKind.TURN_COMPLETE):
                return StopReason.END_TURN
            case AssistantOutput(stop_reason=str() as reason) if reason:
                return reason
            case _:
                pass
    return meta.default_stop_reason


def _system_events(
    entries: Sequence[Entry], kind: SystemEventKind
) -> list[SystemEvent]:
    return [
        e for e in entries if isinstance(e, SystemEvent) and e.event == kind
    ]


def _group_agents(
    entries: Sequence[Entry],
) -> dict[str, list[ProgressEvent]]:
    """agent_id → its progress events, in first-seen agent order."""
    groups: dict[str, list[ProgressEvent]] = {}
    for e in entries:
        if isinstance(e, ProgressEvent) and e.progress == ProgressKind.AGENT:
            groups.setdefault(e.agent_id, []).append(e)
    return groups


def _number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)
