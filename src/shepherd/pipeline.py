"""Log file → spans → collector, the sequence every entry point runs."""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path

from shepherd.config import Settings
from shepherd.constants import UNKNOWN, Provider
from shepherd.extractors import parse_session
from shepherd.tracing.assembler import assemble
from shepherd.tracing.exporter import (
    DetachedTransport,
    Transport,
    export_spans,
    spawn_detached,
)
from shepherd.tracing.models import ParsedSession, Span

logger = logging.getLogger(__name__)


def build_trace(
    path: Path,
    provider: Provider | None = None,
    settings: Settings | None = None,
) -> list[Span]:
    """Parse ``path`` and assemble its spans.

    Raises :class:`~shepherd.errors.SessionLogError` when the log is
    unreadable or carries no session id; no spans are produced then.
    """
    cfg = settings if settings is not None else Settings()
    return assemble(parse_session(path, provider, cfg), cfg)


def export_session(
    session: ParsedSession,
    settings: Settings | None = None,
    transport: Transport | None = None,
) -> bool:
    """Assemble an already-parsed session and export it."""
    cfg = settings if settings is not None else Settings()
    if not cfg.trace_enabled:
        logger.debug(
            "event=trace_disabled session_id=%s", session.meta.session_id
        )
        return False
    spans = assemble(session, cfg)
    return export_spans(
        spans,
        cfg.service_name(session.meta.provider),
        transport if transport is not None else DetachedTransport(cfg),
    )


def export_trace(
    path: Path,
    provider: Provider | None = None,
    settings: Settings | None = None,
    transport: Transport | None = None,
    *,
    git_repo: str = "",
) -> bool:
    """Parse ``path`` and hand its trace to the collector.

    ``git_repo`` fills ``git.repo`` for logs that never name their
    repository; a repo recorded in the log wins.
    """
    cfg = settings if settings is not None else Settings()
    session = parse_session(path, provider, cfg)
    if git_repo and session.meta.git_repo == UNKNOWN:
        session = dataclasses.replace(
            session,
            meta=dataclasses.replace(session.meta, git_repo=git_repo),
        )
    return export_session(session, cfg, transport)


def launch_export(path: Path, provider: Provider, git_repo: str = "") -> None:
    """Run :func:`export_trace` in a detached ``shepherd export`` child.

    Hooks call this instead of parsing in-process and return as soon as
    the child is spawned.
    """
    args = ["export", str(path), "--provider", provider.value]
    if git_repo:
        args += ["--git-repo", git_repo]
    spawn_detached(args)
    logger.debug(
        "event=export_launched path=%s provider=%s", path, provider
    )
