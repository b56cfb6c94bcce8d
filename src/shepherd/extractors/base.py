"""Shared plumbing for the per-provider log extractors."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any, Protocol

from shepherd.constants import PLACEHOLDER_MODEL, UNKNOWN, Provider, TokenCategory
from shepherd.errors import SessionLogUnreadable
from shepherd.tracing.models import ParsedSession
from shepherd.tracing.timestamps import parse_timestamp

logger = logging.getLogger(__name__)


class Extractor(Protocol):
    """Decode one provider's session log into a :class:`ParsedSession`."""

    @property
    def provider(self) -> Provider: ...

    def extract(self, path: Path) -> ParsedSession: ...


def read_text(path: Path) -> str:
    """Read the whole log, mapping I/O failures to an input error."""
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SessionLogUnreadable(path, "Cannot read session log") from exc


def iter_records(
    path: Path,
    *,
    line_filter: re.Pattern[str] | None = None,
    skip_line: re.Pattern[str] | None = None,
    types: frozenset[str] | None = None,
) -> Iterator[dict[str, Any]]:
    """Yield decoded NDJSON records.

    ``line_filter`` (keep on match) and ``skip_line`` (drop on match) run
    on the raw line before decoding so large irrelevant records are never
    parsed; ``types`` then keeps only records whose top-level ``type`` is
    listed. Malformed lines are skipped.
    """
    text = read_text(path)
    for lineno, line in enumerate(text.splitlines(), 1):
        if not line.strip():
            continue
        if line_filter is not None and not line_filter.search(line):
            continue
        if skip_line is not None and skip_line.match(line):
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            logger.debug(
                "event=malformed_line path=%s line=%d", path, lineno
            )
            continue
        if not isinstance(record, dict):
            continue
        if types is not None and record.get("type") not in types:
            continue
        yield record  # pyright: ignore[reportUnknownArgumentType]


def first_value(
    values: Iterable[Any], exclude: frozenset[str] = frozenset()
) -> str | None:
    """First non-empty string value not in ``exclude``."""
    for value in values:
        if isinstance(value, str) and value and value not in exclude:
            return value
    return None


def first_model(values: Iterable[Any]) -> str:
    """First real model label, skipping the placeholder sentinel."""
    return first_value(values, frozenset({PLACEHOLDER_MODEL})) or UNKNOWN


def repo_name(url: str | None) -> str:
    """``git@github.com:org/repo.git`` → ``repo``."""
    if not url:
        return UNKNOWN
    name = re.sub(r"\.git$", "", url.rstrip("/").rsplit("/", 1)[-1])
    name = name.rsplit(":", 1)[-1]
    return name or UNKNOWN


def session_bounds(
    timestamps: Iterable[str | None],
) -> tuple[str | None, str | None]:
    """Earliest and latest parseable timestamp, as the raw strings."""
    known = [
        (parse_timestamp(ts), ts)
        for ts in timestamps
        if ts and not parse_timestamp(ts).is_unknown
    ]
    if not known:
        return None, None
    known.sort(key=lambda pair: pair[0])
    return known[0][1], known[-1][1]


def map_usage(
    raw: Any, fields: Mapping[str, TokenCategory]
) -> dict[TokenCategory, int]:
    """Provider usage object → token counts keyed by category."""
    if not isinstance(raw, dict):
        return {}
    usage: dict[TokenCategory, int] = {}
    for key, category in fields.items():
        value = raw.get(key)  # pyright: ignore[reportUnknownMemberType]
        if isinstance(value, bool) or not isinstance(value, int | float):
            continue
        usage[category] = usage.get(category, 0) + int(value)
    return usage


def as_float(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return 0.0
    return 0.0


def as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}  # pyright: ignore[reportUnknownVariableType]
