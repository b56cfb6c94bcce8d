"""Exceptions that abort a session-log parse.

Only two conditions stop a parse outright: the log cannot be read, or
no session identifier exists in it. Everything else (unpaired calls,
missing timestamps, malformed lines) degrades to a documented fallback
inside the extractors and the assembler.
"""

from __future__ import annotations

from pathlib import Path


class SessionLogError(Exception):
    """Base class for parse-aborting session log errors."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(f"{message}: {path}")
        self.path = path


class SessionLogUnreadable(SessionLogError):
    """The log file is missing, unreadable, or not JSON at all."""


class MissingSessionId(SessionLogError):
    """No entry in the log exposes a session identifier."""
