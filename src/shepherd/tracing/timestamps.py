"""ISO-8601 timestamps → nanosecond-epoch decimal strings.

Timestamps are never routed through floats: the whole-second part is
parsed with a fixed format and the fractional part is kept as digits,
so ``.123456789`` survives exactly.
"""

from __future__ import annotations

import calendar
import logging
import re
from datetime import datetime
from typing import NamedTuple

from shepherd.constants import (
    EPOCH_ZERO_NS,
    ISO_SECONDS_FORMAT,
    NANOS_DIGITS,
    NANOS_PER_MILLI,
    NANOS_PER_SECOND,
)

logger = logging.getLogger(__name__)

_ZONE_PATTERN = re.compile(r"(Z|[+-]\d{2}:?\d{2})$", re.IGNORECASE)


class TimestampParts(NamedTuple):
    """A UTC instant split into whole seconds and nanoseconds."""

    seconds: int
    nanos: int

    @property
    def is_unknown(self) -> bool:
        return self.seconds == 0 and self.nanos == 0

    def to_ns(self) -> str:
        return str(self.seconds * NANOS_PER_SECOND + self.nanos)

    def subtract_ms(self, ms: float) -> TimestampParts:
        """Move the instant back by ``ms`` milliseconds.

        Borrows one second when the nanosecond part would go negative.
        """
        if ms <= 0:
            return self
        whole_s, rem_ms = divmod(ms, 1000)
        seconds = self.seconds - int(whole_s)
        nanos = self.nanos - int(rem_ms * NANOS_PER_MILLI)
        if nanos < 0:
            seconds -= 1
            nanos += NANOS_PER_SECOND
        return TimestampParts(seconds, nanos)


UNKNOWN_INSTANT = TimestampParts(0, 0)


def parse_timestamp(ts: object) -> TimestampParts:
    """Split an ISO-8601 string into :class:`TimestampParts`.

    Accepts ``2026-01-14T16:28:46Z``, ``2026-01-14T16:28:46.274Z``,
    ``2026-01-14T16:28:46.274+02:00`` and naive strings (read as UTC).
    None, empty, unparseable and non-string input (an epoch number in a
    malformed record) map to epoch zero, which callers must treat as
    "unknown", never as a real instant.
    """
    if not isinstance(ts, str) or not ts:
        return UNKNOWN_INSTANT
    text = ts.strip()

    offset_s = 0
    t_index = text.find("T")
    match = _ZONE_PATTERN.search(text)
    if match and t_index != -1 and match.start() > t_index:
        zone = match.group(1)
        text = text[: match.start()]
        if zone.upper() != "Z":
            digits = zone[1:].replace(":", "")
            sign = -1 if zone[0] == "-" else 1
            offset_s = sign * (int(digits[:2]) * 3600 + int(digits[2:]) * 60)

    whole, _, fraction = text.partition(".")
    try:
        parsed = datetime.strptime(whole, ISO_SECONDS_FORMAT)
    except ValueError:
        logger.debug("event=timestamp_unparseable value=%s", ts)
        return UNKNOWN_INSTANT

    seconds = calendar.timegm(parsed.timetuple()) - offset_s
    digits = (fraction + "0" * NANOS_DIGITS)[:NANOS_DIGITS]
    nanos = int(digits) if digits.isdigit() else 0
    return TimestampParts(seconds, nanos)


def to_ns(ts: str | None) -> str:
    """ISO-8601 string → nanosecond epoch as a decimal string."""
    parts = parse_timestamp(ts)
    if parts.is_unknown:
        return EPOCH_ZERO_NS
    return parts.to_ns()


def subtract_ms(ts: str | None, ms: float) -> str:
    """Nanosecond epoch of ``ts`` minus an elapsed-millisecond duration.

    Used when a provider only reports completion time plus duration.
    An unknown ``ts`` stays unknown.
    """
    parts = parse_timestamp(ts)
    if parts.is_unknown:
        return EPOCH_ZERO_NS
    return parts.subtract_ms(ms).to_ns()
