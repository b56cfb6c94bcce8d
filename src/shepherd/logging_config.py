"""Singleton logging configuration.

Hooks run inside the AI CLI, whose stdout may be parsed (Gemini expects
JSON there), so all log output goes to stderr. Idempotent (guarded by a
module-level flag).
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] - %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"

# Third-party loggers to suppress to WARNING
_SUPPRESSED_LOGGERS = (
    "httpx",
    "httpcore",
)

_setup_done = False


def setup_logging(level: str = "WARNING") -> None:
    """Configure the root logger on stderr.

    Second call is a no-op.
    """
    global _setup_done  # noqa: PLW0603
    if _setup_done:
        return
    _setup_done = True

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        stream=sys.stderr,
    )

    for name in _SUPPRESSED_LOGGERS:
        lg = logging.getLogger(name)
        lg.setLevel(logging.WARNING)
