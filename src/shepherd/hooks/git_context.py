"""Repository and branch of the directory a hook fired in."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import NamedTuple

from shepherd.constants import GIT_COMMAND_TIMEOUT

logger = logging.getLogger(__name__)


class GitContext(NamedTuple):
    branch: str = ""
    repo: str = ""


def _git(cwd: str, *args: str) -> str:
    try:
        result = subprocess.run(  # noqa: S603
            ["git", "-C", cwd, *args],  # noqa: S607
            capture_output=True,
            text=True,
            timeout=GIT_COMMAND_TIMEOUT,
            check=False,
        )
    except (OSError, subprocess.SubprocessError):
        logger.debug("event=git_unavailable cwd=%s args=%s", cwd, args)
        return ""
    if result.returncode != 0:
        return ""
    return result.stdout.strip()


def get_git_context(cwd: str) -> GitContext:
    """Branch and origin repo name for ``cwd``; empty strings outside git."""
    cwd = cwd or "."
    branch = _git(cwd, "rev-parse", "--abbrev-ref", "HEAD")
    remote = _git(cwd, "remote", "get-url", "origin")
    repo = Path(remote.rstrip("/")).name.removesuffix(".git") if remote else ""
    return GitContext(branch=branch, repo=repo)
