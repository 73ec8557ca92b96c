"""Git repository detection for recorded commands."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 2


@dataclass
class GitContext:
    repo: str | None = None
    branch: str | None = None


def _git(directory: str, *args: str) -> str | None:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=directory,
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("git %s failed in %s: %s", " ".join(args), directory, e)
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def detect_git_context(directory: str) -> GitContext | None:
    """Return remote URL and branch for ``directory``, or None outside a repository."""
    if _git(directory, "rev-parse", "--git-dir") is None:
        return None
    return GitContext(
        repo=_git(directory, "config", "--get", "remote.origin.url"),
        branch=_git(directory, "rev-parse", "--abbrev-ref", "HEAD"),
    )
