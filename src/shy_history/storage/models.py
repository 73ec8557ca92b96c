"""Data models for shy-history."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any


def _now() -> int:
    return int(time.time())


@dataclass
class Command:
    """A recorded shell command."""

    command_text: str
    working_dir: str
    exit_status: int = 0
    timestamp: int = field(default_factory=_now)
    duration: int | None = None
    git_repo: str | None = None
    git_branch: str | None = None
    source_app: str | None = None
    source_pid: int | None = None
    source_active: bool | None = None
    id: int | None = None

    @classmethod
    def from_row(cls, row: Any) -> Command:
        active = row["source_active"]
        return cls(
            id=row["id"],
            timestamp=row["timestamp"],
            exit_status=row["exit_status"],
            duration=row["duration"],
            command_text=row["command_text"],
            working_dir=row["working_dir"],
            git_repo=row["git_repo"],
            git_branch=row["git_branch"],
            source_app=row["source_app"],
            source_pid=row["source_pid"],
            source_active=None if active is None else bool(active),
        )
