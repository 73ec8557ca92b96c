"""Predicates shared by every history query."""

from __future__ import annotations

from dataclasses import dataclass
from fnmatch import fnmatchcase

from shy_history.errors import UsageError
from shy_history.storage.models import Command

DEFAULT_SELF_PREFIX = "shy"


@dataclass(frozen=True)
class SessionFilter:
    """A shell session token: ``app`` or ``app:pid``."""

    app: str
    pid: int | None = None

    @classmethod
    def parse(cls, token: str) -> SessionFilter:
        app, sep, pid_text = token.partition(":")
        if not app:
            raise UsageError(f"invalid session format: {token!r} (expected 'app' or 'app:pid')")
        if not sep:
            return cls(app=app)
        try:
            pid = int(pid_text)
        except ValueError:
            raise UsageError(f"invalid session PID: {pid_text!r}") from None
        if pid <= 0:
            raise UsageError("invalid session PID: must be positive")
        return cls(app=app, pid=pid)

    def matches(self, command: Command) -> bool:
        if command.source_app != self.app:
            return False
        return self.pid is None or command.source_pid == self.pid

    def __str__(self) -> str:
        return self.app if self.pid is None else f"{self.app}:{self.pid}"


@dataclass(frozen=True)
class CommandFilter:
    """AND-combined constraints on commands. Unset fields match everything."""

    working_dir: str | None = None
    session: SessionFilter | None = None
    exclude: str | None = None
    include_self: bool = False
    self_prefix: str = DEFAULT_SELF_PREFIX

    def is_self_invocation(self, text: str) -> bool:
        if not self.self_prefix:
            return False
        return text == self.self_prefix or text.startswith(self.self_prefix + " ")

    def matches(self, command: Command) -> bool:
        text = command.command_text
        if self.working_dir is not None and command.working_dir != self.working_dir:
            return False
        if self.session is not None and not self.session.matches(command):
            return False
        if self.exclude and fnmatchcase(text, self.exclude):
            return False
        if not self.include_self and self.is_self_invocation(text):
            return False
        return True
