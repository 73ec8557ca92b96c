"""Error types raised by the history store and its queries."""

from __future__ import annotations


class HistoryError(Exception):
    """Base class for shy-history errors."""


class StoreNotFoundError(HistoryError, FileNotFoundError):
    """The history database file does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"History database not found: {path}")
        self.path = path


class StoreIOError(HistoryError, OSError):
    """The history database could not be read or written."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class CommandNotFoundError(HistoryError, LookupError):
    """No command with the given id exists."""

    def __init__(self, command_id: int) -> None:
        super().__init__(f"Command not found: {command_id}")
        self.command_id = command_id


class UsageError(HistoryError, ValueError):
    """A query was called with missing or malformed arguments."""


class EventNotFoundError(HistoryError, LookupError):
    """No history event matches the given prefix."""

    def __init__(self, event: str) -> None:
        super().__init__(f"Event not found: {event}")
        self.event = event
