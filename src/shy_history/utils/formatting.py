"""Output formatting for listed commands."""

from __future__ import annotations

import time

from shy_history.storage.models import Command

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
COLUMN_TAGS = ("timestamp", "status", "pwd", "cmd", "gb", "gr", "durs", "durms")


def _split(ms: int) -> tuple[int, int, int, int, int]:
    # Negative durations render as zero.
    total_seconds, millis = divmod(max(ms, 0), 1000)
    days, rest = divmod(total_seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    return days, hours, minutes, seconds, millis


def format_duration_seconds(ms: int | None) -> str:
    """Format milliseconds as e.g. ``2s``, ``1m12s``, ``1h12m0s``, ``1d4h0m0s``."""
    if ms is None:
        return "0s"
    days, hours, minutes, seconds, _ = _split(ms)
    if days > 0:
        return f"{days}d{hours}h{minutes}m{seconds}s"
    if hours > 0:
        return f"{hours}h{minutes}m{seconds}s"
    if minutes > 0:
        return f"{minutes}m{seconds}s"
    return f"{seconds}s"


def format_duration_milliseconds(ms: int | None) -> str:
    """Format milliseconds as e.g. ``500ms``, ``2s28ms``, ``1m12s0ms``, ``1d4h0m0s28ms``."""
    if ms is None:
        return "0ms"
    days, hours, minutes, seconds, millis = _split(ms)
    if days > 0:
        return f"{days}d{hours}h{minutes}m{seconds}s{millis}ms"
    if hours > 0:
        return f"{hours}h{minutes}m{seconds}s{millis}ms"
    if minutes > 0:
        return f"{minutes}m{seconds}s{millis}ms"
    if seconds > 0:
        return f"{seconds}s{millis}ms"
    return f"{millis}ms"


def format_timestamp(timestamp: int) -> str:
    return time.strftime(TIMESTAMP_FORMAT, time.localtime(timestamp))


def format_column(command: Command, tag: str) -> str | None:
    """Render one column of ``command``, or ``None`` for an unknown tag."""
    if tag == "timestamp":
        return format_timestamp(command.timestamp)
    if tag == "status":
        return str(command.exit_status)
    if tag == "pwd":
        return command.working_dir
    if tag == "cmd":
        return command.command_text
    if tag == "gb":
        return command.git_branch or ""
    if tag == "gr":
        return command.git_repo or ""
    if tag == "durs":
        return format_duration_seconds(command.duration)
    if tag == "durms":
        return format_duration_milliseconds(command.duration)
    return None


def format_columns(command: Command, fmt: str) -> str:
    """Render the comma-separated column tags in ``fmt``, tab-separated."""
    parts = []
    for tag in fmt.split(","):
        value = format_column(command, tag.strip())
        if value is not None:
            parts.append(value)
    return "\t".join(parts)
