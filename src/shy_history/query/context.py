"""Context-aware prediction: what usually follows a given command."""

from __future__ import annotations

from collections.abc import Sequence

from shy_history.query.filters import CommandFilter
from shy_history.storage.models import Command


def predict_following(
    history: Sequence[Command],
    prefix: str,
    prev_cmd: str,
    limit: int | None = 1,
    filters: CommandFilter | None = None,
) -> list[str]:
    """Return texts of commands that ran right after ``prev_cmd``.

    ``history`` must be in chronological ``(timestamp, id)`` order and is
    treated as one global sequence. Results come from the most recent anchor
    occurrence first, one entry per occurrence, no deduplication. A ``limit``
    of ``None`` or below 1 is unlimited.
    """
    if not prev_cmd:
        return []
    filters = filters or CommandFilter()
    results: list[str] = []
    # The last record can anchor nothing, so start one before it.
    for i in range(len(history) - 2, -1, -1):
        if history[i].command_text != prev_cmd:
            continue
        candidate = history[i + 1]
        if not candidate.command_text.startswith(prefix):
            continue
        if not filters.matches(candidate):
            continue
        results.append(candidate.command_text)
        if limit is not None and 0 < limit <= len(results):
            break
    return results
