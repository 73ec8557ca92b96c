"""Event ranges for the ``history`` listing.

An event is a command id. Range bounds may be given as an id, as a negative
offset from the latest event (``-1`` is the latest) or as a command prefix,
which picks the newest command starting with it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from shy_history.errors import EventNotFoundError, UsageError

if TYPE_CHECKING:
    from shy_history.storage.database import HistoryStore

DEFAULT_HISTORY_SIZE = 16


def _as_number(token: str) -> int | None:
    try:
        return int(token)
    except ValueError:
        return None


async def _resolve(store: HistoryStore, token: str, latest: int) -> int:
    number = _as_number(token)
    if number is None:
        found = await store.find_most_recent_matching(token, before_id=latest)
        if found is None:
            raise EventNotFoundError(token)
        return found
    if number < 0:
        return max(1, latest + number + 1)
    return number


async def resolve_event_range(
    store: HistoryStore,
    bounds: list[str] | None = None,
    default_size: int = DEFAULT_HISTORY_SIZE,
) -> tuple[int, int]:
    """Turn ``[first [last]]`` into inclusive ``(first_id, last_id)``.

    With no bounds the last ``default_size`` events are selected. A single
    bound runs to the latest event. An empty store yields an empty range.
    """
    bounds = bounds or []
    if len(bounds) > 2:
        raise UsageError("too many arguments: expected [first [last]]")
    latest = await store.most_recent_id()
    if latest == 0:
        return 0, -1
    if not bounds:
        return max(1, latest - default_size + 1), latest
    first = await _resolve(store, bounds[0], latest)
    if len(bounds) == 1:
        return first, latest
    return first, await _resolve(store, bounds[1], latest)
