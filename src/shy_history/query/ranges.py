"""Calendar buckets for listing history by day and week.

All bounds are unix seconds computed in the local time zone and are inclusive
on both ends: a day runs from 00:00:00 to 23:59:59.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from shy_history.errors import UsageError

_END_OF_DAY = time(23, 59, 59)


def _span(first: date, last: date) -> tuple[int, int]:
    start = datetime.combine(first, time.min).timestamp()
    end = datetime.combine(last, _END_OF_DAY).timestamp()
    return int(start), int(end)


def _today(now: datetime | None) -> date:
    return (now or datetime.now()).date()


def _monday(day: date) -> date:
    # isoweekday() counts Sunday as 7, so Sunday belongs to the week before it.
    return day - timedelta(days=day.isoweekday() - 1)


def today(now: datetime | None = None) -> tuple[int, int]:
    day = _today(now)
    return _span(day, day)


def yesterday(now: datetime | None = None) -> tuple[int, int]:
    day = _today(now) - timedelta(days=1)
    return _span(day, day)


def this_week(now: datetime | None = None) -> tuple[int, int]:
    monday = _monday(_today(now))
    return _span(monday, monday + timedelta(days=6))


def last_week(now: datetime | None = None) -> tuple[int, int]:
    monday = _monday(_today(now)) - timedelta(days=7)
    return _span(monday, monday + timedelta(days=6))


BUCKETS = {
    "today": today,
    "yesterday": yesterday,
    "this-week": this_week,
    "last-week": last_week,
}


def bucket_range(name: str, now: datetime | None = None) -> tuple[int, int]:
    """Return ``(start, end)`` for a named bucket."""
    try:
        bucket = BUCKETS[name]
    except KeyError:
        raise UsageError(f"unknown time range: {name!r}") from None
    return bucket(now)
