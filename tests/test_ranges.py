"""Tests for calendar buckets and range listing."""

from __future__ import annotations

from datetime import datetime

import pytest

from shy_history.errors import UsageError
from shy_history.query import ranges
from shy_history.storage.database import open_store


def local(*args) -> int:
    return int(datetime(*args).timestamp())


# 2026-10-18 is a Sunday.
SUNDAY = datetime(2026, 10, 18, 15, 30)
WEDNESDAY = datetime(2026, 10, 14, 8, 0)
MONDAY = datetime(2026, 10, 12, 0, 0, 1)


class TestBuckets:
    def test_today(self):
        assert ranges.today(SUNDAY) == (local(2026, 10, 18), local(2026, 10, 18, 23, 59, 59))

    def test_yesterday_crosses_month(self):
        now = datetime(2026, 11, 1, 9, 0)
        assert ranges.yesterday(now) == (local(2026, 10, 31), local(2026, 10, 31, 23, 59, 59))

    @pytest.mark.parametrize("now", [SUNDAY, WEDNESDAY, MONDAY])
    def test_this_week_runs_monday_to_sunday(self, now):
        assert ranges.this_week(now) == (local(2026, 10, 12), local(2026, 10, 18, 23, 59, 59))

    @pytest.mark.parametrize("now", [SUNDAY, WEDNESDAY, MONDAY])
    def test_last_week(self, now):
        assert ranges.last_week(now) == (local(2026, 10, 5), local(2026, 10, 11, 23, 59, 59))

    def test_bucket_range_by_name(self):
        assert ranges.bucket_range("this-week", SUNDAY) == ranges.this_week(SUNDAY)
        assert ranges.bucket_range("yesterday", SUNDAY) == ranges.yesterday(SUNDAY)

    def test_unknown_bucket(self):
        with pytest.raises(UsageError):
            ranges.bucket_range("last-year")

    def test_defaults_to_now(self):
        start, end = ranges.today()
        assert start <= int(datetime.now().timestamp()) <= end


class TestRangeListing:
    @pytest.mark.asyncio
    async def test_bounds_are_inclusive_and_newest_first(self, db_path, make_command):
        start, end = ranges.today()
        async with await open_store(db_path) as store:
            await store.insert(make_command("before", timestamp=start - 1))
            await store.insert(make_command("first", timestamp=start))
            await store.insert(make_command("middle", timestamp=start + 3600))
            await store.insert(make_command("last", timestamp=end))
            await store.insert(make_command("after", timestamp=end + 1))

            found = await store.list_commands_in_range(start, end)
            assert [c.command_text for c in found] == ["last", "middle", "first"]
            assert all(start <= c.timestamp <= end for c in found)

            limited = await store.list_commands_in_range(start, end, limit=2)
            assert [c.command_text for c in limited] == ["last", "middle"]

    @pytest.mark.asyncio
    async def test_empty_bucket_is_not_an_error(self, db_path, make_command):
        start, end = ranges.last_week()
        async with await open_store(db_path) as store:
            await store.insert(make_command("recent", timestamp=end + 10))
            assert await store.list_commands_in_range(start, end) == []
