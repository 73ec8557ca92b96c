"""Tests for history event range resolution."""

from __future__ import annotations

import pytest

from shy_history.errors import EventNotFoundError, UsageError
from shy_history.query.events import resolve_event_range
from shy_history.storage.database import open_store


async def seeded(db_path, make_command):
    """Thirty events, with ``git push`` as event 12."""
    store = await open_store(db_path)
    for i in range(1, 31):
        await store.insert(make_command("git push" if i == 12 else f"cmd_{i}"))
    return store


class TestResolveEventRange:
    @pytest.mark.asyncio
    async def test_default_is_last_sixteen(self, db_path, make_command):
        async with await seeded(db_path, make_command) as store:
            assert await resolve_event_range(store) == (15, 30)
            assert await resolve_event_range(store, [], default_size=5) == (26, 30)

    @pytest.mark.asyncio
    async def test_single_bound_runs_to_latest(self, db_path, make_command):
        async with await seeded(db_path, make_command) as store:
            assert await resolve_event_range(store, ["20"]) == (20, 30)
            assert await resolve_event_range(store, ["-3"]) == (28, 30)
            assert await resolve_event_range(store, ["-100"]) == (1, 30)

    @pytest.mark.asyncio
    async def test_two_bounds(self, db_path, make_command):
        async with await seeded(db_path, make_command) as store:
            assert await resolve_event_range(store, ["5", "9"]) == (5, 9)
            assert await resolve_event_range(store, ["-10", "-1"]) == (21, 30)

    @pytest.mark.asyncio
    async def test_prefix_bound(self, db_path, make_command):
        async with await seeded(db_path, make_command) as store:
            assert await resolve_event_range(store, ["git"]) == (12, 30)
            assert await resolve_event_range(store, ["1", "git"]) == (1, 12)

    @pytest.mark.asyncio
    async def test_unknown_prefix(self, db_path, make_command):
        async with await seeded(db_path, make_command) as store:
            with pytest.raises(EventNotFoundError) as excinfo:
                await resolve_event_range(store, ["docker"])
        assert excinfo.value.event == "docker"

    @pytest.mark.asyncio
    async def test_too_many_bounds(self, db_path, make_command):
        async with await seeded(db_path, make_command) as store:
            with pytest.raises(UsageError):
                await resolve_event_range(store, ["1", "2", "3"])

    @pytest.mark.asyncio
    async def test_empty_store(self, db_path):
        store = await open_store(db_path)
        assert await resolve_event_range(store) == (0, -1)
        assert await resolve_event_range(store, ["docker"]) == (0, -1)
