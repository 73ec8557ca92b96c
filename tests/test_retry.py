"""Tests for the lock-contention retry loop."""

from __future__ import annotations

import aiosqlite
import pytest

from shy_history.storage.retry import RetriesExhausted, RetryPolicy, is_locked_error, with_retry

NO_WAIT = RetryPolicy(attempts=4, base_delay=0, max_delay=0)


class TestRetryPolicy:
    def test_backoff_is_geometric_and_capped(self):
        policy = RetryPolicy(attempts=5, base_delay=0.01, max_delay=0.03, multiplier=2)
        assert list(policy.delays()) == pytest.approx([0.01, 0.02, 0.03, 0.03])

    def test_single_attempt_never_sleeps(self):
        assert list(RetryPolicy(attempts=1).delays()) == []
        assert list(RetryPolicy(attempts=0).delays()) == []

    def test_locked_error_detection(self):
        assert is_locked_error(aiosqlite.OperationalError("database is locked"))
        assert is_locked_error(aiosqlite.OperationalError("database table is busy"))
        assert not is_locked_error(aiosqlite.OperationalError("no such table: commands"))


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise aiosqlite.OperationalError("database is locked")
            return "done"

        assert await with_retry(flaky, NO_WAIT) == "done"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        calls = []

        async def broken():
            calls.append(1)
            raise aiosqlite.OperationalError("no such table: commands")

        with pytest.raises(aiosqlite.OperationalError):
            await with_retry(broken, NO_WAIT)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self):
        calls = []

        async def locked():
            calls.append(1)
            raise aiosqlite.OperationalError("database is locked")

        with pytest.raises(RetriesExhausted) as excinfo:
            await with_retry(locked, NO_WAIT)
        assert len(calls) == 4
        assert excinfo.value.attempts == 4
