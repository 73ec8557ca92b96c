"""Bounded retry with backoff for SQLite lock contention."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import TypeVar

import aiosqlite

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry a locked database.

    Delays grow geometrically from ``base_delay`` by ``multiplier`` and are
    capped at ``max_delay`` (all in seconds). ``attempts`` counts the first try.
    """

    attempts: int = 10
    base_delay: float = 0.01
    max_delay: float = 0.5
    multiplier: float = 2.0

    def delays(self) -> Iterator[float]:
        """Yield the sleep before each retry (``attempts - 1`` values)."""
        delay = self.base_delay
        for _ in range(max(1, self.attempts) - 1):
            yield min(delay, self.max_delay)
            delay *= self.multiplier


DEFAULT_RETRY = RetryPolicy()


class RetriesExhausted(Exception):
    """Lock contention outlasted the retry policy."""

    def __init__(self, attempts: int, last_error: Exception) -> None:
        super().__init__(f"database still locked after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def is_locked_error(exc: Exception) -> bool:
    message = str(exc).lower()
    return "locked" in message or "busy" in message


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_RETRY,
    what: str = "operation",
) -> T:
    """Run ``operation``, retrying while SQLite reports the database locked.

    Errors other than lock contention propagate on the first failure.
    """
    delays = policy.delays()
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except aiosqlite.OperationalError as exc:
            if not is_locked_error(exc):
                raise
            delay = next(delays, None)
            if delay is None:
                raise RetriesExhausted(attempt, exc) from exc
            logger.warning(
                "%s: database is locked (attempt %d/%d), retrying in %.3fs",
                what,
                attempt,
                policy.attempts,
                delay,
            )
            await asyncio.sleep(delay)
