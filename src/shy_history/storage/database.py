"""SQLite storage for shell command history."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any, TypeVar

import aiosqlite

from shy_history.errors import CommandNotFoundError, StoreIOError, StoreNotFoundError, UsageError
from shy_history.query.context import predict_following
from shy_history.query.filters import CommandFilter
from shy_history.storage.models import Command
from shy_history.storage.retry import DEFAULT_RETRY, RetriesExhausted, RetryPolicy, with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")

COLUMNS = (
    "id, timestamp, exit_status, duration, command_text, working_dir, "
    "git_repo, git_branch, source_app, source_pid, source_active"
)

CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS commands (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp INTEGER NOT NULL,
        exit_status INTEGER NOT NULL,
        duration INTEGER,
        command_text TEXT NOT NULL,
        working_dir TEXT NOT NULL,
        git_repo TEXT,
        git_branch TEXT,
        source_app TEXT,
        source_pid INTEGER,
        source_active INTEGER
    )
"""

# Columns added after the first schema; older files get them via ALTER TABLE.
MIGRATED_COLUMNS = {
    "duration": "INTEGER",
    "git_repo": "TEXT",
    "git_branch": "TEXT",
    "source_app": "TEXT",
    "source_pid": "INTEGER",
    "source_active": "INTEGER",
}

INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_commands_timestamp ON commands(timestamp DESC, id DESC)",
    "CREATE INDEX IF NOT EXISTS idx_commands_text ON commands(command_text)",
)

PREFIX_CLAUSE = "substr(command_text, 1, ?) = ?"
RECENT_FIRST = "ORDER BY timestamp DESC, id DESC"


def _check_duration(duration_ms: int | None) -> None:
    if duration_ms is not None and duration_ms < 0:
        raise UsageError(f"duration must not be negative: {duration_ms}")


class HistoryStore:
    """Command history backed by a single SQLite file.

    A store opened on a missing file has no connection: reads return empty
    results and the first insert creates the file. Every write is its own
    ``BEGIN IMMEDIATE`` transaction retried under ``retry`` while another
    process holds the lock.
    """

    def __init__(
        self,
        path: str | Path,
        retry: RetryPolicy = DEFAULT_RETRY,
        busy_timeout_ms: int = 0,
    ) -> None:
        self.path = Path(path)
        self.retry = retry
        self.busy_timeout_ms = busy_timeout_ms
        self._db: aiosqlite.Connection | None = None

    @property
    def exists(self) -> bool:
        """Whether the store is backed by an open database file."""
        return self._db is not None

    async def __aenter__(self) -> HistoryStore:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def connect(self) -> aiosqlite.Connection:
        """Open the database file, creating or migrating the schema as needed."""
        if self._db is not None:
            return self._db
        try:
            db = await aiosqlite.connect(str(self.path), isolation_level=None)
        except aiosqlite.Error as exc:
            raise StoreIOError(str(self.path), f"cannot open database: {exc}") from exc
        db.row_factory = aiosqlite.Row
        try:
            await self._run(
                lambda: db.execute(f"PRAGMA busy_timeout = {max(0, int(self.busy_timeout_ms))}"),
                "set busy timeout",
            )
            await self._run(lambda: db.execute("PRAGMA journal_mode = WAL"), "enable WAL")
            await self._ensure_schema(db)
        except BaseException:
            await db.close()
            raise
        self._db = db
        return db

    async def close(self) -> None:
        """Close the database connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    # -- plumbing --------------------------------------------------------

    async def _run(self, operation: Callable[[], Awaitable[T]], what: str) -> T:
        try:
            return await with_retry(operation, self.retry, what)
        except RetriesExhausted as exc:
            raise StoreIOError(str(self.path), f"{what}: {exc}") from exc
        except aiosqlite.Error as exc:
            raise StoreIOError(str(self.path), f"{what} failed: {exc}") from exc

    async def _write(
        self,
        db: aiosqlite.Connection,
        statements: Callable[[aiosqlite.Connection], Awaitable[T]],
        what: str,
    ) -> T:
        async def attempt() -> T:
            await db.execute("BEGIN IMMEDIATE")
            try:
                result = await statements(db)
                await db.execute("COMMIT")
            except BaseException:
                if db.in_transaction:
                    await db.execute("ROLLBACK")
                raise
            return result

        return await self._run(attempt, what)

    async def _ensure_schema(self, db: aiosqlite.Connection) -> None:
        async def table_columns() -> set[str]:
            async with db.execute("PRAGMA table_info(commands)") as cursor:
                return {row["name"] for row in await cursor.fetchall()}

        existing = await self._run(table_columns, "read schema")
        if existing and MIGRATED_COLUMNS.keys() <= existing:
            return

        async def create(db: aiosqlite.Connection) -> None:
            await db.execute(CREATE_TABLE_SQL)
            async with db.execute("PRAGMA table_info(commands)") as cursor:
                present = {row["name"] for row in await cursor.fetchall()}
            for name, decl in MIGRATED_COLUMNS.items():
                if name not in present:
                    await db.execute(f"ALTER TABLE commands ADD COLUMN {name} {decl}")
                    logger.info("Added column %s to %s", name, self.path)
            for statement in INDEXES:
                await db.execute(statement)

        await self._write(db, create, "initialize schema")
        logger.info("Database initialized: %s", self.path)

    async def _ensure_open(self) -> aiosqlite.Connection:
        if self._db is not None:
            return self._db
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreIOError(str(self.path), f"cannot create directory: {exc}") from exc
        return await self.connect()

    async def _select(
        self,
        where: str = "",
        params: tuple[Any, ...] = (),
        order: str = RECENT_FIRST,
        filters: CommandFilter | None = None,
        limit: int | None = None,
        collapse_repeats: bool = False,
    ) -> list[Command]:
        """Stream matching rows, applying ``filters`` until ``limit`` is reached.

        With ``collapse_repeats`` a row whose text equals the previously kept
        row is skipped, so runs of the same command count once.
        """
        if self._db is None:
            logger.debug("History database %s does not exist, treating as empty", self.path)
            return []
        db = self._db
        sql = f"SELECT {COLUMNS} FROM commands {f'WHERE {where}' if where else ''} {order}"
        if filters is None and limit and not collapse_repeats:
            sql += " LIMIT ?"
            params = (*params, limit)

        async def query() -> list[Command]:
            commands: list[Command] = []
            async with db.execute(sql, params) as cursor:
                async for row in cursor:
                    command = Command.from_row(row)
                    if filters is not None and not filters.matches(command):
                        continue
                    if collapse_repeats and commands and commands[-1].command_text == command.command_text:
                        continue
                    commands.append(command)
                    if limit and len(commands) >= limit:
                        break
            return commands

        return await self._run(query, "query history")

    # -- writes ----------------------------------------------------------

    async def insert(self, command: Command) -> int:
        """Persist a command and return its newly assigned id."""
        _check_duration(command.duration)
        db = await self._ensure_open()
        params = (
            command.timestamp,
            command.exit_status,
            command.duration,
            command.command_text,
            command.working_dir,
            command.git_repo,
            command.git_branch,
            command.source_app,
            command.source_pid,
            None if command.source_active is None else int(command.source_active),
        )

        async def statements(db: aiosqlite.Connection) -> int:
            cursor = await db.execute(
                """INSERT INTO commands (timestamp, exit_status, duration, command_text, working_dir,
                                         git_repo, git_branch, source_app, source_pid, source_active)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                params,
            )
            return cursor.lastrowid

        command_id = await self._write(db, statements, "insert command")
        logger.debug("Inserted command %d into %s", command_id, self.path)
        return command_id

    async def set_duration(self, command_id: int, duration_ms: int) -> None:
        """Record how long a command took. Later calls overwrite earlier ones."""
        _check_duration(duration_ms)
        if self._db is None:
            raise CommandNotFoundError(command_id)

        async def statements(db: aiosqlite.Connection) -> None:
            cursor = await db.execute(
                "UPDATE commands SET duration = ? WHERE id = ?", (duration_ms, command_id)
            )
            if cursor.rowcount == 0:
                raise CommandNotFoundError(command_id)

        await self._write(self._db, statements, "update duration")

    # -- reads -----------------------------------------------------------

    async def scan_all(self) -> list[Command]:
        """Every command, id ascending."""
        return await self._select(order="ORDER BY id ASC")

    async def get_command(self, command_id: int) -> Command:
        commands = await self._select("id = ?", (command_id,), order="")
        if not commands:
            raise CommandNotFoundError(command_id)
        return commands[0]

    async def count_commands(self) -> int:
        if self._db is None:
            return 0
        db = self._db

        async def query() -> int:
            async with db.execute("SELECT COUNT(*) FROM commands") as cursor:
                row = await cursor.fetchone()
            return row[0]

        return await self._run(query, "count commands")

    async def like_recent(
        self,
        prefix: str,
        limit: int | None = 1,
        filters: CommandFilter | None = None,
    ) -> list[str]:
        """Most recent command texts starting with ``prefix``, newest first.

        Duplicates are kept. ``limit=0`` returns nothing; ``None`` is unlimited.
        """
        if limit is not None and limit <= 0:
            return []
        commands = await self._select(
            PREFIX_CLAUSE,
            (len(prefix), prefix),
            filters=filters or CommandFilter(),
            limit=limit,
        )
        return [c.command_text for c in commands]

    async def like_recent_after(
        self,
        prefix: str,
        prev_cmd: str | None,
        limit: int | None = 1,
        filters: CommandFilter | None = None,
    ) -> list[str]:
        """Command texts starting with ``prefix`` that directly followed ``prev_cmd``."""
        if prev_cmd is None:
            raise UsageError("a previous command is required for context queries")
        if not prev_cmd:
            return []
        history = await self._select(order="ORDER BY timestamp ASC, id ASC")
        return predict_following(history, prefix, prev_cmd, limit, filters)

    async def list_commands(
        self,
        limit: int = 0,
        filters: CommandFilter | None = None,
    ) -> list[Command]:
        """The ``limit`` most recent commands (all when 0), oldest first."""
        commands = await self._select(order="ORDER BY id DESC", filters=filters, limit=limit)
        commands.reverse()
        return commands

    async def list_commands_in_range(
        self,
        start: int,
        end: int,
        limit: int = 0,
        filters: CommandFilter | None = None,
    ) -> list[Command]:
        """Commands with ``start <= timestamp <= end``, newest first."""
        return await self._select(
            "timestamp >= ? AND timestamp <= ?",
            (start, end),
            filters=filters,
            limit=limit,
        )

    async def last_command(
        self,
        offset: int = 1,
        filters: CommandFilter | None = None,
    ) -> Command | None:
        """The ``offset``-th most recent command (1 is the latest).

        Consecutive repeats of the same command count once, so ``offset=2``
        is the previous distinct command.
        """
        if offset < 1:
            return None
        commands = await self._select(filters=filters, limit=offset, collapse_repeats=True)
        if len(commands) < offset:
            return None
        return commands[offset - 1]

    async def most_recent_id(self) -> int:
        """Highest event id in the store, 0 when empty."""
        if self._db is None:
            return 0
        db = self._db

        async def query() -> int:
            async with db.execute("SELECT MAX(id) FROM commands") as cursor:
                row = await cursor.fetchone()
            return row[0] or 0

        return await self._run(query, "read latest id")

    async def find_most_recent_matching(self, prefix: str, before_id: int | None = None) -> int | None:
        """Id of the newest command starting with ``prefix`` (at or below ``before_id``)."""
        where, params = PREFIX_CLAUSE, (len(prefix), prefix)
        if before_id is not None:
            where += " AND id <= ?"
            params = (*params, before_id)
        commands = await self._select(where, params, order="ORDER BY id DESC", limit=1)
        return commands[0].id if commands else None

    async def commands_by_id_range(
        self,
        first: int,
        last: int,
        pattern: str | None = None,
    ) -> list[Command]:
        """Commands with ``first <= id <= last``, id ascending.

        Each distinct command text appears once, at its latest id in the range.
        ``pattern`` is a shell glob the whole command text must match.
        """
        if first > last:
            return []
        commands = await self._select(
            "id IN (SELECT MAX(id) FROM commands WHERE id >= ? AND id <= ? GROUP BY command_text)",
            (first, last),
            order="ORDER BY id ASC",
        )
        if pattern is not None:
            commands = [c for c in commands if fnmatchcase(c.command_text, pattern)]
        return commands

    async def unique_source_apps(self) -> set[str]:
        """Distinct non-null ``source_app`` values."""
        if self._db is None:
            return set()
        db = self._db

        async def query() -> set[str]:
            async with db.execute(
                "SELECT DISTINCT source_app FROM commands WHERE source_app IS NOT NULL"
            ) as cursor:
                return {row[0] for row in await cursor.fetchall()}

        return await self._run(query, "list source apps")


async def open_store(
    path: str | Path,
    *,
    missing_ok: bool = True,
    retry: RetryPolicy = DEFAULT_RETRY,
    busy_timeout_ms: int = 0,
) -> HistoryStore:
    """Open the history store at ``path``.

    A missing file yields an empty store (or ``StoreNotFoundError`` when
    ``missing_ok`` is false). Unreadable or corrupt files raise ``StoreIOError``.
    """
    resolved = Path(path).expanduser()
    store = HistoryStore(resolved, retry=retry, busy_timeout_ms=busy_timeout_ms)
    if resolved.is_dir():
        raise StoreIOError(str(resolved), "is a directory")
    if resolved.exists():
        await store.connect()
    elif not missing_ok:
        raise StoreNotFoundError(str(resolved))
    return store
