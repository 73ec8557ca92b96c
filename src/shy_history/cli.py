"""CLI entry point using typer."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Coroutine, List, TypeVar

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from shy_history import __version__
from shy_history.config import (
    CONFIG_FILE,
    AppConfig,
    detect_current_session,
    load_config,
    save_config,
)
from shy_history.errors import CommandNotFoundError, EventNotFoundError, HistoryError, UsageError
from shy_history.query.events import resolve_event_range
from shy_history.query.filters import CommandFilter, SessionFilter
from shy_history.query.ranges import bucket_range
from shy_history.storage.database import HistoryStore, open_store
from shy_history.storage.models import Command
from shy_history.utils.formatting import COLUMN_TAGS, format_columns, format_timestamp
from shy_history.utils.system import detect_git_context

T = TypeVar("T")

app = typer.Typer(
    name="shy",
    help="Shell history tracker.",
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)


def _setup_logging(config: AppConfig) -> None:
    log_path = Path(config.logging.file).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.FileHandler(str(log_path))],
    )


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a store coroutine, turning history errors into exit codes."""
    try:
        return asyncio.run(coro)
    except UsageError as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(2)
    except HistoryError as e:
        logging.getLogger(__name__).error("%s", e)
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)


async def _open(config: AppConfig) -> HistoryStore:
    return await open_store(
        config.storage.db_path,
        retry=config.retry.policy(),
        busy_timeout_ms=config.storage.busy_timeout_ms,
    )


def _session(token: str | None, current: bool = False) -> SessionFilter | None:
    if current:
        session = detect_current_session()
        if session is None:
            raise UsageError("could not auto-detect session: SHY_SESSION_PID not set")
        return session
    if token:
        return SessionFilter.parse(token)
    return None


@app.callback()
def main(
    ctx: typer.Context,
    db: str = typer.Option(None, "--db", help="Database file path"),
) -> None:
    """Track shell command history in SQLite."""
    config = load_config()
    if db:
        config.storage.db_path = db
    _setup_logging(config)
    ctx.obj = config


@app.command()
def insert(
    ctx: typer.Context,
    command: str = typer.Option(..., "--command", help="Command text"),
    dir: str = typer.Option(..., "--dir", help="Working directory"),
    status: int = typer.Option(0, "--status", help="Exit status"),
    git_repo: str = typer.Option(None, "--git-repo", help="Git repository URL"),
    git_branch: str = typer.Option(None, "--git-branch", help="Git branch name"),
    timestamp: int = typer.Option(0, "--timestamp", help="Unix timestamp (default: now)"),
    duration: int = typer.Option(None, "--duration", help="Duration in milliseconds"),
    source_app: str = typer.Option(None, "--source-app", help="Invoking shell, e.g. zsh"),
    source_pid: int = typer.Option(None, "--source-pid", help="Invoking shell PID"),
) -> None:
    """Insert a command into the history database."""
    config: AppConfig = ctx.obj

    async def run() -> int:
        if not command or not dir:
            raise UsageError("--command and --dir must not be empty")
        record = Command(
            command_text=command,
            working_dir=dir,
            exit_status=status,
            duration=duration,
            git_repo=git_repo or None,
            git_branch=git_branch or None,
            source_app=source_app or None,
            source_pid=source_pid,
            source_active=True if source_app and source_pid else None,
        )
        if timestamp:
            record.timestamp = timestamp
        if not (git_repo or git_branch):
            git = detect_git_context(dir)
            if git is not None:
                record.git_repo = git.repo
                record.git_branch = git.branch
        async with await _open(config) as store:
            return await store.insert(record)

    typer.echo(_run(run()))


@app.command("update-duration")
def update_duration(
    ctx: typer.Context,
    command_id: int = typer.Argument(..., help="Command id"),
    duration: int = typer.Argument(..., help="Duration in milliseconds"),
    ignore_missing: bool = typer.Option(False, "--ignore-missing", help="Succeed if the id is unknown"),
) -> None:
    """Record the duration of a finished command."""
    config: AppConfig = ctx.obj

    async def run() -> None:
        async with await _open(config) as store:
            try:
                await store.set_duration(command_id, duration)
            except CommandNotFoundError:
                if not ignore_missing:
                    raise

    _run(run())


@app.command("like-recent")
def like_recent(
    ctx: typer.Context,
    prefix: str = typer.Argument(..., help="Command prefix"),
    limit: int = typer.Option(1, "--limit", "-n", help="Number of suggestions"),
    exclude: str = typer.Option(None, "--exclude", help="Exclude commands matching glob"),
    include_shy: bool = typer.Option(False, "--include-shy", help="Include shy's own commands"),
    pwd: str = typer.Option(None, "--pwd", help="Only commands run in this directory"),
    session: str = typer.Option(None, "--session", help="Only commands from app or app:pid"),
) -> None:
    """Print the most recent commands starting with PREFIX."""
    config: AppConfig = ctx.obj

    async def run() -> list[str]:
        filters = CommandFilter(
            working_dir=pwd or None,
            session=_session(session),
            exclude=exclude or None,
            include_self=include_shy,
            self_prefix=config.query.self_prefix,
        )
        if limit == 0:
            return []
        async with await _open(config) as store:
            return await store.like_recent(prefix, limit, filters)

    for text in _run(run()):
        typer.echo(text)


@app.command("like-recent-after")
def like_recent_after(
    ctx: typer.Context,
    prefix: str = typer.Argument(..., help="Command prefix"),
    prev: str = typer.Option(None, "--prev", help="Previous command to match context (required)"),
    limit: int = typer.Option(1, "--limit", "-n", help="Number of suggestions"),
    exclude: str = typer.Option(None, "--exclude", help="Exclude commands matching glob"),
    include_shy: bool = typer.Option(False, "--include-shy", help="Include shy's own commands"),
) -> None:
    """Print commands starting with PREFIX that historically followed --prev."""
    config: AppConfig = ctx.obj

    async def run() -> list[str]:
        if prev is None:
            raise UsageError('required option "--prev" not set')
        if not prev:
            return []
        filters = CommandFilter(
            exclude=exclude or None,
            include_self=include_shy,
            self_prefix=config.query.self_prefix,
        )
        async with await _open(config) as store:
            return await store.like_recent_after(prefix, prev, limit, filters)

    for text in _run(run()):
        typer.echo(text)


@app.command("list")
def list_(
    ctx: typer.Context,
    limit: int = typer.Option(None, "--limit", "-n", help="Maximum number of commands"),
    fmt: str = typer.Option(None, "--fmt", help=f"Comma-separated columns ({','.join(COLUMN_TAGS)})"),
    today: bool = typer.Option(False, "--today", help="Only commands from today"),
    yesterday: bool = typer.Option(False, "--yesterday", help="Only commands from yesterday"),
    this_week: bool = typer.Option(False, "--this-week", help="Only commands from this week"),
    last_week: bool = typer.Option(False, "--last-week", help="Only commands from last week"),
    session: str = typer.Option(None, "--session", help="Only commands from app or app:pid"),
    current_session: bool = typer.Option(False, "--current-session", help="Only commands from this shell"),
) -> None:
    """List recent commands."""
    config: AppConfig = ctx.obj
    if limit is None:
        limit = config.query.default_list_limit
    buckets = [
        name
        for name, chosen in (
            ("today", today),
            ("yesterday", yesterday),
            ("this-week", this_week),
            ("last-week", last_week),
        )
        if chosen
    ]

    async def run() -> list[Command]:
        if len(buckets) > 1:
            raise UsageError("choose at most one of --today, --yesterday, --this-week, --last-week")
        selected = _session(session, current_session)
        filters = CommandFilter(session=selected, include_self=True) if selected else None
        async with await _open(config) as store:
            if buckets:
                start, end = bucket_range(buckets[0])
                return await store.list_commands_in_range(start, end, limit, filters)
            return await store.list_commands(limit, filters)

    commands = _run(run())
    if not commands:
        console.print("No commands found")
        return
    for command in commands:
        typer.echo(format_columns(command, fmt) if fmt else command.command_text)


@app.command("last-command")
def last_command(
    ctx: typer.Context,
    offset: int = typer.Option(1, "--offset", "-n", help="1 = most recent, 2 = the one before, ..."),
    session: str = typer.Option(None, "--session", help="Only commands from app or app:pid"),
    current_session: bool = typer.Option(False, "--current-session", help="Only commands from this shell"),
) -> None:
    """Print the most recent command."""
    config: AppConfig = ctx.obj

    async def run() -> Command | None:
        selected = _session(session, current_session)
        filters = CommandFilter(
            session=selected,
            self_prefix=config.query.self_prefix,
        )
        async with await _open(config) as store:
            return await store.last_command(offset, filters)

    found = _run(run())
    if found is not None:
        typer.echo(found.command_text)


@app.command(context_settings={"ignore_unknown_options": True})
def history(
    ctx: typer.Context,
    bounds: List[str] = typer.Argument(None, help="FIRST and LAST: event id, negative offset or command prefix"),
    no_numbers: bool = typer.Option(False, "--no-numbers", "-n", help="Hide event numbers"),
    reverse: bool = typer.Option(False, "--reverse", "-r", help="Newest first"),
    match: str = typer.Option(None, "--match", "-m", help="Only commands matching this glob"),
    show_time: bool = typer.Option(False, "--time", "-d", help="Show timestamps"),
) -> None:
    """List history events by number (like fc -l)."""
    config: AppConfig = ctx.obj

    async def run() -> list[Command]:
        async with await _open(config) as store:
            first, last = await resolve_event_range(store, bounds)
            commands = await store.commands_by_id_range(first, last, match or None)
        if match and not commands:
            raise EventNotFoundError(match)
        return commands

    commands = _run(run())
    if reverse:
        commands.reverse()
    for command in commands:
        parts = []
        if not no_numbers:
            parts.append(f"{command.id:5d}")
        if show_time:
            parts.append(format_timestamp(command.timestamp))
        parts.append(command.command_text)
        typer.echo("  ".join(parts))


@app.command()
def sources(ctx: typer.Context) -> None:
    """List the shells that have recorded commands."""
    config: AppConfig = ctx.obj

    async def run() -> set[str]:
        async with await _open(config) as store:
            return await store.unique_source_apps()

    for name in sorted(_run(run())):
        typer.echo(name)


@app.command()
def config(
    ctx: typer.Context,
    key: str = typer.Argument(None, help="Config key (e.g., retry.attempts)"),
    value: str = typer.Argument(None, help="New value"),
) -> None:
    """View or modify configuration."""
    cfg: AppConfig = ctx.obj
    sections = cfg.sections()

    if key is None:
        table = Table(title="Configuration")
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")
        for section_name, section in sections.items():
            for attr, current in vars(section).items():
                table.add_row(f"{section_name}.{attr}", escape(str(current)))
        console.print(table)
        return

    if value is None:
        console.print("[red]Usage: shy config <key> <value>[/red]")
        raise typer.Exit(1)

    parts = key.split(".")
    if len(parts) != 2:
        console.print("[red]Key format: section.key (e.g., retry.attempts)[/red]")
        raise typer.Exit(1)

    section_name, attr = parts
    if section_name not in sections:
        console.print(f"[red]Unknown section: {escape(section_name)}[/red]")
        raise typer.Exit(1)

    obj = sections[section_name]
    if attr not in vars(obj):
        console.print(f"[red]Unknown key: {escape(key)}[/red]")
        raise typer.Exit(1)

    # Type coercion
    current = getattr(obj, attr)
    try:
        if isinstance(current, bool):
            typed_value: object = value.lower() in ("true", "1", "yes")
        elif isinstance(current, int):
            typed_value = int(value)
        elif isinstance(current, float):
            typed_value = float(value)
        else:
            typed_value = value
    except ValueError:
        console.print(f"[red]Invalid value type for {escape(key)}[/red]")
        raise typer.Exit(1)

    # --db is a per-invocation override and must not leak into the saved file.
    saved = load_config()
    setattr(saved.sections()[section_name], attr, typed_value)
    save_config(saved)
    console.print(f"[green]{escape(key)} = {escape(str(typed_value))}[/green]")


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"shy v{__version__}")
    console.print(f"Python: {sys.version.split()[0]}")
    console.print(f"Config: {CONFIG_FILE}")


if __name__ == "__main__":
    app()
