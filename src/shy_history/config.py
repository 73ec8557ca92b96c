"""Configuration management using TOML + environment variables."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[no-redef]

import tomli_w

from shy_history.errors import UsageError
from shy_history.query.filters import DEFAULT_SELF_PREFIX, SessionFilter
from shy_history.storage.retry import RetryPolicy

CONFIG_DIR = Path.home() / ".shy"
CONFIG_FILE = CONFIG_DIR / "config.toml"
LOG_FILE = CONFIG_DIR / "shy.log"


def default_db_path() -> str:
    """``$XDG_DATA_HOME/shy/history.db``, falling back to ``~/.local/share``."""
    data_dir = os.environ.get("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return str(Path(data_dir) / "shy" / "history.db")


@dataclass
class StorageConfig:
    db_path: str = field(default_factory=default_db_path)
    busy_timeout_ms: int = 0


@dataclass
class RetryConfig:
    attempts: int = 10
    base_delay_ms: int = 10
    max_delay_ms: int = 500
    multiplier: float = 2.0

    def policy(self) -> RetryPolicy:
        return RetryPolicy(
            attempts=self.attempts,
            base_delay=self.base_delay_ms / 1000,
            max_delay=self.max_delay_ms / 1000,
            multiplier=self.multiplier,
        )


@dataclass
class QueryConfig:
    self_prefix: str = DEFAULT_SELF_PREFIX
    default_list_limit: int = 20


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    file: str = str(LOG_FILE)


@dataclass
class AppConfig:
    storage: StorageConfig = field(default_factory=StorageConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    query: QueryConfig = field(default_factory=QueryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def sections(self) -> dict[str, object]:
        return {
            "storage": self.storage,
            "retry": self.retry,
            "query": self.query,
            "logging": self.logging,
        }


def ensure_config_dir() -> None:
    """Create config directory with secure permissions."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    os.chmod(CONFIG_DIR, 0o700)


def load_config() -> AppConfig:
    """Load configuration from TOML file with env var overrides."""
    config = AppConfig()

    if CONFIG_FILE.exists():
        with open(CONFIG_FILE, "rb") as f:
            data = tomllib.load(f)

        storage = data.get("storage", {})
        config.storage.db_path = storage.get("db_path", config.storage.db_path)
        config.storage.busy_timeout_ms = storage.get("busy_timeout_ms", config.storage.busy_timeout_ms)

        retry = data.get("retry", {})
        config.retry.attempts = retry.get("attempts", config.retry.attempts)
        config.retry.base_delay_ms = retry.get("base_delay_ms", config.retry.base_delay_ms)
        config.retry.max_delay_ms = retry.get("max_delay_ms", config.retry.max_delay_ms)
        config.retry.multiplier = retry.get("multiplier", config.retry.multiplier)

        query = data.get("query", {})
        config.query.self_prefix = query.get("self_prefix", config.query.self_prefix)
        config.query.default_list_limit = query.get("default_list_limit", config.query.default_list_limit)

        logging_cfg = data.get("logging", {})
        config.logging.level = logging_cfg.get("level", config.logging.level)
        config.logging.file = logging_cfg.get("file", config.logging.file)

    # Environment variable overrides
    if env_db := os.environ.get("SHY_DB_PATH"):
        config.storage.db_path = env_db
    if env_log_level := os.environ.get("SHY_LOG_LEVEL"):
        config.logging.level = env_log_level
    if env_log_file := os.environ.get("SHY_LOG_FILE"):
        config.logging.file = env_log_file
    if (env_prefix := os.environ.get("SHY_SELF_PREFIX")) is not None:
        config.query.self_prefix = env_prefix

    return config


def save_config(config: AppConfig) -> None:
    """Save configuration to TOML file."""
    ensure_config_dir()

    data = {
        "storage": {
            "db_path": config.storage.db_path,
            "busy_timeout_ms": config.storage.busy_timeout_ms,
        },
        "retry": {
            "attempts": config.retry.attempts,
            "base_delay_ms": config.retry.base_delay_ms,
            "max_delay_ms": config.retry.max_delay_ms,
            "multiplier": config.retry.multiplier,
        },
        "query": {
            "self_prefix": config.query.self_prefix,
            "default_list_limit": config.query.default_list_limit,
        },
        "logging": {
            "level": config.logging.level,
            "file": config.logging.file,
        },
    }

    with open(CONFIG_FILE, "wb") as f:
        tomli_w.dump(data, f)

    os.chmod(CONFIG_FILE, 0o600)


def detect_current_session() -> SessionFilter | None:
    """Build a session filter from ``SHY_SESSION_PID`` and ``SHELL``."""
    pid_text = os.environ.get("SHY_SESSION_PID")
    if not pid_text:
        return None
    try:
        pid = int(pid_text)
    except ValueError:
        raise UsageError(f"invalid SHY_SESSION_PID value: {pid_text}") from None
    shell = os.environ.get("SHELL")
    if not shell:
        raise UsageError("SHELL environment variable not set")
    return SessionFilter.parse(f"{Path(shell).name}:{pid}")
