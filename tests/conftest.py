"""Shared test fixtures."""

from __future__ import annotations

import pytest

from shy_history.storage.models import Command


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep tests away from the real ~/.shy directory and shell environment."""
    import shy_history.config as cfg_module

    config_dir = tmp_path / "config"
    monkeypatch.setattr(cfg_module, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(cfg_module, "CONFIG_FILE", config_dir / "config.toml")
    monkeypatch.setenv("SHY_LOG_FILE", str(tmp_path / "shy.log"))
    for name in ("SHY_DB_PATH", "SHY_LOG_LEVEL", "SHY_SELF_PREFIX", "SHY_SESSION_PID"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "history.db"



@pytest.fixture
def make_command():
    """Factory for commands with sensible defaults."""

    def factory(text: str, timestamp: int = 1_700_000_000, **fields) -> Command:
        fields.setdefault("working_dir", "/home/user")
        return Command(command_text=text, timestamp=timestamp, **fields)

    return factory
