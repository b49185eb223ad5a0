"""
Pytest configuration and fixtures for shellhist tests.

This module provides shared fixtures used across unit and integration tests.
"""

import tempfile
from pathlib import Path
from typing import Callable, Generator

import pytest

from shellhist.schema import HistoryItem
from shellhist.store import SqliteBackedHistory


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def history() -> Generator[SqliteBackedHistory, None, None]:
    """An empty in-memory history."""
    store = SqliteBackedHistory.in_memory()
    yield store
    store.close()


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a store configuration YAML for testing."""
    return """
path: /tmp/shellhist-test/history.sqlite3
journal_mode: wal
synchronous: normal
mmap_size: 268435456
busy_timeout_ms: 1000
"""


@pytest.fixture
def save_commands() -> Callable[..., list[HistoryItem]]:
    """Save plain command lines into a store and return the stored items."""

    def _save(store: SqliteBackedHistory, *commands: str) -> list[HistoryItem]:
        return [store.save(HistoryItem.from_command_line(cmd)) for cmd in commands]

    return _save
