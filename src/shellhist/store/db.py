"""
SQLite storage for shellhist.

This module provides SqliteBackedHistory, a History backend that keeps
every executed command in one SQLite database file.

Design Principles:
    - Durable per command: the connection runs in autocommit mode, so each
      save is committed before it returns
    - Read-modify-write (update, new_session_id) runs inside BEGIN IMMEDIATE
    - One connection per store; nothing else holds a handle to it
    - Every sqlite3.Error is wrapped in a StorageError subclass

Tables:
    - history: One row per executed command
    - session_allocator: Single row holding the last session id handed out
    - schema_version: Schema revision tracking
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Generator

from shellhist.errors import (
    BackendError,
    BackendReadError,
    BackendWriteError,
    HistoryNotFoundError,
    HistorySerializationError,
    StorageIoError,
)
from shellhist.history.base import History
from shellhist.schema import (
    Anything,
    HistoryItem,
    HistoryItemExtraInfo,
    HistoryItemId,
    HistorySessionId,
    SearchQuery,
    StoreConfig,
    datetime_to_millis,
    millis_to_datetime,
)
from shellhist.store.query import BuiltQuery, build_count, build_query

logger = logging.getLogger(__name__)

# Schema version for migrations
SCHEMA_VERSION = 1

# Raised by sqlite3 while binding values it cannot store
BIND_ERRORS = (sqlite3.Error, OverflowError, UnicodeEncodeError)

# SQL for creating tables
CREATE_TABLES_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

-- History table: one row per executed command
CREATE TABLE IF NOT EXISTS history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    command_line TEXT NOT NULL,
    start_timestamp INTEGER,
    session_id INTEGER,
    hostname TEXT,
    cwd TEXT,
    duration_ms INTEGER,
    exit_status INTEGER,
    more_info TEXT
);

-- Last session id handed out, so allocation never repeats across processes
CREATE TABLE IF NOT EXISTS session_allocator (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    last_session_id INTEGER NOT NULL
);

-- Indexes for the search filters
CREATE INDEX IF NOT EXISTS idx_history_time ON history(start_timestamp);
CREATE INDEX IF NOT EXISTS idx_history_cwd ON history(cwd);
CREATE INDEX IF NOT EXISTS idx_history_exit_status ON history(exit_status);
CREATE INDEX IF NOT EXISTS idx_history_cmd ON history(command_line);
CREATE INDEX IF NOT EXISTS idx_history_session ON history(session_id);
"""

UPSERT_SQL = """
INSERT INTO history (
    id, start_timestamp, command_line, session_id, hostname,
    cwd, duration_ms, exit_status, more_info
) VALUES (
    :id, :start_timestamp, :command_line, :session_id, :hostname,
    :cwd, :duration_ms, :exit_status, :more_info
)
ON CONFLICT (id) DO UPDATE SET
    start_timestamp = excluded.start_timestamp,
    command_line = excluded.command_line,
    session_id = excluded.session_id,
    hostname = excluded.hostname,
    cwd = excluded.cwd,
    duration_ms = excluded.duration_ms,
    exit_status = excluded.exit_status,
    more_info = excluded.more_info
"""

NEXT_SESSION_SQL = """
SELECT max(
    coalesce((SELECT last_session_id FROM session_allocator WHERE id = 1), 0),
    coalesce((SELECT max(session_id) FROM history), 0)
) + 1
"""

RECORD_SESSION_SQL = """
INSERT INTO session_allocator (id, last_session_id) VALUES (1, :session_id)
ON CONFLICT (id) DO UPDATE SET last_session_id = excluded.last_session_id
"""


def now_iso() -> str:
    """Get current UTC time in ISO format."""
    return datetime.now(UTC).isoformat()


class SqliteBackedHistory(History):
    """
    History stored in a SQLite database.

    In addition to the command line, each item may carry a timestamp,
    session, host, working directory, duration, exit status and an
    extensible payload of type ``extra_info_type``.

    Usage:
        history = SqliteBackedHistory.with_file(Path("~/.history.db").expanduser())
        item = history.save(HistoryItem.from_command_line("ls -la"))
        history.load(item.id)
        history.close()

    Or use as context manager:
        with SqliteBackedHistory.in_memory() as history:
            ...
    """

    def __init__(
        self,
        db_path: str | Path | None = None,
        *,
        config: StoreConfig | None = None,
        extra_info_type: type[HistoryItemExtraInfo] = Anything,
    ) -> None:
        """
        Open (and if needed create) a history database.

        Args:
            db_path: Database file, or ":memory:"/None for an ephemeral store.
                     Parent directories are created on first use.
            config: Pragmas and timeouts; its path is used when db_path is None
            extra_info_type: Payload type used to decode the more_info column
        """
        config = config or StoreConfig()
        if db_path is not None:
            config = config.model_copy(update={"path": Path(db_path)})
        self.config = config
        self.extra_info_type = extra_info_type
        self._conn: sqlite3.Connection | None = None
        self._connect()
        self._init_schema()

    @classmethod
    def with_file(
        cls,
        path: str | Path,
        extra_info_type: type[HistoryItemExtraInfo] = Anything,
    ) -> "SqliteBackedHistory":
        """Open a history file, creating all parent directories."""
        return cls(path, extra_info_type=extra_info_type)

    @classmethod
    def in_memory(
        cls,
        extra_info_type: type[HistoryItemExtraInfo] = Anything,
    ) -> "SqliteBackedHistory":
        """Open an ephemeral history that disappears on close."""
        return cls(":memory:", extra_info_type=extra_info_type)

    @classmethod
    def from_config(
        cls,
        config: StoreConfig,
        extra_info_type: type[HistoryItemExtraInfo] = Anything,
    ) -> "SqliteBackedHistory":
        """Open a history as described by a StoreConfig."""
        return cls(config=config, extra_info_type=extra_info_type)

    @property
    def db_path(self) -> str:
        """The database file, or ":memory:"."""
        return ":memory:" if self.config.in_memory else str(self.config.path)

    def _connect(self) -> None:
        """Establish the database connection and apply pragmas."""
        if not self.config.in_memory:
            try:
                self.config.path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageIoError(
                    operation="connect",
                    path=self.db_path,
                    underlying_error=str(e),
                ) from e

        try:
            # isolation_level=None: autocommit; transactions are explicit
            self._conn = sqlite3.connect(
                self.db_path,
                timeout=self.config.busy_timeout_ms / 1000,
                isolation_level=None,
                check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
        except sqlite3.Error as e:
            raise StorageIoError(
                operation="connect",
                path=self.db_path,
                underlying_error=str(e),
            ) from e

        try:
            # Pragma values come from a validated StoreConfig
            self._conn.execute(f"PRAGMA journal_mode = {self.config.journal_mode}")
            self._conn.execute(f"PRAGMA synchronous = {self.config.synchronous}")
            self._conn.execute(f"PRAGMA mmap_size = {int(self.config.mmap_size)}")
            self._conn.execute(
                f"PRAGMA foreign_keys = {'ON' if self.config.foreign_keys else 'OFF'}"
            )
        except sqlite3.Error as e:
            self._conn.close()
            self._conn = None
            raise StorageIoError(
                operation="configure",
                path=self.db_path,
                underlying_error=str(e),
            ) from e
        logger.info("Opened history database %s", self.db_path)

    def _init_schema(self) -> None:
        """Initialize database schema if needed."""
        try:
            cursor = self._conn.executescript(CREATE_TABLES_SQL)
            cursor.close()

            cursor = self._conn.execute(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            )
            row = cursor.fetchone()
            if row is None:
                self._conn.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, now_iso()),
                )
        except sqlite3.Error as e:
            raise BackendWriteError(
                operation="init_schema",
                underlying_error=str(e),
            ) from e

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """
        Run the enclosed statements in one IMMEDIATE transaction.

        Commits on normal exit, rolls back on any exception. Nested use
        joins the outer transaction.
        """
        if self._conn.in_transaction:
            yield
            return
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            yield
            self._conn.execute("COMMIT")
        except BaseException:
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
            raise

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "SqliteBackedHistory":
        """Enter context manager."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Exit context manager."""
        self.close()

    def item_id(self, value: int) -> HistoryItemId:
        """
        Turn a row number shown to a user back into an item id.

        Existence is not checked; load/delete raise HistoryNotFoundError.
        """
        return HistoryItemId._from_db(value)

    def session_id(self, value: int) -> HistorySessionId:
        """Turn a session number shown to a user back into a session id."""
        return HistorySessionId._from_db(value)

    # =========================================================================
    # Row Marshaling
    # =========================================================================

    def _item_params(self, item: HistoryItem) -> dict[str, Any]:
        """Bind a HistoryItem to the UPSERT_SQL parameters."""
        more_info = None
        if item.more_info is not None:
            try:
                more_info = item.more_info.to_json()
            except (TypeError, ValueError) as e:
                raise HistorySerializationError(
                    operation="save",
                    item_id=str(item.id) if item.id else "",
                    message=f"Could not serialize more_info: {e}",
                    underlying_error=str(e),
                ) from e

        return {
            "id": item.id._value if item.id is not None else None,
            "start_timestamp": (
                datetime_to_millis(item.start_timestamp)
                if item.start_timestamp is not None
                else None
            ),
            "command_line": item.command_line,
            "session_id": item.session_id._value if item.session_id is not None else None,
            "hostname": item.hostname,
            "cwd": item.cwd,
            "duration_ms": (
                item.duration // timedelta(milliseconds=1)
                if item.duration is not None
                else None
            ),
            "exit_status": item.exit_status,
            "more_info": more_info,
        }

    def _row_to_item(self, row: sqlite3.Row, operation: str) -> HistoryItem:
        """Deserialize a history row."""
        more_info = None
        if row["more_info"] is not None:
            try:
                more_info = self.extra_info_type.from_json(row["more_info"])
            except ValueError as e:
                raise HistorySerializationError(
                    operation=operation,
                    item_id=str(row["id"]),
                    underlying_error=str(e),
                ) from e

        return HistoryItem(
            id=HistoryItemId._from_db(row["id"]),
            start_timestamp=(
                millis_to_datetime(row["start_timestamp"])
                if row["start_timestamp"] is not None
                else None
            ),
            command_line=row["command_line"],
            session_id=(
                HistorySessionId._from_db(row["session_id"])
                if row["session_id"] is not None
                else None
            ),
            hostname=row["hostname"],
            cwd=row["cwd"],
            duration=(
                timedelta(milliseconds=row["duration_ms"])
                if row["duration_ms"] is not None
                else None
            ),
            exit_status=row["exit_status"],
            more_info=more_info,
        )

    # =========================================================================
    # History Operations
    # =========================================================================

    def save(self, item: HistoryItem) -> HistoryItem:
        params = self._item_params(item)
        try:
            cursor = self._conn.execute(UPSERT_SQL, params)
        except BIND_ERRORS as e:
            raise BackendWriteError(
                operation="save",
                underlying_error=str(e),
            ) from e

        if item.id is not None:
            return item
        return item.model_copy(update={"id": HistoryItemId._from_db(cursor.lastrowid)})

    def load(self, item_id: HistoryItemId) -> HistoryItem:
        try:
            row = self._conn.execute(
                "SELECT * FROM history WHERE id = :id",
                {"id": item_id._value},
            ).fetchone()
        except BIND_ERRORS as e:
            raise BackendReadError(
                operation="load",
                underlying_error=str(e),
            ) from e

        if row is None:
            raise HistoryNotFoundError(operation="load", item_id=str(item_id))
        return self._row_to_item(row, "load")

    def _execute_query(self, built: BuiltQuery, operation: str) -> sqlite3.Cursor:
        logger.debug("%s: %s -- params: %s", operation, built.sql, sorted(built.params))
        try:
            return self._conn.execute(built.sql, built.params)
        except BIND_ERRORS as e:
            raise BackendReadError(
                operation=operation,
                underlying_error=str(e),
            ) from e

    def search(self, query: SearchQuery) -> list[HistoryItem]:
        cursor = self._execute_query(build_query(query), "search")
        try:
            rows = cursor.fetchall()
        except sqlite3.Error as e:
            raise BackendReadError(
                operation="search",
                underlying_error=str(e),
            ) from e
        return [self._row_to_item(row, "search") for row in rows]

    def count(self, query: SearchQuery) -> int:
        cursor = self._execute_query(build_count(query), "count")
        try:
            return cursor.fetchone()[0]
        except sqlite3.Error as e:
            raise BackendReadError(
                operation="count",
                underlying_error=str(e),
            ) from e

    def update(
        self,
        item_id: HistoryItemId,
        updater: Callable[[HistoryItem], HistoryItem],
    ) -> None:
        try:
            with self.transaction():
                item = self.load(item_id)
                updated = updater(item)
                if updated.id != item_id:
                    updated = updated.model_copy(update={"id": item_id})
                self.save(updated)
        except sqlite3.Error as e:
            raise BackendWriteError(
                operation="update",
                underlying_error=str(e),
            ) from e

    def delete(self, item_id: HistoryItemId) -> None:
        try:
            cursor = self._conn.execute(
                "DELETE FROM history WHERE id = :id",
                {"id": item_id._value},
            )
        except BIND_ERRORS as e:
            raise BackendWriteError(
                operation="delete",
                underlying_error=str(e),
            ) from e

        if cursor.rowcount == 0:
            raise HistoryNotFoundError(operation="delete", item_id=str(item_id))

    def new_session_id(self) -> HistorySessionId:
        try:
            with self.transaction():
                next_id = self._conn.execute(NEXT_SESSION_SQL).fetchone()[0]
                self._conn.execute(RECORD_SESSION_SQL, {"session_id": next_id})
        except sqlite3.Error as e:
            raise BackendError(
                operation="new_session_id",
                underlying_error=str(e),
            ) from e
        return HistorySessionId._from_db(next_id)

    def sync(self) -> None:
        # Every write is committed before it returns.
        pass

    def clear(self) -> None:
        try:
            self._conn.execute("DELETE FROM history")
        except sqlite3.Error as e:
            raise BackendWriteError(
                operation="clear",
                underlying_error=str(e),
            ) from e
