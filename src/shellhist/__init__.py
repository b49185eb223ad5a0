"""
shellhist - Persistent, searchable shell command history.

Every command a line editor runs is recorded with optional context
(start time, session, host, working directory, duration, exit status and
an extensible payload) and can be found again by id or by a filtered,
directional search.

Example usage:
    >>> from shellhist import HistoryItem, SearchQuery, SqliteBackedHistory
    >>> with SqliteBackedHistory.in_memory() as history:
    ...     item = history.save(HistoryItem.from_command_line("ls -la"))
    ...     history.search(SearchQuery.last_with_prefix("ls"))

    $ shellhist add "make test" --exit-status 0
    $ shellhist search --prefix make
"""

__version__ = "0.1.0"
__author__ = "shellhist Contributors"

from shellhist.errors import (
    ErrorKind,
    HistoryNotFoundError,
    HistorySerializationError,
    ShellHistError,
    StorageError,
)
from shellhist.history import History
from shellhist.schema import (
    Anything,
    CommandLineSearch,
    HistoryItem,
    HistoryItemExtraInfo,
    HistoryItemId,
    HistorySessionId,
    SearchDirection,
    SearchFilter,
    SearchQuery,
    StoreConfig,
)
from shellhist.store import SqliteBackedHistory

__all__ = [
    "__version__",
    "__author__",
    "Anything",
    "CommandLineSearch",
    "ErrorKind",
    "History",
    "HistoryItem",
    "HistoryItemExtraInfo",
    "HistoryItemId",
    "HistoryNotFoundError",
    "HistorySerializationError",
    "HistorySessionId",
    "SearchDirection",
    "SearchFilter",
    "SearchQuery",
    "ShellHistError",
    "SqliteBackedHistory",
    "StorageError",
    "StoreConfig",
]
