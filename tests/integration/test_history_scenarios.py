"""
Integration tests for a line editor using the history.

Tests cover:
- The record-then-search flow of an interactive shell
- Several shells sharing one history file
- Updating an item once its command finishes
"""

from datetime import UTC, datetime, timedelta
from pathlib import Path

from shellhist import (
    CommandLineSearch,
    History,
    HistoryItem,
    SearchDirection,
    SearchFilter,
    SearchQuery,
    SqliteBackedHistory,
)


def test_store_is_a_history() -> None:
    with SqliteBackedHistory.in_memory() as history:
        assert isinstance(history, History)


def test_prefix_search_scenario() -> None:
    """Insert ls, cd /tmp, ls -la and search for the ls prefix."""
    with SqliteBackedHistory.in_memory() as history:
        first = history.save(HistoryItem.from_command_line("ls"))
        history.save(HistoryItem.from_command_line("cd /tmp"))
        third = history.save(HistoryItem.from_command_line("ls -la"))

        result = history.search(
            SearchQuery(filter=SearchFilter.from_text_search(CommandLineSearch.prefix("ls")))
        )

        assert result == [first, third]


def test_record_then_complete(temp_dir: Path) -> None:
    """A shell saves the command before running it and fills in the result afterwards."""
    started = datetime(2024, 2, 29, 23, 59, 59, tzinfo=UTC)
    with SqliteBackedHistory.with_file(temp_dir / "shell" / "history.db") as history:
        session = history.new_session_id()
        pending = history.save(
            HistoryItem(
                command_line="pytest -x",
                start_timestamp=started,
                session_id=session,
                hostname="laptop",
                cwd="/home/me/project",
            )
        )

        history.update(
            pending.id,
            lambda item: item.model_copy(
                update={"exit_status": 1, "duration": timedelta(seconds=42, milliseconds=7)}
            ),
        )

        done = history.load(pending.id)
        assert done.exit_status == 1
        assert done.duration == timedelta(seconds=42, milliseconds=7)
        assert done.start_timestamp == started
        assert done.session_id == session

        failures = history.search(
            SearchQuery(
                direction=SearchDirection.BACKWARD,
                filter=SearchFilter(cwd_prefix="/home/me", exit_successful=False),
            )
        )
        assert failures == [done]


def test_two_shells_share_a_file(temp_dir: Path) -> None:
    db_path = temp_dir / "history.db"
    with SqliteBackedHistory(db_path) as shell_a, SqliteBackedHistory(db_path) as shell_b:
        session_a = shell_a.new_session_id()
        session_b = shell_b.new_session_id()
        assert session_a != session_b

        shell_a.save(HistoryItem(command_line="make", session_id=session_a))
        shell_b.save(HistoryItem(command_line="vim", session_id=session_b))
        shell_a.save(HistoryItem(command_line="make test", session_id=session_a))

        everything = shell_b.search(SearchQuery.everything(SearchDirection.FORWARD))
        only_a = shell_b.search(SearchQuery(filter=SearchFilter(session_id=session_a)))

        assert [i.command_line for i in everything] == ["make", "vim", "make test"]
        assert [i.command_line for i in only_a] == ["make", "make test"]


def test_backward_paging() -> None:
    """Page newest-first through the history using start_id of the last item seen."""
    with SqliteBackedHistory.in_memory() as history:
        for n in range(7):
            history.save(HistoryItem.from_command_line(f"cmd{n}"))

        pages: list[list[str]] = []
        query = SearchQuery(direction=SearchDirection.BACKWARD, limit=3)
        while True:
            page = history.search(query)
            if not page:
                break
            pages.append([item.command_line for item in page])
            query = query.model_copy(update={"start_id": page[-1].id})

        assert pages == [
            ["cmd6", "cmd5", "cmd4"],
            ["cmd3", "cmd2", "cmd1"],
            ["cmd0"],
        ]
