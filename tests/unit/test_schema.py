"""
Unit tests for schema models.

Tests cover:
- Identifier opacity and equality
- HistoryItem construction and precision normalization
- Extensible payload serialization
- SearchQuery constructors
- StoreConfig YAML loading
"""

import copy
from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path

import pytest
from pydantic import ValidationError

from shellhist.schema import (
    Anything,
    CommandLineSearch,
    HistoryItem,
    HistoryItemExtraInfo,
    HistoryItemId,
    HistorySessionId,
    MatchKind,
    SearchDirection,
    SearchFilter,
    SearchQuery,
    StoreConfig,
    datetime_to_millis,
    load_config,
    load_config_from_string,
    millis_to_datetime,
)


class GitInfo(HistoryItemExtraInfo):
    """Payload used by the tests."""

    branch: str = ""
    dirty: bool = False


# =============================================================================
# Identifier Tests
# =============================================================================


class TestIdentifiers:
    """Tests for opaque ids."""

    def test_cannot_construct_directly(self) -> None:
        with pytest.raises(TypeError):
            HistoryItemId(1)
        with pytest.raises(TypeError):
            HistorySessionId(1)

    def test_equality(self) -> None:
        assert HistoryItemId._from_db(3) == HistoryItemId._from_db(3)
        assert HistoryItemId._from_db(3) != HistoryItemId._from_db(4)

    def test_item_and_session_ids_differ(self) -> None:
        assert HistoryItemId._from_db(1) != HistorySessionId._from_db(1)

    def test_not_equal_to_raw_int(self) -> None:
        assert HistoryItemId._from_db(1) != 1

    def test_no_arithmetic(self) -> None:
        item_id = HistoryItemId._from_db(1)
        with pytest.raises(TypeError):
            item_id + 1  # noqa: B018
        with pytest.raises(TypeError):
            item_id < HistoryItemId._from_db(2)  # noqa: B018

    def test_immutable(self) -> None:
        item_id = HistoryItemId._from_db(1)
        with pytest.raises(AttributeError):
            item_id._value = 2

    def test_hashable_and_copyable(self) -> None:
        item_id = HistoryItemId._from_db(5)
        assert {item_id, HistoryItemId._from_db(5)} == {item_id}
        assert copy.deepcopy(item_id) == item_id

    def test_repr_and_str(self) -> None:
        assert repr(HistorySessionId._from_db(9)) == "HistorySessionId(9)"
        assert str(HistoryItemId._from_db(9)) == "9"

    def test_int_conversion(self) -> None:
        assert int(HistoryItemId._from_db(12)) == 12
        assert int(HistorySessionId._from_db(3)) == 3


# =============================================================================
# HistoryItem Tests
# =============================================================================


class TestHistoryItem:
    """Tests for HistoryItem model."""

    def test_from_command_line(self) -> None:
        item = HistoryItem.from_command_line("ls -la")
        assert item.command_line == "ls -la"
        assert item.id is None
        assert item.start_timestamp is None
        assert item.session_id is None
        assert item.hostname is None
        assert item.cwd is None
        assert item.duration is None
        assert item.exit_status is None
        assert item.more_info is None

    def test_command_line_required(self) -> None:
        with pytest.raises(ValidationError):
            HistoryItem()

    def test_frozen(self) -> None:
        item = HistoryItem.from_command_line("ls")
        with pytest.raises(ValidationError):
            item.command_line = "pwd"

    def test_timestamp_truncated_to_millis(self) -> None:
        ts = datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=UTC)
        item = HistoryItem(command_line="ls", start_timestamp=ts)
        assert item.start_timestamp == datetime(2024, 5, 1, 12, 0, 0, 123000, tzinfo=UTC)

    def test_naive_timestamp_is_utc(self) -> None:
        item = HistoryItem(command_line="ls", start_timestamp=datetime(2024, 5, 1, 12, 0))
        assert item.start_timestamp == datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    def test_timestamp_converted_to_utc(self) -> None:
        plus_two = timezone(timedelta(hours=2))
        item = HistoryItem(
            command_line="ls",
            start_timestamp=datetime(2024, 5, 1, 14, 0, tzinfo=plus_two),
        )
        assert item.start_timestamp == datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
        assert item.start_timestamp.tzinfo == UTC

    def test_duration_truncated_to_millis(self) -> None:
        item = HistoryItem(command_line="ls", duration=timedelta(microseconds=2_500_700))
        assert item.duration == timedelta(milliseconds=2500)

    def test_negative_duration_rejected(self) -> None:
        with pytest.raises(ValidationError):
            HistoryItem(command_line="ls", duration=timedelta(seconds=-1))

    def test_rejects_raw_int_id(self) -> None:
        with pytest.raises(ValidationError):
            HistoryItem(command_line="ls", id=1)

    def test_extra_fields_forbidden(self) -> None:
        with pytest.raises(ValidationError):
            HistoryItem(command_line="ls", exit_code=0)

    @pytest.mark.parametrize("status", [2**63, -(2**63) - 1])
    def test_exit_status_outside_int64_rejected(self, status: int) -> None:
        with pytest.raises(ValidationError):
            HistoryItem(command_line="ls", exit_status=status)

    def test_exit_status_int64_extremes_accepted(self) -> None:
        assert HistoryItem(command_line="ls", exit_status=2**63 - 1).exit_status == 2**63 - 1
        assert HistoryItem(command_line="ls", exit_status=-(2**63)).exit_status == -(2**63)


class TestMillisConversion:
    """Tests for epoch millisecond helpers."""

    def test_round_trip(self) -> None:
        ts = datetime(2023, 1, 2, 3, 4, 5, 678000, tzinfo=UTC)
        assert millis_to_datetime(datetime_to_millis(ts)) == ts

    def test_epoch(self) -> None:
        assert datetime_to_millis(datetime(1970, 1, 1, tzinfo=UTC)) == 0
        assert millis_to_datetime(1500) == datetime(1970, 1, 1, 0, 0, 1, 500000, tzinfo=UTC)


# =============================================================================
# Extensible Payload Tests
# =============================================================================


class TestExtraInfo:
    """Tests for the extensible payload."""

    def test_anything_serializes_as_null(self) -> None:
        assert Anything().to_json() == "null"

    @pytest.mark.parametrize("stored", ["null", '{"a": 1}', "[1, 2, 3]", '"text"', "not json"])
    def test_anything_ignores_content(self, stored: str) -> None:
        assert Anything.from_json(stored) == Anything()

    def test_custom_payload_round_trip(self) -> None:
        info = GitInfo(branch="main", dirty=True)
        assert GitInfo.from_json(info.to_json()) == info

    def test_custom_payload_ignores_unknown_keys(self) -> None:
        info = GitInfo.from_json('{"branch": "dev", "added_later": 3}')
        assert info == GitInfo(branch="dev")

    def test_custom_payload_defaults(self) -> None:
        assert GitInfo.from_json("{}") == GitInfo()

    def test_custom_payload_invalid(self) -> None:
        with pytest.raises(ValidationError):
            GitInfo.from_json('{"dirty": "maybe"}')

    def test_item_accepts_payload_subclass(self) -> None:
        item = HistoryItem(command_line="git status", more_info=GitInfo(branch="main"))
        assert isinstance(item.more_info, GitInfo)
        assert item.more_info.branch == "main"


# =============================================================================
# Search Query Tests
# =============================================================================


class TestSearchQuery:
    """Tests for SearchQuery and its parts."""

    def test_defaults(self) -> None:
        query = SearchQuery()
        assert query.direction == SearchDirection.FORWARD
        assert query.limit is None
        assert query.filter == SearchFilter.anything()

    def test_command_line_constructors(self) -> None:
        assert CommandLineSearch.exact("ls").kind == MatchKind.EXACT
        assert CommandLineSearch.prefix("ls").kind == MatchKind.PREFIX
        assert CommandLineSearch.substring("ls").kind == MatchKind.SUBSTRING

    def test_everything(self) -> None:
        query = SearchQuery.everything(SearchDirection.BACKWARD)
        assert query.direction == SearchDirection.BACKWARD
        assert query.filter == SearchFilter()

    def test_last_with_prefix(self) -> None:
        query = SearchQuery.last_with_prefix("git")
        assert query.direction == SearchDirection.BACKWARD
        assert query.limit == 1
        assert query.filter.command_line == CommandLineSearch.prefix("git")

    def test_all_that_contain_rev(self) -> None:
        query = SearchQuery.all_that_contain_rev("push")
        assert query.direction == SearchDirection.BACKWARD
        assert query.limit is None
        assert query.filter.command_line == CommandLineSearch.substring("push")

    def test_negative_limit_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SearchQuery(limit=-1)

    def test_limit_outside_int64_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SearchQuery(limit=2**63)

    def test_time_bounds_normalized(self) -> None:
        query = SearchQuery(start_time=datetime(2024, 1, 1, 0, 0, 0, 999999))
        assert query.start_time == datetime(2024, 1, 1, 0, 0, 0, 999000, tzinfo=UTC)


# =============================================================================
# Store Configuration Tests
# =============================================================================


class TestStoreConfig:
    """Tests for StoreConfig and YAML loading."""

    def test_defaults(self) -> None:
        config = StoreConfig()
        assert config.path is None
        assert config.in_memory
        assert config.journal_mode == "wal"
        assert config.synchronous == "normal"
        assert config.mmap_size == 1_000_000_000
        assert config.foreign_keys is True

    def test_memory_path(self) -> None:
        assert StoreConfig(path=":memory:").in_memory
        assert not StoreConfig(path="/tmp/h.db").in_memory

    def test_invalid_journal_mode(self) -> None:
        with pytest.raises(ValidationError):
            StoreConfig(journal_mode="wal; DROP TABLE history")

    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(ValidationError):
            load_config_from_string("pth: /tmp/x.db\n")

    def test_load_from_string(self, sample_config_yaml: str) -> None:
        config = load_config_from_string(sample_config_yaml)
        assert config.path == Path("/tmp/shellhist-test/history.sqlite3")
        assert config.mmap_size == 268435456
        assert config.busy_timeout_ms == 1000

    def test_load_empty_string(self) -> None:
        assert load_config_from_string("") == StoreConfig()

    def test_load_from_file(self, temp_dir: Path, sample_config_yaml: str) -> None:
        config_file = temp_dir / "shellhist.yaml"
        config_file.write_text(sample_config_yaml)
        config = load_config(config_file)
        assert config.synchronous == "normal"

    def test_load_missing_file(self, temp_dir: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(temp_dir / "missing.yaml")
