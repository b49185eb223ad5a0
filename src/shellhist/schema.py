"""
Schema definitions for shellhist.

This module defines the models shared by every history backend:
- HistoryItemId/HistorySessionId: Opaque handles assigned by the store
- HistoryItem: One executed command plus optional metadata
- HistoryItemExtraInfo/Anything: The extensible, version-tolerant payload
- SearchQuery/SearchFilter/CommandLineSearch: Declarative filtered scans
- StoreConfig: How a SQLite-backed store is opened

Design Decisions:
    - Records are immutable (frozen=True); updates produce new values
    - Timestamps and durations are truncated to milliseconds on construction,
      the precision the store persists, so saved and loaded items compare equal
    - Identifiers cannot be built from raw integers by callers
"""

from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
ONE_MILLISECOND = timedelta(milliseconds=1)

# SQLite INTEGER range
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


# =============================================================================
# Identifiers
# =============================================================================


class _OpaqueId:
    """
    Base for store-assigned integer handles.

    Values are only comparable for equality and convert back to the raw
    integer with ``int()``; no arithmetic is exposed.
    Instances are created by the backend through ``_from_db``.
    """

    __slots__ = ("_value",)

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        msg = f"{type(self).__name__} values are assigned by the history store"
        raise TypeError(msg)

    @classmethod
    def _from_db(cls, value: int):
        obj = object.__new__(cls)
        object.__setattr__(obj, "_value", int(value))
        return obj

    def __setattr__(self, name: str, value: Any) -> None:
        msg = f"{type(self).__name__} is immutable"
        raise AttributeError(msg)

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._value == other._value

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._value))

    def __copy__(self):
        return self

    def __deepcopy__(self, memo: dict[int, Any]):
        return self

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value})"

    def __str__(self) -> str:
        return str(self._value)

    def __int__(self) -> int:
        return self._value


class HistoryItemId(_OpaqueId):
    """Primary key of a history item, unique within one store."""

    __slots__ = ()


class HistorySessionId(_OpaqueId):
    """Groups the items recorded by one shell session."""

    __slots__ = ()


# =============================================================================
# Extensible Payload
# =============================================================================


class HistoryItemExtraInfo(BaseModel):
    """
    Arbitrary additional context attached to a history item.

    Subclass this to describe a payload. The store persists it as JSON text
    via ``to_json`` and reads it back via ``from_json``. Unknown keys are
    ignored on read so payloads written by newer code still load.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    def to_json(self) -> str:
        """Serialize to the self-describing text stored in the database."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, text: str) -> "HistoryItemExtraInfo":
        """
        Deserialize from stored text.

        Raises:
            pydantic.ValidationError: If the text does not match this payload
        """
        return cls.model_validate_json(text)


class Anything(HistoryItemExtraInfo):
    """Serialized as JSON null; deserialized by ignoring whatever was stored."""

    def to_json(self) -> str:
        return "null"

    @classmethod
    def from_json(cls, text: str) -> "Anything":
        return cls()


# =============================================================================
# History Item
# =============================================================================


def _truncate_to_millis(value: timedelta) -> timedelta:
    return timedelta(milliseconds=value // ONE_MILLISECOND)


def datetime_to_millis(value: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds."""
    return (value - EPOCH) // ONE_MILLISECOND


def millis_to_datetime(value: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return EPOCH + timedelta(milliseconds=value)


def _normalize_timestamp(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return millis_to_datetime(datetime_to_millis(value))


class HistoryItem(BaseModel):
    """
    One executed command with optional context.

    Attributes:
        id: Store-assigned primary key; None until the item is saved
        start_timestamp: When the command started (UTC, millisecond precision)
        command_line: The full command line as text
        session_id: Shell session the command was run in
        hostname: Host the command was run on
        cwd: Working directory of the command
        duration: How long the command took (millisecond precision)
        exit_status: Exit code of the command
        more_info: Arbitrary additional information
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    id: HistoryItemId | None = Field(default=None, description="Primary key")
    start_timestamp: datetime | None = Field(
        default=None,
        description="When the command started",
    )
    command_line: str = Field(..., description="The full command line")
    session_id: HistorySessionId | None = Field(
        default=None,
        description="Shell session the command was run in",
    )
    hostname: str | None = Field(default=None, description="Host name")
    cwd: str | None = Field(default=None, description="Working directory")
    duration: timedelta | None = Field(default=None, description="Elapsed time")
    exit_status: int | None = Field(
        default=None,
        ge=INT64_MIN,
        le=INT64_MAX,
        description="Exit code",
    )
    more_info: HistoryItemExtraInfo | None = Field(
        default=None,
        description="Arbitrary additional information",
    )

    @field_validator("start_timestamp")
    @classmethod
    def truncate_timestamp(cls, v: datetime | None) -> datetime | None:
        """Store precision is milliseconds; naive values are taken as UTC."""
        return _normalize_timestamp(v)

    @field_validator("duration")
    @classmethod
    def truncate_duration(cls, v: timedelta | None) -> timedelta | None:
        """Durations are non-negative and kept to millisecond precision."""
        if v is None:
            return None
        if v < timedelta(0):
            msg = "duration must not be negative"
            raise ValueError(msg)
        return _truncate_to_millis(v)

    @classmethod
    def from_command_line(cls, cmd: str) -> "HistoryItem":
        """Create an item from the command line with everything else unset."""
        return cls(command_line=cmd)


# =============================================================================
# Search Query
# =============================================================================


class SearchDirection(str, Enum):
    """Order in which a search walks item ids."""

    FORWARD = "forward"
    BACKWARD = "backward"


class MatchKind(str, Enum):
    """How a command line filter is compared."""

    EXACT = "exact"
    PREFIX = "prefix"
    SUBSTRING = "substring"


class CommandLineSearch(BaseModel):
    """A literal command line match; the text never acts as a wildcard pattern."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: MatchKind
    text: str

    @classmethod
    def exact(cls, text: str) -> "CommandLineSearch":
        return cls(kind=MatchKind.EXACT, text=text)

    @classmethod
    def prefix(cls, text: str) -> "CommandLineSearch":
        return cls(kind=MatchKind.PREFIX, text=text)

    @classmethod
    def substring(cls, text: str) -> "CommandLineSearch":
        return cls(kind=MatchKind.SUBSTRING, text=text)


class SearchFilter(BaseModel):
    """
    Predicates combined with AND; unset fields apply no constraint.

    Attributes:
        command_line: Exact, prefix or substring match on the command
        not_command_line: Exclude commands equal to this text
        hostname: Host must equal this
        cwd_exact: Working directory must equal this
        cwd_prefix: Working directory must start with this
        exit_successful: True for exit code zero, False for any other code
        session_id: Only items from this session
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    command_line: CommandLineSearch | None = None
    not_command_line: str | None = None
    hostname: str | None = None
    cwd_exact: str | None = None
    cwd_prefix: str | None = None
    exit_successful: bool | None = None
    session_id: HistorySessionId | None = None

    @classmethod
    def anything(cls) -> "SearchFilter":
        """A filter that matches every item."""
        return cls()

    @classmethod
    def from_text_search(cls, cmd: CommandLineSearch) -> "SearchFilter":
        """A filter on the command line only."""
        return cls(command_line=cmd)


class SearchQuery(BaseModel):
    """
    A filtered, directional, bounded scan over the history.

    ``start_*`` bounds are exclusive and ``end_*`` bounds inclusive; both
    are read in the scan direction, so for a backward scan ``start_id`` is
    the larger id and the scan moves towards ``end_id``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    direction: SearchDirection = SearchDirection.FORWARD
    start_time: datetime | None = None
    end_time: datetime | None = None
    start_id: HistoryItemId | None = None
    end_id: HistoryItemId | None = None
    limit: int | None = Field(default=None, ge=0, le=INT64_MAX)
    filter: SearchFilter = Field(default_factory=SearchFilter)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_bound(cls, v: datetime | None) -> datetime | None:
        return _normalize_timestamp(v)

    @classmethod
    def everything(cls, direction: SearchDirection) -> "SearchQuery":
        """Every item, walked in the given direction."""
        return cls(direction=direction)

    @classmethod
    def last_with_search(cls, filter: SearchFilter) -> "SearchQuery":
        """The most recent item matching the filter."""
        return cls(direction=SearchDirection.BACKWARD, limit=1, filter=filter)

    @classmethod
    def last_with_prefix(cls, prefix: str) -> "SearchQuery":
        """The most recent item whose command starts with prefix."""
        return cls.last_with_search(
            SearchFilter.from_text_search(CommandLineSearch.prefix(prefix))
        )

    @classmethod
    def all_that_contain_rev(cls, contains: str) -> "SearchQuery":
        """Every item containing the text, newest first."""
        return cls(
            direction=SearchDirection.BACKWARD,
            filter=SearchFilter.from_text_search(CommandLineSearch.substring(contains)),
        )


# =============================================================================
# Store Configuration
# =============================================================================


class StoreConfig(BaseModel):
    """
    How a SQLite-backed history is opened.

    Attributes:
        path: Database file; None or ":memory:" for an ephemeral store
        journal_mode: SQLite journal mode
        synchronous: SQLite synchronous level
        mmap_size: Bytes of the database file to memory-map for reads
        foreign_keys: Whether foreign key constraints are enforced
        busy_timeout_ms: How long to wait on another process's write lock
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: Path | None = Field(default=None, description="Database file path")
    journal_mode: Literal["wal", "delete", "truncate", "persist", "memory", "off"] = "wal"
    synchronous: Literal["off", "normal", "full", "extra"] = "normal"
    mmap_size: int = Field(default=1_000_000_000, ge=0)
    foreign_keys: bool = True
    busy_timeout_ms: int = Field(default=5000, ge=0)

    @property
    def in_memory(self) -> bool:
        return self.path is None or str(self.path) == ":memory:"


# =============================================================================
# YAML Loading Helpers
# =============================================================================


def load_config(path: Path | str) -> StoreConfig:
    """
    Load a store configuration from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Validated StoreConfig object

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValidationError: If the YAML doesn't match the schema
    """
    path = Path(path)
    with path.open() as f:
        data = yaml.safe_load(f)

    return StoreConfig.model_validate(data or {})


def load_config_from_string(content: str) -> StoreConfig:
    """Load a store configuration from a YAML string."""
    data = yaml.safe_load(content)
    return StoreConfig.model_validate(data or {})
