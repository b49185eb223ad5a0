"""
Exception hierarchy for shellhist.

All shellhist exceptions inherit from ShellHistError, allowing callers to
catch every library failure with a single except clause. Store failures
additionally inherit from StorageError and expose a closed ``kind`` so
callers can branch on the failure category instead of parsing messages.

Exception Categories:
    - HistoryNotFoundError: load/update/delete target is absent
    - HistorySerializationError: extensible payload failed to encode/decode
    - StorageIoError: directory creation or database file open failed
    - BackendError: the SQLite engine rejected an operation

Design Principles:
    - All errors have error codes for programmatic handling
    - All errors include context (operation, item id where applicable)
    - Errors are both human-readable and machine-parseable
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar


# =============================================================================
# Error Codes
# =============================================================================

# Lookup errors: 1xxx
ERROR_NOT_FOUND = 1001

# Payload errors: 2xxx
ERROR_SERIALIZATION = 2001

# Filesystem errors: 3xxx
ERROR_IO = 3001

# Database engine errors: 4xxx
ERROR_BACKEND = 4001
ERROR_BACKEND_READ = 4002
ERROR_BACKEND_WRITE = 4003


class ErrorKind(str, Enum):
    """Failure category of a store operation."""

    NOT_FOUND = "not_found"
    SERIALIZATION = "serialization"
    IO = "io"
    BACKEND = "backend"


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class ShellHistError(Exception):
    """
    Base exception for all shellhist errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(ShellHistError):
    """
    Base class for every failure raised by a history store.

    Attributes:
        operation: The store operation that failed (e.g., "save", "load")
    """

    kind: ClassVar[ErrorKind] = ErrorKind.BACKEND

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["operation"] = self.operation
        self.context["kind"] = self.kind.value

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, including the error kind."""
        data = super().to_dict()
        data["kind"] = self.kind.value
        return data


@dataclass
class HistoryNotFoundError(StorageError):
    """Raised when no history item exists for the requested id."""

    kind: ClassVar[ErrorKind] = ErrorKind.NOT_FOUND

    item_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"History item not found: {self.item_id}"
        if self.code == 0:
            self.code = ERROR_NOT_FOUND
        super().__post_init__()
        self.context["item_id"] = self.item_id


@dataclass
class HistorySerializationError(StorageError):
    """Raised when the extensible payload of an item cannot be (de)serialized."""

    kind: ClassVar[ErrorKind] = ErrorKind.SERIALIZATION

    item_id: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Could not deserialize more_info of item {self.item_id}: "
                f"{self.underlying_error}"
            )
        if self.code == 0:
            self.code = ERROR_SERIALIZATION
        if not self.suggestion:
            self.suggestion = (
                "Open the store with an extra-info type matching the stored payload"
            )
        super().__post_init__()
        self.context.update({
            "item_id": self.item_id,
            "underlying_error": self.underlying_error,
        })


@dataclass
class StorageIoError(StorageError):
    """Raised when the database file or its parent directory cannot be created or opened."""

    kind: ClassVar[ErrorKind] = ErrorKind.IO

    path: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Cannot open history file {self.path}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_IO
        if not self.suggestion:
            self.suggestion = "Check that the history path is valid and writable"
        super().__post_init__()
        self.context.update({
            "path": self.path,
            "underlying_error": self.underlying_error,
        })


@dataclass
class BackendError(StorageError):
    """Raised when the database engine rejects an operation."""

    kind: ClassVar[ErrorKind] = ErrorKind.BACKEND

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database operation {self.operation} failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_BACKEND
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class BackendReadError(BackendError):
    """Raised when a read operation fails."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database read failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_BACKEND_READ
        super().__post_init__()


@dataclass
class BackendWriteError(BackendError):
    """Raised when a write operation fails."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database write failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_BACKEND_WRITE
        super().__post_init__()
