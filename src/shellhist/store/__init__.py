"""
Storage module for shellhist.

This module provides SQLite-based persistence for shell history items.

Tables:
    - history: One row per executed command and its metadata
    - session_allocator: Last handed-out session id
    - schema_version: Schema revision tracking

Why SQLite?
    - Zero configuration (no server needed)
    - Safe concurrent access from several shells via WAL
    - Portable single-file format
"""

from shellhist.store.db import SqliteBackedHistory
from shellhist.store.query import BuiltQuery, SqlValue, build_count, build_query

__all__ = [
    "BuiltQuery",
    "SqlValue",
    "SqliteBackedHistory",
    "build_count",
    "build_query",
]
