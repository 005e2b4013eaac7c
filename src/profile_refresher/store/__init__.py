"""Store contracts."""

from .base import KeyValueStore
from .memory import MemoryKeyValueStore
from .sqlite import (
    DEFAULT_MIGRATIONS,
    Migration,
    SQLiteKeyValueStore,
    SQLiteMigrationRunner,
)

__all__ = [
    "DEFAULT_MIGRATIONS",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "Migration",
    "SQLiteKeyValueStore",
    "SQLiteMigrationRunner",
]
