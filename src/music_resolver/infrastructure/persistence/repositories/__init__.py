"""SQLite repository implementations."""

from music_resolver.infrastructure.persistence.repositories.kv_repository import (
    SQLiteKeyValueStore,
)

__all__ = [
    "SQLiteKeyValueStore",
]
