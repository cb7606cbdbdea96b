"""Infrastructure layer - external systems integration.

This layer contains implementations for:
- Persistence (aiosqlite database, key-value store, cache flush job)
- Plugins (manifest discovery, entry-point import)
"""

from music_resolver.infrastructure.persistence.database import Database
from music_resolver.infrastructure.persistence.repositories.kv_repository import SQLiteKeyValueStore

__all__ = [
    "Database",
    "SQLiteKeyValueStore",
]
