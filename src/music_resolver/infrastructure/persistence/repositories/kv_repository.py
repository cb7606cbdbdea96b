"""SQLite implementation of the key-value store."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from music_resolver.application.interfaces.key_value_store import KeyValueStore
from music_resolver.domain.shared.datetime_utils import UtcDateTime

if TYPE_CHECKING:
    from ..database import Database

logger = logging.getLogger(__name__)


class SQLiteKeyValueStore(KeyValueStore):
    """Stores JSON-encoded values in the ``kv_store`` table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def get(self, key: str) -> Any | None:
        row = await self._db.fetch_one("SELECT value_json FROM kv_store WHERE key = ?", (key,))
        if row is None:
            return None
        return json.loads(row["value_json"])

    async def set(self, key: str, value: Any) -> None:
        await self._db.execute(
            """
            INSERT INTO kv_store (key, value_json, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value_json = excluded.value_json,
                updated_at = excluded.updated_at
            """,
            (key, json.dumps(value, ensure_ascii=False), UtcDateTime.now().iso),
        )
        logger.debug("Stored key %s", key)

    async def delete(self, key: str) -> bool:
        deleted = await self._db.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        return deleted > 0

    async def keys(self) -> list[str]:
        rows = await self._db.fetch_all("SELECT key FROM kv_store ORDER BY key")
        return [row["key"] for row in rows]
