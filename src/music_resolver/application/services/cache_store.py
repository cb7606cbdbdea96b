"""Cache Store - multi-namespace TTL cache backed by the key-value store."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from ...domain.music.entities import SourceRecord
from ...domain.resolvers.entities import ResolverSettingsKey
from ...domain.shared.datetime_utils import days_to_seconds, epoch_seconds
from ...domain.shared.exceptions import CachePersistenceFailedError
from ...domain.shared.messages import LogTemplates
from ...domain.shared.types import NonNegativeFloat

if TYPE_CHECKING:
    from ...config.settings import CacheSettings
    from ..interfaces.key_value_store import KeyValueStore

logger = logging.getLogger(__name__)


class CacheNamespace(StrEnum):
    """Independently expiring partitions of the cache."""

    ALBUM_ART = "album_art"
    ARTIST_DATA = "artist_data"
    TRACK_SOURCES = "track_sources"
    ARTIST_IMAGES = "artist_images"
    PLAYLIST_COVERS = "playlist_covers"

    @property
    def storage_key(self) -> str:
        return f"cache_{self.value}"


class CacheEntry(BaseModel):
    """One cached value with the metadata needed to decide whether it is still usable."""

    model_config = ConfigDict(frozen=True)

    payload: Any
    timestamp: NonNegativeFloat
    settings_key: ResolverSettingsKey | None = None
    schema_version: int | None = None

    def age_seconds(self, now: float) -> float:
        return max(0.0, now - self.timestamp)

    def is_expired(self, ttl_seconds: float, now: float) -> bool:
        return self.age_seconds(now) >= ttl_seconds

    @property
    def sources(self) -> dict[str, SourceRecord]:
        """Payload of a track-sources entry."""
        return dict(self.payload) if isinstance(self.payload, Mapping) else {}


_DEFAULT_TTL_DAYS: dict[CacheNamespace, float] = {
    CacheNamespace.ALBUM_ART: 90,
    CacheNamespace.ARTIST_DATA: 30,
    CacheNamespace.TRACK_SOURCES: 7,
    CacheNamespace.ARTIST_IMAGES: 90,
    CacheNamespace.PLAYLIST_COVERS: 30,
}


class CacheStore:
    """In-memory namespaces with TTL filtering and periodic persistence.

    Reads and writes never touch the backing store; only :meth:`flush` and
    :meth:`load_from_persistence` do. All mutations are synchronous, so a
    read-merge-write in :meth:`merge_sources` cannot interleave with another
    task's update of the same entry.
    """

    def __init__(
        self,
        *,
        store: KeyValueStore | None = None,
        settings: CacheSettings | None = None,
        clock: Callable[[], float] = epoch_seconds,
    ) -> None:
        self._store = store
        self._clock = clock
        self._schema_version = settings.artist_data_schema_version if settings else 1
        self._ttl_seconds = {
            namespace: days_to_seconds(
                getattr(settings, f"{namespace.value}_ttl_days") if settings else days
            )
            for namespace, days in _DEFAULT_TTL_DAYS.items()
        }
        self._entries: dict[CacheNamespace, dict[str, CacheEntry]] = {
            namespace: {} for namespace in CacheNamespace
        }

    def now(self) -> float:
        return self._clock()

    def ttl_seconds(self, namespace: CacheNamespace) -> float:
        return self._ttl_seconds[namespace]

    @property
    def schema_version(self) -> int:
        return self._schema_version

    # ── Generic access ──────────────────────────────────────────────

    def get(self, namespace: CacheNamespace, key: str) -> CacheEntry | None:
        """Return a usable entry. Expired or wrong-schema entries are evicted on read."""
        entries = self._entries[namespace]
        entry = entries.get(key)
        if entry is None:
            return None

        if not self._is_usable(namespace, entry, self._clock()):
            del entries[key]
            return None
        return entry

    def set(
        self,
        namespace: CacheNamespace,
        key: str,
        payload: Any,
        settings_key: ResolverSettingsKey | None = None,
    ) -> CacheEntry:
        entry = CacheEntry(
            payload=payload,
            timestamp=self._clock(),
            settings_key=settings_key,
            schema_version=self._schema_version if namespace is CacheNamespace.ARTIST_DATA else None,
        )
        self._entries[namespace][key] = entry
        return entry

    def delete(self, namespace: CacheNamespace, key: str) -> bool:
        return self._entries[namespace].pop(key, None) is not None

    def touch(
        self,
        namespace: CacheNamespace,
        key: str,
        settings_key: ResolverSettingsKey | None = None,
    ) -> CacheEntry | None:
        """Refresh an entry's timestamp (and settings key) without changing its payload."""
        entry = self._entries[namespace].get(key)
        if entry is None:
            return None
        refreshed = entry.model_copy(
            update={"timestamp": self._clock(), "settings_key": settings_key or entry.settings_key}
        )
        self._entries[namespace][key] = refreshed
        return refreshed

    # ── Track sources ───────────────────────────────────────────────

    def get_sources(self, key: str) -> CacheEntry | None:
        return self.get(CacheNamespace.TRACK_SOURCES, key)

    def set_sources(
        self,
        key: str,
        sources: Mapping[str, SourceRecord],
        settings_key: ResolverSettingsKey | None = None,
    ) -> CacheEntry:
        return self.set(CacheNamespace.TRACK_SOURCES, key, dict(sources), settings_key)

    def merge_sources(
        self,
        key: str,
        sources: Mapping[str, SourceRecord],
        settings_key: ResolverSettingsKey | None = None,
    ) -> dict[str, SourceRecord]:
        """Merge ``sources`` into the cached map by resolver id and return the result.

        An existing entry keeps its timestamp: merging in newly queried
        resolvers does not make the previously cached sources any fresher.
        """
        current = self.get_sources(key)
        if current is None:
            self.set_sources(key, sources, settings_key)
            return dict(sources)

        merged = {**current.sources, **sources}
        self._entries[CacheNamespace.TRACK_SOURCES][key] = current.model_copy(
            update={"payload": merged, "settings_key": settings_key or current.settings_key}
        )
        return merged

    # ── Purge ───────────────────────────────────────────────────────

    def purge_resolver(self, resolver_id: str) -> int:
        """Strip one resolver from every composite entry.

        Track-sources entries and the ``sources`` mapping inside artist-data
        payloads lose that resolver's key; an entry is deleted only when
        nothing else remains in it.
        """
        touched = 0
        deleted = 0

        track_sources = self._entries[CacheNamespace.TRACK_SOURCES]
        for key, entry in list(track_sources.items()):
            sources = entry.sources
            if resolver_id not in sources:
                continue
            del sources[resolver_id]
            touched += 1
            if sources:
                track_sources[key] = entry.model_copy(update={"payload": sources})
            else:
                del track_sources[key]
                deleted += 1

        artist_data = self._entries[CacheNamespace.ARTIST_DATA]
        for key, entry in list(artist_data.items()):
            payload = entry.payload
            if not isinstance(payload, Mapping):
                continue
            nested = payload.get("sources")
            if not isinstance(nested, Mapping) or resolver_id not in nested:
                continue

            remaining = {rid: value for rid, value in nested.items() if rid != resolver_id}
            updated = {k: v for k, v in payload.items() if k != "sources"}
            if remaining:
                updated["sources"] = remaining
            touched += 1
            if updated:
                artist_data[key] = entry.model_copy(update={"payload": updated})
            else:
                del artist_data[key]
                deleted += 1

        if touched:
            logger.info(LogTemplates.CACHE_PURGED_RESOLVER, resolver_id, touched, deleted)
        return touched

    # ── Housekeeping ────────────────────────────────────────────────

    def stats(self) -> dict[str, int]:
        return {namespace.value: len(entries) for namespace, entries in self._entries.items()}

    def clear(self, namespace: CacheNamespace | None = None) -> int:
        namespaces = [namespace] if namespace is not None else list(CacheNamespace)
        cleared = 0
        for ns in namespaces:
            cleared += len(self._entries[ns])
            self._entries[ns].clear()
        logger.info(LogTemplates.CACHE_CLEARED, cleared)
        return cleared

    # ── Persistence ─────────────────────────────────────────────────

    async def flush(self) -> int:
        """Persist every namespace. A failing store is logged and ignored."""
        if self._store is None:
            return 0
        try:
            written = await self._write_all(self._store)
        except CachePersistenceFailedError as e:
            logger.error(LogTemplates.CACHE_FLUSH_FAILED, e)
            return 0
        logger.debug(LogTemplates.CACHE_FLUSHED, written)
        return written

    async def load_from_persistence(self) -> int:
        """Load persisted namespaces, dropping expired and wrong-schema entries.

        A failing store leaves the cache empty.
        """
        if self._store is None:
            return 0
        try:
            return await self._read_all(self._store)
        except CachePersistenceFailedError as e:
            logger.error(LogTemplates.CACHE_LOAD_FAILED, e)
            for entries in self._entries.values():
                entries.clear()
            return 0

    async def _write_all(self, store: KeyValueStore) -> int:
        now = self._clock()
        written = 0
        for namespace in CacheNamespace:
            serialized = {
                key: entry.model_dump(mode="json")
                for key, entry in self._entries[namespace].items()
                if self._is_usable(namespace, entry, now)
            }
            try:
                await store.set(namespace.storage_key, serialized)
            except Exception as e:
                raise CachePersistenceFailedError("flush", e) from e
            written += len(serialized)
        return written

    async def _read_all(self, store: KeyValueStore) -> int:
        now = self._clock()
        loaded = 0
        for namespace in CacheNamespace:
            try:
                raw = await store.get(namespace.storage_key)
            except Exception as e:
                raise CachePersistenceFailedError("load", e) from e

            entries: dict[str, CacheEntry] = {}
            discarded = 0
            for key, value in (raw or {}).items() if isinstance(raw, Mapping) else ():
                entry = self._parse_entry(namespace, value)
                if entry is None or not self._is_usable(namespace, entry, now):
                    discarded += 1
                    continue
                entries[key] = entry

            self._entries[namespace] = entries
            loaded += len(entries)
            logger.info(LogTemplates.CACHE_LOADED_NAMESPACE, len(entries), namespace.value, discarded)
        return loaded

    def _parse_entry(self, namespace: CacheNamespace, value: Any) -> CacheEntry | None:
        try:
            entry = CacheEntry.model_validate(value)
            if namespace is CacheNamespace.TRACK_SOURCES:
                sources = {
                    str(rid): SourceRecord.model_validate(record)
                    for rid, record in dict(entry.payload).items()
                }
                entry = entry.model_copy(update={"payload": sources})
        except (PydanticValidationError, TypeError, ValueError):
            return None
        return entry

    def _is_usable(self, namespace: CacheNamespace, entry: CacheEntry, now: float) -> bool:
        if entry.is_expired(self._ttl_seconds[namespace], now):
            return False
        if namespace is CacheNamespace.ARTIST_DATA and entry.schema_version != self._schema_version:
            return False
        return True
