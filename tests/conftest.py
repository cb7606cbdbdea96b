from __future__ import annotations

from typing import Any

import pytest
import pytest_asyncio

from music_resolver.application.interfaces.key_value_store import KeyValueStore
from music_resolver.application.interfaces.resolver_plugin import ResolverPlugin
from music_resolver.domain.music.entities import SourceRecord, Track

# ============================================================================
# Test Doubles
# ============================================================================


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed key-value store that can be told to fail."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self.data: dict[str, Any] = dict(data or {})
        self.fail_reads = False
        self.fail_writes = False
        self.set_calls: list[str] = []

    async def get(self, key: str) -> Any | None:
        if self.fail_reads:
            raise OSError("store unavailable")
        return self.data.get(key)

    async def set(self, key: str, value: Any) -> None:
        if self.fail_writes:
            raise OSError("disk full")
        self.set_calls.append(key)
        self.data[key] = value

    async def delete(self, key: str) -> bool:
        return self.data.pop(key, None) is not None


class FakeResolverPlugin(ResolverPlugin):
    """Scriptable resolver plugin that records every call."""

    def __init__(
        self,
        result: SourceRecord | None = None,
        *,
        error: Exception | None = None,
        play_results: list[bool | Exception] | None = None,
        search_results: list[Track] | None = None,
        lookup_result: Track | None = None,
    ) -> None:
        self.result = result
        self.error = error
        self.play_results = list(play_results) if play_results is not None else [True]
        self.search_results = search_results or []
        self.lookup_result = lookup_result

        self.init_calls: list[dict[str, Any]] = []
        self.resolve_calls: list[tuple[str, str, str | None]] = []
        self.play_calls: list[SourceRecord] = []
        self.search_calls: list[str] = []
        self.lookup_calls: list[str] = []
        self.cleanup_calls = 0

    async def init(self, config: dict[str, Any]) -> None:
        self.init_calls.append(config)

    async def cleanup(self) -> None:
        self.cleanup_calls += 1

    async def resolve(
        self, artist: str, title: str, album: str | None, config: dict[str, Any]
    ) -> SourceRecord | None:
        self.resolve_calls.append((artist, title, album))
        if self.error is not None:
            raise self.error
        return self.result

    async def search(self, query: str, config: dict[str, Any]) -> list[Track]:
        self.search_calls.append(query)
        return self.search_results

    async def play(self, source: SourceRecord, config: dict[str, Any]) -> bool:
        self.play_calls.append(source)
        outcome = self.play_results.pop(0) if len(self.play_results) > 1 else self.play_results[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def lookup_url(self, url: str, config: dict[str, Any]) -> Track | None:
        self.lookup_calls.append(url)
        return self.lookup_result


def make_manifest(
    resolver_id: str,
    *,
    name: str | None = None,
    version: str = "1.0.0",
    resolve: bool = True,
    search: bool = False,
    stream: bool = True,
    url_lookup: bool = False,
    retry_playback: bool = False,
    url_patterns: tuple[str, ...] = (),
    configurable: dict[str, Any] | None = None,
    entry_point: str | None = None,
) -> dict[str, Any]:
    """Build a raw manifest document the way plugin files spell it."""
    manifest: dict[str, Any] = {
        "manifest": {"id": resolver_id, "name": name or resolver_id.title(), "version": version},
        "capabilities": {
            "resolve": resolve,
            "search": search,
            "stream": stream,
            "urlLookup": url_lookup,
        },
        "settings": {"retryPlayback": retry_playback, "configurable": configurable or {}},
        "urlPatterns": list(url_patterns),
    }
    if entry_point is not None:
        manifest["entryPoint"] = entry_point
    return manifest


def source(title: str = "Song", *, duration: float | None = 200.0, confidence: float | None = None, **kwargs: Any) -> SourceRecord:
    return SourceRecord(title=title, duration=duration, confidence=confidence, **kwargs)


class MutableClock:
    """Controllable replacement for the wall clock used by the cache."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def in_memory_database():
    """Create an in-memory SQLite database for testing."""
    from music_resolver.infrastructure.persistence.database import Database

    db = Database(":memory:")
    await db.initialize()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def kv_store(in_memory_database):
    """Create a SQLite key-value store with in-memory database."""
    from music_resolver.infrastructure.persistence.repositories.kv_repository import (
        SQLiteKeyValueStore,
    )

    return SQLiteKeyValueStore(in_memory_database)


@pytest.fixture
def memory_store():
    return InMemoryKeyValueStore()


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def clock():
    return MutableClock()


@pytest.fixture
def registry():
    from music_resolver.application.services.resolver_registry import ResolverRegistry

    return ResolverRegistry()


@pytest.fixture
def cache_store(registry, clock):
    from music_resolver.application.services.cache_store import CacheStore

    store = CacheStore(clock=clock)
    registry.add_source_holder(store)
    return store


@pytest.fixture
def resolution_settings():
    from music_resolver.config.settings import ResolutionSettings

    return ResolutionSettings(revalidation_delay_s=0.0, batch_delay_ms=0)


@pytest.fixture
def track_resolver(registry, cache_store, resolution_settings):
    from music_resolver.application.services.track_resolver import TrackResolver
    from music_resolver.domain.music.scoring import ConfidenceScorer

    return TrackResolver(
        registry=registry,
        cache_store=cache_store,
        scorer=ConfidenceScorer(),
        settings=resolution_settings,
    )


@pytest.fixture
def arbiter(track_resolver):
    from music_resolver.application.services.queue_arbiter import QueuePriorityArbiter

    return QueuePriorityArbiter(track_resolver)


# ============================================================================
# Domain Entity Fixtures
# ============================================================================


@pytest.fixture
def sample_track():
    """Create a sample track for testing."""
    return Track(title="Karma Police", artist="Radiohead", album="OK Computer", duration=264.0)
