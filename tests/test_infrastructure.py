"""
Infrastructure Layer Unit Tests

Tests for the SQLite database, the key-value store, the cache flush job
and resolver manifest discovery.
"""

import asyncio
import json
import textwrap
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import make_manifest, source

from music_resolver.application.services.cache_store import CacheStore
from music_resolver.domain.resolvers.entities import ResolverSpec
from music_resolver.domain.shared.exceptions import InvalidManifestError

# ============================================================================
# Database Tests
# ============================================================================


class TestDatabase:
    """Tests for the aiosqlite-backed Database."""

    def test_url_parsing(self):
        from music_resolver.infrastructure.persistence.database import Database

        assert Database("sqlite:///data/test.db").db_path == "data/test.db"
        assert Database(":memory:").is_memory

    async def test_initialize_is_idempotent(self, in_memory_database):
        await in_memory_database.initialize()
        rows = await in_memory_database.fetch_all(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='kv_store'"
        )
        assert rows == [{"name": "kv_store"}]

    async def test_transaction_rolls_back_on_error(self, in_memory_database):
        with pytest.raises(RuntimeError):
            async with in_memory_database.transaction() as conn:
                await conn.execute("INSERT INTO kv_store (key, value_json) VALUES ('k', '1')")
                raise RuntimeError("abort")

        assert await in_memory_database.fetch_one("SELECT * FROM kv_store WHERE key = 'k'") is None

    async def test_file_database(self, tmp_path):
        from music_resolver.infrastructure.persistence.database import Database

        db = Database(f"sqlite:///{tmp_path / 'nested' / 'cache.db'}")
        await db.initialize()
        assert await db.execute("INSERT INTO kv_store (key, value_json) VALUES ('k', '1')") == 1
        await db.close()

        assert (tmp_path / "nested" / "cache.db").exists()


# ============================================================================
# Key-Value Store Tests
# ============================================================================


class TestSQLiteKeyValueStore:
    """Tests for the JSON key-value store."""

    async def test_set_and_get(self, kv_store):
        await kv_store.set("active_resolvers", ["a", "b"])
        assert await kv_store.get("active_resolvers") == ["a", "b"]

    async def test_get_missing(self, kv_store):
        assert await kv_store.get("missing") is None

    async def test_overwrite(self, kv_store):
        await kv_store.set("k", {"v": 1})
        await kv_store.set("k", {"v": 2})
        assert await kv_store.get("k") == {"v": 2}
        assert await kv_store.keys() == ["k"]

    async def test_delete(self, kv_store):
        await kv_store.set("k", 1)
        assert await kv_store.delete("k") is True
        assert await kv_store.delete("k") is False

    async def test_cache_round_trip_through_sqlite(self, kv_store, clock):
        """A flushed cache survives a JSON round trip through SQLite."""
        writer = CacheStore(store=kv_store, clock=clock)
        writer.set_sources("radiohead|karma police|", {"a": source("Karma Police", confidence=0.95)})
        await writer.flush()

        reader = CacheStore(store=kv_store, clock=clock)
        assert await reader.load_from_persistence() == 1
        assert reader.get_sources("radiohead|karma police|").sources["a"].confidence == 0.95


# ============================================================================
# CacheFlushJob Tests
# ============================================================================


class TestCacheFlushJob:
    """Tests for CacheFlushJob - periodic cache persistence."""

    @pytest.fixture
    def mock_settings(self):
        settings = MagicMock()
        settings.flush_interval_minutes = 60
        return settings

    @pytest.fixture
    def mock_cache(self):
        cache = MagicMock()
        cache.flush = AsyncMock(return_value=3)
        return cache

    @pytest.fixture
    def flush_job(self, mock_cache, mock_settings):
        from music_resolver.infrastructure.persistence.flush_job import CacheFlushJob

        return CacheFlushJob(cache_store=mock_cache, settings=mock_settings)

    async def test_run_flush(self, flush_job, mock_cache):
        assert await flush_job.run_flush() == 3
        mock_cache.flush.assert_awaited_once()

    async def test_start_and_stop(self, flush_job, mock_cache):
        """Stopping a running job flushes once more."""
        flush_job.start()
        assert flush_job.is_running
        assert not flush_job._task.done()

        await flush_job.stop()

        assert not flush_job.is_running
        assert flush_job._task is None
        mock_cache.flush.assert_awaited_once()

    async def test_start_when_already_running(self, flush_job):
        flush_job.start()
        initial_task = flush_job._task
        flush_job.start()

        assert flush_job._task is initial_task
        await flush_job.stop()

    async def test_stop_when_not_running(self, flush_job, mock_cache):
        await flush_job.stop()
        mock_cache.flush.assert_not_awaited()

    async def test_loop_flushes_periodically(self, flush_job, mock_cache):
        flush_job._settings.flush_interval_minutes = 0.001

        flush_job.start()
        await asyncio.sleep(0.3)
        await flush_job.stop()

        assert mock_cache.flush.await_count >= 2

    async def test_loop_survives_flush_error(self, flush_job, mock_cache):
        calls = 0

        async def flaky_flush():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("disk")
            return 1

        mock_cache.flush = flaky_flush
        flush_job._settings.flush_interval_minutes = 0.001

        flush_job.start()
        await asyncio.sleep(0.3)
        assert flush_job.is_running
        await flush_job.stop()

        assert calls >= 3


# ============================================================================
# Manifest Loader Tests
# ============================================================================


PLUGIN_MODULE = textwrap.dedent(
    """
    from music_resolver.application.interfaces.resolver_plugin import ResolverPlugin


    class EchoPlugin(ResolverPlugin):
        async def resolve(self, artist, title, album, config):
            return {"title": title, "duration": 200.0}


    NOT_A_PLUGIN = object()
    """
)


class TestManifestLoader:
    """Tests for manifest discovery and entry-point import."""

    @pytest.fixture
    def plugin_module(self, tmp_path, monkeypatch):
        (tmp_path / "echo_resolver_plugin.py").write_text(PLUGIN_MODULE)
        monkeypatch.syspath_prepend(str(tmp_path))
        return "echo_resolver_plugin"

    def test_import_plugin(self, plugin_module):
        from music_resolver.infrastructure.plugins.manifest_loader import import_plugin

        spec = ResolverSpec.parse(make_manifest("echo", entry_point=f"{plugin_module}:EchoPlugin"))
        plugin = import_plugin(spec)
        assert type(plugin).__name__ == "EchoPlugin"

    def test_import_not_a_plugin(self, plugin_module):
        from music_resolver.infrastructure.plugins.manifest_loader import import_plugin

        spec = ResolverSpec.parse(make_manifest("echo", entry_point=f"{plugin_module}:NOT_A_PLUGIN"))
        with pytest.raises(InvalidManifestError, match="does not produce"):
            import_plugin(spec)

    @pytest.mark.parametrize("entry_point", ["no_such_module_xyz:Plugin", "json:NoSuchAttribute"])
    def test_import_bad_entry_point(self, entry_point):
        from music_resolver.infrastructure.plugins.manifest_loader import import_plugin

        spec = ResolverSpec.parse(make_manifest("bad", entry_point=entry_point))
        with pytest.raises(InvalidManifestError, match="could not be loaded"):
            import_plugin(spec)

    def test_import_without_entry_point(self):
        from music_resolver.infrastructure.plugins.manifest_loader import import_plugin

        with pytest.raises(InvalidManifestError):
            import_plugin(ResolverSpec.parse(make_manifest("bare")))

    def test_discover_skips_invalid(self, tmp_path):
        from music_resolver.infrastructure.plugins.manifest_loader import discover_manifests

        (tmp_path / "b.json").write_text(json.dumps(make_manifest("b")))
        (tmp_path / "a.axe").write_text(json.dumps(make_manifest("a")))
        (tmp_path / "broken.json").write_text("{")
        (tmp_path / "notes.txt").write_text("ignored")

        specs = discover_manifests(tmp_path)

        assert [spec.id for spec in specs] == ["a", "b"]

    def test_discover_missing_directory(self, tmp_path, caplog):
        from music_resolver.infrastructure.plugins.manifest_loader import discover_manifests

        assert discover_manifests(tmp_path / "missing") == []
        assert "does not exist" in caplog.text

    async def test_registry_loads_discovered_plugin(self, tmp_path, plugin_module):
        from music_resolver.application.services.resolver_registry import ResolverRegistry
        from music_resolver.infrastructure.plugins.manifest_loader import (
            discover_manifests,
            import_plugin,
        )

        manifest_dir = tmp_path / "resolvers"
        manifest_dir.mkdir()
        (manifest_dir / "echo.json").write_text(
            json.dumps(make_manifest("echo", entry_point=f"{plugin_module}:EchoPlugin"))
        )
        registry = ResolverRegistry(plugin_factory=import_plugin)

        loaded = await registry.load_many(discover_manifests(manifest_dir))

        assert [r.id for r in loaded] == ["echo"]
        assert (await loaded[0].resolve("Radiohead", "Karma Police"))["title"] == "Karma Police"
