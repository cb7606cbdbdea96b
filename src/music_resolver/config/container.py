"""Dependency Injection Container

Manages the application's dependency graph, providing lazy initialization
and lifecycle management for the persistence layer, the resolver registry,
the cache and the resolution services. Components are created on-demand and
cached for reuse throughout the application.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from ..domain.shared.messages import LogTemplates

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from ..application.interfaces.key_value_store import KeyValueStore
    from ..application.services.cache_store import CacheStore
    from ..application.services.playback_selector import PlaybackSourceSelector
    from ..application.services.queue_arbiter import QueuePriorityArbiter
    from ..application.services.resolver_registry import ResolverRegistry
    from ..application.services.track_resolver import TrackResolver
    from ..domain.music.entities import PlayQueue
    from ..domain.music.scoring import ConfidenceScorer
    from ..domain.shared.events import EventBus
    from ..infrastructure.persistence.database import Database
    from ..infrastructure.persistence.flush_job import CacheFlushJob
    from .settings import Settings


@dataclass
class Container:
    """Dependency injection container.

    This container manages all application dependencies and their lifecycle.
    Components are lazily initialized when first accessed.
    """

    settings: Settings

    # Persistence layer
    _database: Database | None = None
    _key_value_store: KeyValueStore | None = None

    # Domain
    _event_bus: EventBus | None = None
    _scorer: ConfidenceScorer | None = None
    _play_queue: PlayQueue | None = None

    # Application services
    _resolver_registry: ResolverRegistry | None = None
    _cache_store: CacheStore | None = None
    _track_resolver: TrackResolver | None = None
    _queue_arbiter: QueuePriorityArbiter | None = None
    _playback_selector: PlaybackSourceSelector | None = None

    # Background jobs
    _flush_job: CacheFlushJob | None = None

    # === Database ===

    @property
    def database(self) -> Database:
        """Get the database connection manager."""
        if self._database is None:
            from ..infrastructure.persistence.database import Database

            self._database = Database(self.settings.database.url, settings=self.settings.database)
        return self._database

    @property
    def key_value_store(self) -> KeyValueStore:
        """Get the persistent key-value store."""
        if self._key_value_store is None:
            from ..infrastructure.persistence.repositories.kv_repository import SQLiteKeyValueStore

            self._key_value_store = SQLiteKeyValueStore(self.database)
        return self._key_value_store

    # === Domain ===

    @property
    def event_bus(self) -> EventBus:
        if self._event_bus is None:
            from ..domain.shared.events import get_event_bus

            self._event_bus = get_event_bus()
        return self._event_bus

    @property
    def scorer(self) -> ConfidenceScorer:
        if self._scorer is None:
            from ..domain.music.scoring import ConfidenceScorer

            self._scorer = ConfidenceScorer(self.settings.resolution.duration_tolerance_s)
        return self._scorer

    @property
    def play_queue(self) -> PlayQueue:
        """Get the play queue, registered for resolver purges."""
        if self._play_queue is None:
            from ..domain.music.entities import PlayQueue

            self._play_queue = PlayQueue(name="queue")
            self.resolver_registry.add_source_holder(self._play_queue)
        return self._play_queue

    # === Application Services ===

    @property
    def resolver_registry(self) -> ResolverRegistry:
        if self._resolver_registry is None:
            from ..application.services.resolver_registry import ResolverRegistry
            from ..infrastructure.plugins.manifest_loader import import_plugin

            self._resolver_registry = ResolverRegistry(
                settings_store=self.key_value_store,
                plugin_factory=import_plugin,
                event_bus=self.event_bus,
                builtin_ids=self.settings.resolvers.builtin_ids,
                save_debounce_ms=self.settings.resolvers.settings_save_debounce_ms,
            )
        return self._resolver_registry

    @property
    def cache_store(self) -> CacheStore:
        """Get the cache store, registered for resolver purges."""
        if self._cache_store is None:
            from ..application.services.cache_store import CacheStore

            self._cache_store = CacheStore(store=self.key_value_store, settings=self.settings.cache)
            self.resolver_registry.add_source_holder(self._cache_store)
        return self._cache_store

    @property
    def track_resolver(self) -> TrackResolver:
        if self._track_resolver is None:
            from ..application.services.track_resolver import TrackResolver

            self._track_resolver = TrackResolver(
                registry=self.resolver_registry,
                cache_store=self.cache_store,
                scorer=self.scorer,
                settings=self.settings.resolution,
                event_bus=self.event_bus,
            )
        return self._track_resolver

    @property
    def queue_arbiter(self) -> QueuePriorityArbiter:
        if self._queue_arbiter is None:
            from ..application.services.queue_arbiter import QueuePriorityArbiter

            self._queue_arbiter = QueuePriorityArbiter(self.track_resolver)
        return self._queue_arbiter

    @property
    def playback_selector(self) -> PlaybackSourceSelector:
        if self._playback_selector is None:
            from ..application.services.playback_selector import PlaybackSourceSelector

            self._playback_selector = PlaybackSourceSelector(
                registry=self.resolver_registry,
                track_resolver=self.track_resolver,
                settings=self.settings.playback,
                event_bus=self.event_bus,
            )
        return self._playback_selector

    # === Background Jobs ===

    @property
    def flush_job(self) -> CacheFlushJob:
        """Get the periodic cache flush job."""
        if self._flush_job is None:
            from ..infrastructure.persistence.flush_job import CacheFlushJob

            self._flush_job = CacheFlushJob(cache_store=self.cache_store, settings=self.settings.cache)
        return self._flush_job

    # === Lifecycle ===

    async def initialize(self, manifest_dir: Path | None = None, start_jobs: bool = True) -> None:
        """Initialize all async resources and load resolver manifests."""
        await self.database.initialize()
        await self.cache_store.load_from_persistence()
        await self.resolver_registry.load_settings()

        directory = manifest_dir
        if directory is None and self.settings.resolvers.manifest_dir:
            directory = Path(self.settings.resolvers.manifest_dir)
        if directory is not None:
            from ..infrastructure.plugins.manifest_loader import discover_manifests

            await self.resolver_registry.load_many(discover_manifests(directory))

        # Wire the arbiter and queue so batch loops and purges see them.
        _ = self.queue_arbiter
        _ = self.play_queue

        if start_jobs:
            self.flush_job.start()

    async def shutdown(self) -> None:
        """Shutdown and cleanup all resources."""
        if self._track_resolver is not None:
            await self._track_resolver.drain()

        if self._flush_job is not None and self._flush_job.is_running:
            try:
                await self._flush_job.stop()
            except Exception as exc:
                logger.warning(LogTemplates.APP_SHUTDOWN_STEP_FAILED, "flush job", exc)
        elif self._cache_store is not None:
            await self._cache_store.flush()

        if self._resolver_registry is not None:
            try:
                await self._resolver_registry.shutdown()
            except Exception as exc:
                logger.warning(LogTemplates.APP_SHUTDOWN_STEP_FAILED, "resolver registry", exc)

        if self._database is not None:
            await self._database.close()


def create_container(settings: Settings) -> Container:
    """Create a new dependency injection container."""
    return Container(settings)
