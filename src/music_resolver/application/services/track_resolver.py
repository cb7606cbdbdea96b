"""Track Resolver - cache-aware fan-out of a track across the active resolvers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from ...domain.music.entities import SourceRecord, Track
from ...domain.shared.datetime_utils import SECONDS_PER_HOUR, hours_to_seconds
from ...domain.shared.events import TrackSourcesUpdated
from ...domain.shared.exceptions import ResolverQueryFailedError
from ...domain.shared.messages import LogTemplates
from .cache_store import CacheNamespace

if TYPE_CHECKING:
    from ...config.settings import ResolutionSettings
    from ...domain.music.scoring import ConfidenceScorer
    from ...domain.shared.events import EventBus
    from .cache_store import CacheStore
    from .queue_arbiter import QueuePriorityArbiter
    from .resolver_registry import Resolver, ResolverRegistry

logger = logging.getLogger(__name__)

SourceMap = dict[str, SourceRecord]


class TrackResolver:
    """Turns a logical track into a map of scored sources, one per resolver.

    * full cache hit: the cached map is served, and revalidated in the
      background once it is older than the revalidation threshold;
    * partial hit: only resolvers missing from the cached map are queried and
      their results merged in;
    * miss, settings change or forced refresh: every eligible resolver is
      queried in parallel.

    A failing resolver contributes nothing and never aborts its siblings.
    """

    def __init__(
        self,
        *,
        registry: ResolverRegistry,
        cache_store: CacheStore,
        scorer: ConfidenceScorer,
        settings: ResolutionSettings | None = None,
        event_bus: EventBus | None = None,
        arbiter: QueuePriorityArbiter | None = None,
    ) -> None:
        self._registry = registry
        self._cache = cache_store
        self._scorer = scorer
        self._event_bus = event_bus
        self._arbiter = arbiter

        self._revalidate_after_s = hours_to_seconds(settings.revalidation_threshold_hours if settings else 24.0)
        self._revalidation_delay_s = settings.revalidation_delay_s if settings else 1.0
        self._batch_delay_s = (settings.batch_delay_ms if settings else 200) / 1000

        self._revalidating: dict[str, asyncio.Task[None]] = {}

    def use_arbiter(self, arbiter: QueuePriorityArbiter) -> None:
        """Make batch resolution yield to queue resolution run by ``arbiter``."""
        self._arbiter = arbiter

    @staticmethod
    def cache_key(track: Track) -> str:
        """``artist|title|position-or-album``, lower-cased."""
        discriminator = str(track.position) if track.position is not None else (track.album or "")
        return f"{track.artist}|{track.title}|{discriminator}".lower()

    # ── Single track ────────────────────────────────────────────────

    async def resolve(self, track: Track, force_refresh: bool = False) -> SourceMap:
        key = self.cache_key(track)
        settings_key = self._registry.settings_key
        eligible = self._registry.resolve_capable()

        if not force_refresh:
            entry = self._cache.get_sources(key)
            if entry is not None and entry.settings_key == settings_key:
                cached = entry.sources
                missing = [resolver for resolver in eligible if resolver.id not in cached]
                stale = entry.age_seconds(self._cache.now()) >= self._revalidate_after_s

                if not missing:
                    age_s = entry.age_seconds(self._cache.now())
                    logger.debug(LogTemplates.RESOLVE_CACHE_HIT, track.title, int(age_s // SECONDS_PER_HOUR))
                    if stale:
                        self._schedule_revalidation(track, key, frozenset(cached))
                    return cached

                logger.info(
                    LogTemplates.RESOLVE_PARTIAL_HIT,
                    track.title,
                    len(missing),
                    ", ".join(resolver.id for resolver in missing),
                )
                found = await self._query(track, missing)
                merged = self._cache.merge_sources(key, found, settings_key)
                if stale:
                    self._schedule_revalidation(track, key, frozenset(merged))
                return merged

            if entry is not None:
                logger.info(LogTemplates.RESOLVE_SETTINGS_CHANGED, track.title)

        return await self._resolve_fresh(track, key, eligible)

    async def _resolve_fresh(self, track: Track, key: str, eligible: list[Resolver]) -> SourceMap:
        album = f" ({track.album})" if track.album else ""
        logger.info(LogTemplates.RESOLVE_STARTED, track.artist, track.title, album)

        sources = await self._query(track, eligible)
        if sources:
            self._cache.set_sources(key, sources, self._registry.settings_key)
            logger.info(LogTemplates.RESOLVE_FOUND, len(sources), track.title)
        else:
            self._cache.delete(CacheNamespace.TRACK_SOURCES, key)
            logger.info(LogTemplates.RESOLVE_NOTHING, track.title)
        return sources

    async def _query(self, track: Track, resolvers: Iterable[Resolver]) -> SourceMap:
        """Query ``resolvers`` in parallel and keep the scored matches."""
        results = await asyncio.gather(*(self._query_one(track, resolver) for resolver in resolvers))
        # A resolver disabled while its query was in flight must not leak back in.
        return {
            resolver_id: source
            for resolver_id, source in results
            if source is not None and self._registry.is_active(resolver_id)
        }

    async def _query_one(self, track: Track, resolver: Resolver) -> tuple[str, SourceRecord | None]:
        try:
            candidate = await self._call_resolve(track, resolver)
        except ResolverQueryFailedError as e:
            logger.warning(LogTemplates.RESOLVE_QUERY_FAILED, e.resolver_id, e.cause)
            return resolver.id, None

        if candidate is None:
            return resolver.id, None

        scored = self._scorer.scored(track, candidate)
        logger.debug(LogTemplates.RESOLVE_MATCH, resolver.id, round((scored.confidence or 0) * 100))
        return resolver.id, scored

    async def _call_resolve(self, track: Track, resolver: Resolver) -> SourceRecord | None:
        try:
            candidate = await resolver.resolve(track.artist, track.title, track.album)
            if candidate is None or isinstance(candidate, SourceRecord):
                return candidate
            return SourceRecord.model_validate(candidate)
        except Exception as e:
            raise ResolverQueryFailedError(resolver.id, e) from e

    # ── Background revalidation ─────────────────────────────────────

    def _schedule_revalidation(self, track: Track, key: str, cached_ids: frozenset[str]) -> None:
        if key in self._revalidating:
            return

        logger.info(
            LogTemplates.REVALIDATE_SCHEDULED,
            int(self._revalidate_after_s // SECONDS_PER_HOUR),
            track.title,
        )
        task = asyncio.create_task(self._revalidate(track, key, cached_ids))
        self._revalidating[key] = task
        task.add_done_callback(lambda _: self._revalidating.pop(key, None))

    async def _revalidate(self, track: Track, key: str, cached_ids: frozenset[str]) -> None:
        await asyncio.sleep(self._revalidation_delay_s)
        try:
            settings_key = self._registry.settings_key
            fresh = await self._query(track, self._registry.resolve_capable())
            fresh_ids = frozenset(fresh)

            if fresh_ids == cached_ids:
                self._cache.touch(CacheNamespace.TRACK_SOURCES, key, settings_key)
                logger.info(LogTemplates.REVALIDATE_UNCHANGED, track.title)
                return

            if fresh:
                self._cache.set_sources(key, fresh, settings_key)
                logger.info(LogTemplates.REVALIDATE_CHANGED, track.title, sorted(cached_ids), sorted(fresh_ids))
            else:
                self._cache.delete(CacheNamespace.TRACK_SOURCES, key)
                logger.info(LogTemplates.REVALIDATE_INVALIDATED, track.title)

            if self._event_bus is not None:
                await self._event_bus.publish(
                    TrackSourcesUpdated(cache_key=key, track_id=track.id, resolver_ids=tuple(sorted(fresh_ids)))
                )
        except Exception:
            logger.exception(LogTemplates.REVALIDATE_FAILED, track.title)

    async def drain(self) -> None:
        """Wait for every outstanding background revalidation."""
        while self._revalidating:
            await asyncio.gather(*list(self._revalidating.values()), return_exceptions=True)

    @property
    def pending_revalidations(self) -> int:
        return len(self._revalidating)

    # ── Batches and search ──────────────────────────────────────────

    async def resolve_many(
        self,
        tracks: Iterable[Track],
        force_refresh: bool = False,
        on_resolved: Callable[[Track], None] | None = None,
    ) -> list[Track]:
        """Resolve tracks one after another, pacing requests between them.

        Before each track the loop yields to any queue resolution in progress,
        so bulk page or playlist work never competes with it.
        """
        pending = list(tracks)
        logger.info(LogTemplates.RESOLVE_BATCH_STARTED, len(pending), " (force refresh)" if force_refresh else "")

        resolved: list[Track] = []
        for index, track in enumerate(pending):
            if self._arbiter is not None:
                if self._arbiter.queue_resolution_active:
                    logger.info(LogTemplates.RESOLVE_BATCH_WAITING, track.title)
                await self._arbiter.wait_until_clear()

            sources = await self.resolve(track, force_refresh)
            updated = track.with_sources(sources)
            resolved.append(updated)
            if on_resolved is not None:
                on_resolved(updated)

            if index < len(pending) - 1 and self._batch_delay_s > 0:
                await asyncio.sleep(self._batch_delay_s)

        logger.info(LogTemplates.RESOLVE_BATCH_DONE, len(resolved))
        return resolved

    async def search(self, query: str) -> list[Track]:
        """Search every active, search-capable resolver; results in priority order."""
        searchable = [r for r in self._registry.ordered_active() if r.capabilities.search]

        async def search_one(resolver: Resolver) -> list[Track]:
            try:
                return await resolver.search(query)
            except Exception as e:
                logger.warning(LogTemplates.SEARCH_FAILED, resolver.id, e)
                return []

        batches = await asyncio.gather(*(search_one(resolver) for resolver in searchable))
        return [track for batch in batches for track in batch]
