"""Queue Priority Arbiter - lets queue resolution preempt bulk resolution."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from ...domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from ...domain.music.entities import PlayQueue, Track
    from .track_resolver import SourceMap, TrackResolver

logger = logging.getLogger(__name__)


class QueuePriorityArbiter:
    """Cooperative priority between queue resolution and page/playlist loops.

    While :attr:`queue_resolution_active` is true, bulk loops block in
    :meth:`wait_until_clear` at their next track boundary. Nothing in flight
    is interrupted. Queue resolutions may overlap; the flag clears when the
    last one finishes.

    Constructing an arbiter attaches it to ``track_resolver`` so its batch
    loop yields to this arbiter.
    """

    def __init__(self, track_resolver: TrackResolver) -> None:
        self._resolver = track_resolver
        self._depth = 0
        self._clear = asyncio.Event()
        self._clear.set()
        track_resolver.use_arbiter(self)

    @property
    def queue_resolution_active(self) -> bool:
        return self._depth > 0

    async def wait_until_clear(self) -> None:
        while self._depth > 0:
            await self._clear.wait()

    @asynccontextmanager
    async def prioritized(self) -> AsyncIterator[None]:
        """Hold the priority flag for the duration of the block."""
        self._depth += 1
        self._clear.clear()
        try:
            yield
        finally:
            self._depth -= 1
            if self._depth == 0:
                self._clear.set()

    async def resolve_queue(self, queue: PlayQueue, tracks: Iterable[Track] | None = None) -> int:
        """Resolve queued tracks lacking sources, in parallel, with priority held.

        Results are applied only to tracks still in ``queue`` when their
        resolution completes. Returns the number of tracks updated.
        """
        candidates = tracks if tracks is not None else [*queue.tracks, queue.current_track]
        pending: dict[str, Track] = {}
        for track in candidates:
            if track is not None and not track.has_sources:
                pending.setdefault(track.id.value, track)
        if not pending:
            return 0

        targets = list(pending.values())
        async with self.prioritized():
            logger.info(LogTemplates.QUEUE_RESOLUTION_STARTED, len(targets))
            results = await asyncio.gather(
                *(self._resolver.resolve(track) for track in targets), return_exceptions=True
            )

            updated = 0
            for track, result in zip(targets, results):
                if isinstance(result, BaseException):
                    logger.warning(LogTemplates.QUEUE_TRACK_FAILED, track.title, result)
                    continue
                if self._apply(queue, track, result):
                    updated += 1

        logger.info(LogTemplates.QUEUE_RESOLUTION_FINISHED, updated)
        return updated

    def _apply(self, queue: PlayQueue, track: Track, sources: SourceMap) -> bool:
        if not sources:
            return False
        if not queue.apply_sources(track.id, sources):
            logger.debug(LogTemplates.QUEUE_RESULT_DISCARDED, track.title)
            return False
        return True
