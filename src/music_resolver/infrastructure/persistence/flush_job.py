"""Periodic persistence of the in-memory cache."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from music_resolver.domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from ...application.services.cache_store import CacheStore
    from ...config.settings import CacheSettings

logger = logging.getLogger(__name__)


class CacheFlushJob:
    def __init__(self, *, cache_store: CacheStore, settings: CacheSettings) -> None:
        self._cache_store = cache_store
        self._settings = settings
        self._running = False
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        if self._running:
            logger.warning(LogTemplates.FLUSH_JOB_ALREADY_RUNNING)
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(LogTemplates.FLUSH_JOB_STARTED, self._settings.flush_interval_minutes)

    async def stop(self) -> None:
        """Stop the loop and write the cache one last time."""
        was_running = self._running
        self._running = False

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if was_running:
            await self.run_flush()
        logger.info(LogTemplates.FLUSH_JOB_STOPPED)

    async def _run_loop(self) -> None:
        interval_seconds = self._settings.flush_interval_minutes * 60

        while self._running:
            try:
                await asyncio.sleep(interval_seconds)
            except asyncio.CancelledError:
                break

            try:
                await self.run_flush()
            except Exception:
                logger.exception("Error during cache flush")

    async def run_flush(self) -> int:
        return await self._cache_store.flush()

    @property
    def is_running(self) -> bool:
        return self._running
