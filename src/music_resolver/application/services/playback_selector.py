"""Playback Source Selector - picks the resolver to play a track from."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from ...domain.music.entities import SourceRecord, Track
from ...domain.shared.events import (
    ExternalPlaybackRequested,
    ExternalPlaybackSkipped,
    PlaybackRecoverableError,
    PlaybackStarted,
)
from ...domain.shared.exceptions import NoSourceFoundError, PlaybackFailedError
from ...domain.shared.messages import ErrorMessages, LogTemplates
from ...domain.shared.types import NonEmptyStr, NonNegativeInt, UnitInterval

if TYPE_CHECKING:
    from ...config.settings import PlaybackSettings
    from ...domain.shared.events import DomainEvent, EventBus
    from .resolver_registry import Resolver, ResolverRegistry
    from .track_resolver import TrackResolver

logger = logging.getLogger(__name__)


class PlaybackStatus(StrEnum):
    PLAYING = "playing"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    SKIPPED = "skipped"
    RECOVERABLE_ERROR = "recoverable_error"


class ExplicitSource(BaseModel):
    """A specific resolver's source chosen by the user, bypassing ranking."""

    model_config = ConfigDict(frozen=True)

    resolver_id: NonEmptyStr
    source: SourceRecord
    track: Track | None = None


class PlaybackCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    resolver_id: NonEmptyStr
    source: SourceRecord
    priority: NonNegativeInt
    confidence: UnitInterval


class PlaybackOutcome(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    status: PlaybackStatus
    resolver_id: str | None = None
    track: Track | None = None
    source: SourceRecord | None = None
    message: str = ""
    prompt: ExternalPlaybackPrompt | None = None


class ExternalPlaybackPrompt:
    """Confirmation handle for a resolver that plays in an external context.

    The UI calls :meth:`confirm` or :meth:`skip`; without either, the prompt
    skips itself once ``timeout_s`` elapses. :meth:`outcome` waits for
    whichever happens first.
    """

    def __init__(
        self,
        *,
        track: Track | None,
        resolver_id: str,
        source: SourceRecord,
        timeout_s: float,
        start: Callable[[], Awaitable[PlaybackOutcome]],
        skipped: Callable[[bool], Awaitable[PlaybackOutcome]],
    ) -> None:
        self.track = track
        self.resolver_id = resolver_id
        self.source = source
        self.timeout_s = timeout_s
        self._start = start
        self._skipped = skipped
        self._settled = False
        self._future: asyncio.Future[PlaybackOutcome] = asyncio.get_running_loop().create_future()
        self._timer = asyncio.create_task(self._expire())

    @property
    def settled(self) -> bool:
        return self._settled

    async def confirm(self) -> PlaybackOutcome:
        if self._settled:
            return await self.outcome()
        self._settled = True
        self._timer.cancel()

        try:
            outcome = await self._start()
        except Exception as e:
            self._future.set_exception(e)
            # Already delivered to the caller of confirm(); mark it retrieved.
            self._future.exception()
            raise
        self._future.set_result(outcome)
        return outcome

    async def skip(self) -> PlaybackOutcome:
        if self._settled:
            return await self.outcome()
        self._timer.cancel()
        return await self._settle_skipped(timed_out=False)

    async def outcome(self) -> PlaybackOutcome:
        return await asyncio.shield(self._future)

    async def _expire(self) -> None:
        await asyncio.sleep(self.timeout_s)
        if not self._settled:
            await self._settle_skipped(timed_out=True)

    async def _settle_skipped(self, timed_out: bool) -> PlaybackOutcome:
        self._settled = True
        outcome = await self._skipped(timed_out)
        self._future.set_result(outcome)
        return outcome


class PlaybackSourceSelector:
    """Ranks a track's sources and starts playback on the winner.

    Candidates are restricted to active resolvers and sorted by an explicit
    preferred resolver first, then priority order, then descending confidence.
    Resolvers that do not stream defer to an :class:`ExternalPlaybackPrompt`.
    A failed ``play`` gets one delayed retry when the resolver asks for it,
    then the track is re-resolved and a recoverable error is reported.
    """

    def __init__(
        self,
        *,
        registry: ResolverRegistry,
        track_resolver: TrackResolver,
        settings: PlaybackSettings | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._registry = registry
        self._resolver = track_resolver
        self._event_bus = event_bus
        self._confirmation_timeout_s = settings.confirmation_timeout_s if settings else 15.0
        self._retry_delay_s = settings.retry_delay_s if settings else 1.0

    def candidates(self, track: Track, preferred_resolver: str | None = None) -> list[PlaybackCandidate]:
        ranked: list[PlaybackCandidate] = []
        for resolver_id, source in track.sources.items():
            priority = self._registry.priority_of(resolver_id)
            if priority is None or not self._registry.is_active(resolver_id):
                continue
            if self._registry.get(resolver_id) is None:
                continue
            ranked.append(
                PlaybackCandidate(
                    resolver_id=resolver_id,
                    source=source,
                    priority=priority,
                    confidence=source.confidence if source.confidence is not None else 0.0,
                )
            )

        ranked.sort(key=lambda c: (c.resolver_id != preferred_resolver, c.priority, -c.confidence))
        return ranked

    async def select_and_play(
        self,
        target: Track | ExplicitSource,
        preferred_resolver: str | None = None,
    ) -> PlaybackOutcome:
        """Pick a source for ``target`` and start it.

        Raises:
            NoSourceFoundError: no active resolver has a source, even after
                resolving the track on demand.
            PlaybackFailedError: playback failed and re-resolution found nothing.
        """
        if isinstance(target, ExplicitSource):
            resolver = self._registry.get(target.resolver_id)
            if resolver is None or not self._registry.is_active(target.resolver_id):
                title = target.track.title if target.track else (target.source.title or target.resolver_id)
                raise NoSourceFoundError(
                    title, ErrorMessages.RESOLVER_NOT_PLAYABLE.format(resolver_id=target.resolver_id)
                )
            return await self._dispatch(target.track, resolver, target.source)

        track = target
        ranked = self.candidates(track, preferred_resolver)
        if not ranked:
            logger.info(LogTemplates.PLAYBACK_ON_DEMAND, track.title)
            track = track.with_sources(await self._resolver.resolve(track))
            ranked = self.candidates(track, preferred_resolver)
        if not ranked:
            raise NoSourceFoundError(track.title, ErrorMessages.NO_ENABLED_RESOLVER.format(title=track.title))

        best = ranked[0]
        logger.info(
            LogTemplates.PLAYBACK_SELECTED, best.resolver_id, best.priority + 1, round(best.confidence * 100)
        )
        return await self._dispatch(track, self._registry.require(best.resolver_id), best.source)

    async def _dispatch(self, track: Track | None, resolver: Resolver, source: SourceRecord) -> PlaybackOutcome:
        if resolver.capabilities.stream:
            return await self._play(track, resolver, source)

        prompt = ExternalPlaybackPrompt(
            track=track,
            resolver_id=resolver.id,
            source=source,
            timeout_s=self._confirmation_timeout_s,
            start=lambda: self._play(track, resolver, source),
            skipped=lambda timed_out: self._skip(track, resolver, source, timed_out),
        )
        logger.info(LogTemplates.PLAYBACK_EXTERNAL_PROMPT, resolver.id)
        await self._publish(
            ExternalPlaybackRequested(
                track_id=track.id if track else None,
                track_title=_title_of(track, source),
                resolver_id=resolver.id,
                timeout_seconds=self._confirmation_timeout_s,
            )
        )
        return PlaybackOutcome(
            status=PlaybackStatus.AWAITING_CONFIRMATION,
            resolver_id=resolver.id,
            track=track,
            source=source,
            prompt=prompt,
        )

    async def _play(self, track: Track | None, resolver: Resolver, source: SourceRecord) -> PlaybackOutcome:
        started = await self._attempt(resolver, source, attempt=1)
        if not started and resolver.settings.retry_playback:
            logger.info(LogTemplates.PLAYBACK_RETRYING, resolver.id, self._retry_delay_s)
            await asyncio.sleep(self._retry_delay_s)
            started = await self._attempt(resolver, source, attempt=2)

        if not started:
            return await self._recover(track, resolver)

        logger.info(LogTemplates.PLAYBACK_STARTED, _title_of(track, source), resolver.id)
        await self._publish(
            PlaybackStarted(
                track_id=track.id if track else None,
                track_title=_title_of(track, source),
                resolver_id=resolver.id,
            )
        )
        return PlaybackOutcome(
            status=PlaybackStatus.PLAYING, resolver_id=resolver.id, track=track, source=source
        )

    async def _attempt(self, resolver: Resolver, source: SourceRecord, attempt: int) -> bool:
        try:
            started = await resolver.play(source)
        except Exception as e:
            logger.warning(LogTemplates.PLAYBACK_ERROR, resolver.id, e)
            return False
        if not started:
            logger.warning(LogTemplates.PLAYBACK_FAILED, resolver.id, attempt)
        return started

    async def _recover(self, track: Track | None, resolver: Resolver) -> PlaybackOutcome:
        if track is None:
            raise PlaybackFailedError(resolver.id)

        logger.info(LogTemplates.PLAYBACK_RERESOLVING, track.title)
        sources = await self._resolver.resolve(track, force_refresh=True)
        if not sources:
            raise PlaybackFailedError(resolver.id)

        refreshed = track.with_sources(sources)
        await self._publish(
            PlaybackRecoverableError(
                track_id=track.id,
                track_title=track.title,
                resolver_id=resolver.id,
                message=ErrorMessages.RECOVERABLE_PLAYBACK,
            )
        )
        return PlaybackOutcome(
            status=PlaybackStatus.RECOVERABLE_ERROR,
            resolver_id=resolver.id,
            track=refreshed,
            message=ErrorMessages.RECOVERABLE_PLAYBACK,
        )

    async def _skip(
        self, track: Track | None, resolver: Resolver, source: SourceRecord, timed_out: bool
    ) -> PlaybackOutcome:
        if timed_out:
            logger.info(LogTemplates.PLAYBACK_EXTERNAL_SKIPPED, resolver.id, self._confirmation_timeout_s)
        await self._publish(
            ExternalPlaybackSkipped(
                track_id=track.id if track else None,
                track_title=_title_of(track, source),
                resolver_id=resolver.id,
                timed_out=timed_out,
            )
        )
        return PlaybackOutcome(
            status=PlaybackStatus.SKIPPED, resolver_id=resolver.id, track=track, source=source
        )

    async def _publish(self, event: DomainEvent) -> None:
        if self._event_bus is not None:
            await self._event_bus.publish(event)


def _title_of(track: Track | None, source: SourceRecord) -> str:
    if track is not None:
        return track.title
    return source.title or ""


PlaybackOutcome.model_rebuild()
