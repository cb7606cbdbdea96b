"""Domain event bus for publishing and subscribing to events."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from music_resolver.domain.music.value_objects import TrackIdField
from music_resolver.domain.shared.datetime_utils import utcnow
from music_resolver.domain.shared.types import NonEmptyStr, NonNegativeFloat

logger = logging.getLogger(__name__)

T = TypeVar("T", bound="DomainEvent")
EventHandler = Callable[[T], Awaitable[None]]


class DomainEvent(BaseModel):
    """Base class for all domain events."""

    model_config = ConfigDict(frozen=True)

    event_id: NonEmptyStr = Field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = Field(default_factory=utcnow)


# === Resolution Events ===


class TrackSourcesUpdated(DomainEvent):
    """A background revalidation changed the cached source set for a track."""

    cache_key: str = ""
    track_id: TrackIdField | None = None
    resolver_ids: tuple[str, ...] = ()


# === Registry Events ===


class ResolverInstalled(DomainEvent):
    resolver_id: str = ""
    version: str = ""
    replaced: bool = False


class ResolverUninstalled(DomainEvent):
    resolver_id: str = ""


# === Playback Events ===


class PlaybackStarted(DomainEvent):
    track_id: TrackIdField | None = None
    track_title: str = ""
    resolver_id: str = ""


class ExternalPlaybackRequested(DomainEvent):
    """A non-streaming resolver was selected; the UI must ask for confirmation."""

    track_id: TrackIdField | None = None
    track_title: str = ""
    resolver_id: str = ""
    timeout_seconds: NonNegativeFloat = 0.0


class ExternalPlaybackSkipped(DomainEvent):
    track_id: TrackIdField | None = None
    track_title: str = ""
    resolver_id: str = ""
    timed_out: bool = False


class PlaybackRecoverableError(DomainEvent):
    track_id: TrackIdField | None = None
    track_title: str = ""
    resolver_id: str = ""
    message: str = ""


# === Event Bus ===


class EventBus:
    """In-memory pub/sub event bus for domain events.

    Handlers are called concurrently. Exceptions in handlers are logged
    but do not prevent other handlers from running.
    """

    def __init__(self) -> None:
        self._handlers: dict[type[DomainEvent], list[EventHandler[Any]]] = defaultdict(list)

    def subscribe(self, event_type: type[T], handler: EventHandler[T]) -> None:
        self._handlers[event_type].append(handler)
        logger.debug("Subscribed handler to: %s", event_type.__name__)

    def unsubscribe(self, event_type: type[T], handler: EventHandler[T]) -> None:
        handlers = self._handlers[event_type]
        if handler in handlers:
            handlers.remove(handler)
            logger.debug("Unsubscribed handler from %s", event_type.__name__)

    async def publish(self, event: DomainEvent) -> None:
        event_type = type(event)
        handlers = self._handlers.get(event_type, [])

        if not handlers:
            logger.debug("No handlers for %s", event_type.__name__)
            return

        logger.debug("Publishing %s to %d handlers", event_type.__name__, len(handlers))

        async def safe_call(handler: EventHandler[Any]) -> None:
            try:
                await handler(event)
            except Exception as e:
                logger.exception("Error in handler for %s: %s", event_type.__name__, e)

        async with asyncio.TaskGroup() as tg:
            for handler in handlers:
                tg.create_task(safe_call(handler))

    def clear(self) -> None:
        """Remove all handlers."""
        self._handlers.clear()
        logger.debug("Cleared all event handlers")


_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get or create the global event bus singleton."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Reset the global event bus (for testing)."""
    global _event_bus
    if _event_bus is not None:
        _event_bus.clear()
    _event_bus = None
