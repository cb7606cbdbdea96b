"""Core domain entities for the music bounded context."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from music_resolver.domain.music.value_objects import TrackId, TrackIdField
from music_resolver.domain.shared.types import (
    DurationSeconds,
    NonEmptyStr,
    TrackPositionInt,
    TrackTitleStr,
    UnitInterval,
)


class SourceRecord(BaseModel):
    """A resolver's concrete, playable answer for one logical track.

    ``payload`` is opaque to the core; only the owning resolver reads it.
    Records are never mutated; a resolver's entry is replaced wholesale.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    title: NonEmptyStr | None = None
    artist: NonEmptyStr | None = None
    album: str | None = None
    duration: DurationSeconds | None = None
    confidence: UnitInterval | None = None
    external_id: str | None = None
    url: str | None = None
    native_ids: dict[str, str] = Field(default_factory=dict)
    payload: dict[str, Any] = Field(default_factory=dict)

    def with_confidence(self, confidence: float) -> SourceRecord:
        return self.model_copy(update={"confidence": confidence})


SourceMap = dict[str, SourceRecord]


class Track(BaseModel):
    """Immutable value object for a logical track and its resolved sources."""

    model_config = ConfigDict(frozen=True)

    id: TrackIdField
    title: TrackTitleStr
    artist: NonEmptyStr
    album: str | None = None
    duration: DurationSeconds | None = None
    position: TrackPositionInt | None = None
    sources: dict[str, SourceRecord] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _derive_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("id") and data.get("title") and data.get("artist"):
            data = dict(data)
            data["id"] = TrackId.from_metadata(data["artist"], data["title"], data.get("album"))
        return data

    @property
    def has_sources(self) -> bool:
        return bool(self.sources)

    @property
    def resolver_ids(self) -> frozenset[str]:
        return frozenset(self.sources)

    def with_sources(self, sources: Mapping[str, SourceRecord]) -> Track:
        """Return a copy whose source map is replaced by ``sources``."""
        return self.model_copy(update={"sources": dict(sources)})

    def with_source(self, resolver_id: str, source: SourceRecord) -> Track:
        return self.model_copy(update={"sources": {**self.sources, resolver_id: source}})

    def without_resolver(self, resolver_id: str) -> Track:
        if resolver_id not in self.sources:
            return self
        remaining = {rid: src for rid, src in self.sources.items() if rid != resolver_id}
        return self.model_copy(update={"sources": remaining})


class CollectionKind(Enum):
    PAGE = "page"
    RELEASE = "release"
    PLAYLIST = "playlist"
    QUEUE = "queue"


class TrackCollection(BaseModel):
    """A live snapshot of tracks shown together (release page, playlist, queue)."""

    name: NonEmptyStr
    kind: CollectionKind = CollectionKind.PAGE
    tracks: list[Track] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.tracks)

    def index_of(self, track_id: TrackId) -> int | None:
        for index, track in enumerate(self.tracks):
            if track.id == track_id:
                return index
        return None

    def contains(self, track_id: TrackId) -> bool:
        return self.index_of(track_id) is not None

    def get(self, track_id: TrackId) -> Track | None:
        index = self.index_of(track_id)
        return self.tracks[index] if index is not None else None

    def tracks_without_sources(self) -> list[Track]:
        return [track for track in self.tracks if not track.has_sources]

    def apply_sources(self, track_id: TrackId, sources: Mapping[str, SourceRecord]) -> bool:
        """Replace the source map of every entry for ``track_id``. False if absent."""
        applied = False
        for index, track in enumerate(self.tracks):
            if track.id == track_id:
                self.tracks[index] = track.with_sources(sources)
                applied = True
        return applied

    def purge_resolver(self, resolver_id: str) -> int:
        """Strip one resolver from every track's sources, leaving siblings untouched."""
        purged = 0
        for index, track in enumerate(self.tracks):
            if resolver_id in track.sources:
                self.tracks[index] = track.without_resolver(resolver_id)
                purged += 1
        return purged


class PlayQueue(TrackCollection):
    """The play queue plus the track currently playing."""

    kind: CollectionKind = CollectionKind.QUEUE
    current_track: Track | None = None

    def enqueue(self, tracks: Iterable[Track]) -> list[Track]:
        added = list(tracks)
        self.tracks.extend(added)
        return added

    def dequeue(self) -> Track | None:
        if not self.tracks:
            return None
        self.current_track = self.tracks.pop(0)
        return self.current_track

    def remove(self, track_id: TrackId) -> Track | None:
        index = self.index_of(track_id)
        if index is None:
            return None
        return self.tracks.pop(index)

    def clear(self) -> int:
        count = len(self.tracks)
        self.tracks.clear()
        return count

    def apply_sources(self, track_id: TrackId, sources: Mapping[str, SourceRecord]) -> bool:
        applied = super().apply_sources(track_id, sources)
        if self.current_track is not None and self.current_track.id == track_id:
            self.current_track = self.current_track.with_sources(sources)
            applied = True
        return applied

    def purge_resolver(self, resolver_id: str) -> int:
        purged = super().purge_resolver(resolver_id)
        if self.current_track is not None and resolver_id in self.current_track.sources:
            self.current_track = self.current_track.without_resolver(resolver_id)
            purged += 1
        return purged
