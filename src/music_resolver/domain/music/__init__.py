"""
Music Bounded Context

Logical tracks, their per-resolver sources and the collections that hold them.
"""

from music_resolver.domain.music.entities import (
    CollectionKind,
    PlayQueue,
    SourceRecord,
    Track,
    TrackCollection,
)
from music_resolver.domain.music.scoring import ConfidenceScorer
from music_resolver.domain.music.value_objects import TrackId

__all__ = [
    # Entities
    "Track",
    "SourceRecord",
    "TrackCollection",
    "PlayQueue",
    "CollectionKind",
    # Value Objects
    "TrackId",
    # Services
    "ConfidenceScorer",
]
