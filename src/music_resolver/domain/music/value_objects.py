"""Immutable value objects for the music bounded context."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Annotated

from pydantic import PlainSerializer, PlainValidator

from music_resolver.domain.shared.messages import ErrorMessages

_NON_ALNUM = re.compile(r"[\W_]+", re.UNICODE)


def normalize_key_part(value: str | None) -> str:
    """Case-fold and strip everything that is not a letter or digit."""
    if not value:
        return ""
    return _NON_ALNUM.sub("", value.casefold())


@dataclass(frozen=True)
class TrackId:
    """Deterministic identity of a logical track, shared by every view that shows it."""

    value: str

    def __post_init__(self) -> None:
        if not self.value or not self.value.strip():
            raise ValueError(ErrorMessages.EMPTY_TRACK_ID)

    def __str__(self) -> str:
        return self.value

    def __hash__(self) -> int:
        return hash(self.value)

    @classmethod
    def from_metadata(cls, artist: str, title: str, album: str | None = None) -> TrackId:
        """Derive the id from artist, title and album.

        ``"The Beatles", "Let It Be!"`` and ``"the beatles", "let it be"``
        map to the same id.
        """
        parts = [normalize_key_part(artist), normalize_key_part(title), normalize_key_part(album)]
        value = "-".join(parts)
        if not value.strip("-"):
            # Titles made only of punctuation still need a stable id.
            value = "-".join([artist.casefold().strip(), title.casefold().strip(), (album or "").casefold().strip()])
        return cls(value)


# Pydantic-compatible type aliases for TrackId fields.
# Serializes as plain string in JSON, stores as TrackId in the model.
TrackIdField = Annotated[
    TrackId,
    PlainValidator(lambda v: TrackId(v) if isinstance(v, str) else v),
    PlainSerializer(lambda v: v.value, return_type=str),
]
