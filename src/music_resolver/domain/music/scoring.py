"""Heuristic confidence scoring of a resolver candidate against the original track."""

from __future__ import annotations

from typing import Final

from music_resolver.domain.music.entities import SourceRecord, Track

DEFAULT_DURATION_TOLERANCE_S: Final[float] = 10.0

SCORE_TITLE_AND_DURATION: Final[float] = 0.95
SCORE_TITLE_ONLY: Final[float] = 0.85
SCORE_DURATION_ONLY: Final[float] = 0.70
SCORE_NEITHER: Final[float] = 0.50


def _normalize_title(title: str | None) -> str:
    return (title or "").strip().casefold()


class ConfidenceScorer:
    """Scores how likely a candidate source is the original track.

    A resolver-supplied confidence is trusted verbatim. Otherwise title
    equality outranks duration proximity:

    ========================  =====
    title and duration match  0.95
    title only                0.85
    duration only             0.70
    neither                   0.50
    ========================  =====
    """

    def __init__(self, duration_tolerance_s: float = DEFAULT_DURATION_TOLERANCE_S) -> None:
        self._tolerance = duration_tolerance_s

    @property
    def duration_tolerance_s(self) -> float:
        return self._tolerance

    def score(self, original: Track, candidate: SourceRecord) -> float:
        if candidate.confidence is not None:
            return candidate.confidence

        title_match = bool(candidate.title) and (
            _normalize_title(original.title) == _normalize_title(candidate.title)
        )
        duration_match = self._durations_match(original.duration, candidate.duration)

        if title_match and duration_match:
            return SCORE_TITLE_AND_DURATION
        if title_match:
            return SCORE_TITLE_ONLY
        if duration_match:
            return SCORE_DURATION_ONLY
        return SCORE_NEITHER

    def scored(self, original: Track, candidate: SourceRecord) -> SourceRecord:
        """Return ``candidate`` with its confidence filled in."""
        return candidate.with_confidence(self.score(original, candidate))

    def _durations_match(self, original: float | None, candidate: float | None) -> bool:
        if original is None or candidate is None:
            return False
        return abs(original - candidate) < self._tolerance
