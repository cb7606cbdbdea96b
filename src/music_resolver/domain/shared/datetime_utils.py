"""Date/time helpers.

Goal: centralize all date/time serialization + parsing.

- Always store and operate on timezone-aware UTC datetimes.
- Cache entries carry plain epoch seconds; helpers here convert between the two.

This module is intentionally dependency-free and safe to use in any layer.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import UTC, datetime

SECONDS_PER_HOUR = 60 * 60
SECONDS_PER_DAY = 24 * SECONDS_PER_HOUR


@dataclass(frozen=True, slots=True)
class UtcDateTime:
    """A tiny value-object wrapper around a timezone-aware UTC `datetime`."""

    dt: datetime

    def __post_init__(self) -> None:
        if self.dt.tzinfo is None:
            raise ValueError("UtcDateTime requires a timezone-aware datetime")
        # Normalize to UTC
        object.__setattr__(self, "dt", self.dt.astimezone(UTC))

    # ---- Constructors ----

    @classmethod
    def now(cls) -> UtcDateTime:
        return cls(datetime.now(UTC))

    @classmethod
    def from_iso(cls, value: str) -> UtcDateTime:
        # Accepts: '...+00:00' or '...Z'
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        return cls(datetime.fromisoformat(value))

    @classmethod
    def from_unix_seconds(cls, seconds: float) -> UtcDateTime:
        return cls(datetime.fromtimestamp(float(seconds), tz=UTC))

    # ---- Computed fields / formats ----

    @property
    def iso(self) -> str:
        """RFC3339/ISO8601 with explicit offset (+00:00)."""
        return self.dt.isoformat()

    @property
    def unix_seconds(self) -> float:
        return self.dt.timestamp()


def utcnow() -> datetime:
    """Returns a timezone-aware datetime in UTC."""
    return datetime.now(UTC)


def epoch_seconds() -> float:
    """Current wall-clock time as epoch seconds (cache timestamps)."""
    return time.time()


def days_to_seconds(days: float) -> float:
    return days * SECONDS_PER_DAY


def hours_to_seconds(hours: float) -> float:
    return hours * SECONDS_PER_HOUR
