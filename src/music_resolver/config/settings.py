"""Application Settings and Configuration

Pydantic-based settings management using environment variables.
Settings are loaded from environment variables with support for .env files,
type validation, and sensible defaults. All settings are frozen and immutable
after initialization.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..domain.shared.messages import ErrorMessages


class DatabaseSettings(BaseModel):
    """Database configuration for the persistent key-value store."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    url: str = Field(
        default="sqlite:///data/music_resolver.db",
        validation_alias=AliasChoices("url", "database_url", "db_url"),
    )
    busy_timeout_ms: int = Field(
        default=5000,
        ge=1000,
        le=30000,
        validation_alias=AliasChoices("busy_timeout_ms", "busy_timeout"),
    )
    connection_timeout_s: int = Field(
        default=10,
        ge=1,
        le=60,
        validation_alias=AliasChoices("connection_timeout_s", "connection_timeout"),
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith("sqlite://") and v != ":memory:":
            raise ValueError(ErrorMessages.INVALID_DATABASE_URL)
        return v


class CacheSettings(BaseModel):
    """Per-namespace TTLs and persistence cadence."""

    model_config = SettingsConfigDict(frozen=True)

    album_art_ttl_days: float = Field(default=90, gt=0)
    artist_data_ttl_days: float = Field(default=30, gt=0)
    track_sources_ttl_days: float = Field(default=7, gt=0)
    artist_images_ttl_days: float = Field(default=90, gt=0)
    playlist_covers_ttl_days: float = Field(default=30, gt=0)
    # Bump when the shape of cached artist data changes; older entries are dropped.
    artist_data_schema_version: int = Field(default=1, ge=1)
    flush_interval_minutes: float = Field(default=5, gt=0)


class ResolutionSettings(BaseModel):
    """Tunable heuristics of the track resolution engine."""

    model_config = SettingsConfigDict(frozen=True)

    duration_tolerance_s: float = Field(default=10.0, ge=0.0)
    revalidation_threshold_hours: float = Field(default=24.0, ge=0.0)
    revalidation_delay_s: float = Field(default=1.0, ge=0.0)
    batch_delay_ms: int = Field(default=200, ge=0, le=10_000)


class PlaybackSettings(BaseModel):
    """Source selection and playback fallback configuration."""

    model_config = SettingsConfigDict(frozen=True)

    confirmation_timeout_s: float = Field(default=15.0, gt=0.0)
    retry_delay_s: float = Field(default=1.0, ge=0.0)


class ResolverSettings(BaseModel):
    """Resolver plugin discovery and registry persistence."""

    model_config = SettingsConfigDict(frozen=True)

    manifest_dir: str | None = Field(
        default=None, validation_alias=AliasChoices("manifest_dir", "resolvers_dir")
    )
    builtin_ids: tuple[str, ...] = Field(
        default_factory=tuple, validation_alias=AliasChoices("builtin_ids", "builtins")
    )
    settings_save_debounce_ms: int = Field(default=500, ge=0, le=60_000)

    @field_validator("builtin_ids", mode="before")
    @classmethod
    def validate_builtin_ids(cls, v: tuple[str, ...] | list[str] | str) -> tuple[str, ...]:
        """Accept a JSON array or a comma-separated string."""
        if isinstance(v, str):
            return tuple(part.strip() for part in v.split(",") if part.strip())
        if isinstance(v, list):
            return tuple(v)
        return v


class Settings(BaseSettings):
    """Application settings container.

    Automatically loads configuration from environment variables.

    Environment variable naming:
    - ENVIRONMENT, DEBUG, LOG_LEVEL (top-level)
    - DATABASE__URL, CACHE__TRACK_SOURCES_TTL_DAYS, etc. (nested with ``__``)
    - RESOLVERS__MANIFEST_DIR, RESOLVERS__BUILTIN_IDS (JSON array)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Literal["development", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    resolution: ResolutionSettings = Field(default_factory=ResolutionSettings)
    playback: PlaybackSettings = Field(default_factory=PlaybackSettings)
    resolvers: ResolverSettings = Field(default_factory=ResolverSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(ErrorMessages.INVALID_LOG_LEVEL.format(level=v, valid_levels=valid_levels))
        return v_upper


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings.

    Settings are automatically loaded from:
    1. .env file (if present)
    2. Environment variables
    3. Default values
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
