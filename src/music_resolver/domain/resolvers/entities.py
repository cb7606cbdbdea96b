"""Resolver manifest models and the resolver-settings cache key."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from music_resolver.domain.shared.exceptions import InvalidManifestError
from music_resolver.domain.shared.messages import ErrorMessages
from music_resolver.domain.shared.types import NonEmptyStr, ResolverIdStr


class ResolverCapabilities(BaseModel):
    """Operations a resolver declares. The core never calls an undeclared one."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    resolve: bool = False
    search: bool = False
    stream: bool = False
    browse: bool = False
    url_lookup: bool = Field(default=False, validation_alias=AliasChoices("url_lookup", "urlLookup"))


class ResolverManifest(BaseModel):
    """Descriptive metadata of a resolver plugin."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: ResolverIdStr
    name: NonEmptyStr
    version: str = "0.0.0"
    author: str | None = None
    description: str | None = None
    icon: str = "🎵"
    color: str = "#888888"
    homepage: str | None = None


class ResolverSettingsSpec(BaseModel):
    """Authentication and user-configurable settings a resolver declares."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    requires_auth: bool = Field(
        default=False, validation_alias=AliasChoices("requires_auth", "requiresAuth")
    )
    auth_type: str = Field(default="none", validation_alias=AliasChoices("auth_type", "authType"))
    configurable: dict[str, dict[str, Any]] = Field(default_factory=dict)
    # Remote-device resolvers can fail transiently; they get one delayed retry.
    retry_playback: bool = Field(
        default=False, validation_alias=AliasChoices("retry_playback", "retryPlayback")
    )

    def default_config(self) -> dict[str, Any]:
        return {
            key: field["default"]
            for key, field in self.configurable.items()
            if isinstance(field, Mapping) and "default" in field
        }


class ResolverSpec(BaseModel):
    """A complete resolver description: manifest plus how to obtain its implementation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    manifest: ResolverManifest
    capabilities: ResolverCapabilities = Field(default_factory=ResolverCapabilities)
    settings: ResolverSettingsSpec = Field(default_factory=ResolverSettingsSpec)
    url_patterns: tuple[str, ...] = Field(
        default=(), validation_alias=AliasChoices("url_patterns", "urlPatterns")
    )
    entry_point: str | None = Field(
        default=None, validation_alias=AliasChoices("entry_point", "entryPoint")
    )

    @property
    def id(self) -> str:
        return self.manifest.id

    @classmethod
    def parse(cls, raw: ResolverSpec | Mapping[str, Any] | str | bytes) -> ResolverSpec:
        """Validate a manifest given as a model, a mapping or a JSON document.

        Raises:
            InvalidManifestError: if the document is malformed or lacks ``manifest.id``
                or ``manifest.name``.
        """
        if isinstance(raw, ResolverSpec):
            return raw

        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as e:
                raise InvalidManifestError(ErrorMessages.MANIFEST_NOT_JSON.format(error=e)) from e

        if not isinstance(raw, Mapping):
            raise InvalidManifestError(ErrorMessages.MANIFEST_INVALID.format(error="not an object"))

        manifest = raw.get("manifest")
        if not isinstance(manifest, Mapping):
            raise InvalidManifestError(ErrorMessages.MANIFEST_MISSING_FIELD.format(field="id"))
        for required in ("id", "name"):
            if not manifest.get(required):
                raise InvalidManifestError(
                    ErrorMessages.MANIFEST_MISSING_FIELD.format(field=required),
                    resolver_id=manifest.get("id") or None,
                )

        try:
            return cls.model_validate(raw)
        except PydanticValidationError as e:
            raise InvalidManifestError(
                ErrorMessages.MANIFEST_INVALID.format(error=e), resolver_id=manifest.get("id")
            ) from e


class ResolverSettingsKey(BaseModel):
    """Snapshot of the resolver configuration a cached resolution was made under.

    Two keys are equal only when the active set and the full priority order
    both match; a cached result under a different key may be missing newly
    enabled resolvers.
    """

    model_config = ConfigDict(frozen=True)

    active: tuple[str, ...] = ()
    order: tuple[str, ...] = ()

    @classmethod
    def build(cls, active: Iterable[str], order: Iterable[str]) -> ResolverSettingsKey:
        return cls(active=tuple(sorted(set(active))), order=tuple(order))
