"""
Resolvers Bounded Context

Manifest models describing resolver plugins and what they can do.
"""

from music_resolver.domain.resolvers.entities import (
    ResolverCapabilities,
    ResolverManifest,
    ResolverSettingsKey,
    ResolverSettingsSpec,
    ResolverSpec,
)

__all__ = [
    "ResolverCapabilities",
    "ResolverManifest",
    "ResolverSettingsKey",
    "ResolverSettingsSpec",
    "ResolverSpec",
]
