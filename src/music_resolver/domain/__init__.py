# ruff: noqa: N999
"""
Domain Layer

Contains pure business logic organized by bounded contexts:
- shared/: Cross-cutting types, messages, events and exceptions
- music/: Tracks, sources, collections and confidence scoring
- resolvers/: Resolver manifests and the resolver-settings cache key
"""

from music_resolver.domain.shared.exceptions import DomainError

__all__ = [
    "DomainError",
]
