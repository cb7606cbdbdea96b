"""
Shared Domain Kernel

Contains types and exceptions shared across all bounded contexts.
"""

from music_resolver.domain.shared.exceptions import (
    CachePersistenceFailedError,
    DomainError,
    EntityNotFoundError,
    InvalidManifestError,
    InvalidOperationError,
    NoSourceFoundError,
    PlaybackFailedError,
    ResolverQueryFailedError,
    ValidationError,
)

__all__ = [
    "DomainError",
    "ValidationError",
    "EntityNotFoundError",
    "InvalidOperationError",
    "InvalidManifestError",
    "ResolverQueryFailedError",
    "NoSourceFoundError",
    "PlaybackFailedError",
    "CachePersistenceFailedError",
]
