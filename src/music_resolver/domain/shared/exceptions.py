"""Base exception classes for domain-level errors."""

from __future__ import annotations


class DomainError(Exception):
    """Base exception for all domain-level errors."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__


class ValidationError(DomainError):
    """Raised when domain validation fails."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, code="VALIDATION_ERROR")
        self.field = field


class EntityNotFoundError(DomainError):
    """Raised when a requested entity does not exist."""

    def __init__(self, entity_type: str, identifier: str | int, message: str | None = None) -> None:
        msg = message or f"{entity_type} with id '{identifier}' not found"
        super().__init__(msg, code="ENTITY_NOT_FOUND")
        self.entity_type = entity_type
        self.identifier = identifier


class InvalidOperationError(DomainError):
    """Raised when an operation is invalid in the current state."""

    def __init__(self, operation: str, current_state: str, message: str | None = None) -> None:
        msg = message or f"Cannot perform '{operation}' in state '{current_state}'"
        super().__init__(msg, code="INVALID_OPERATION")
        self.operation = operation
        self.current_state = current_state


# === Resolution errors ===


class InvalidManifestError(DomainError):
    """Raised when a resolver manifest is rejected on load or install.

    Registry state is never mutated when this is raised.
    """

    def __init__(self, message: str, resolver_id: str | None = None) -> None:
        super().__init__(message, code="INVALID_MANIFEST")
        self.resolver_id = resolver_id


class ResolverQueryFailedError(DomainError):
    """A single resolver call failed.

    Always recovered locally: the resolver simply contributes no source.
    """

    def __init__(self, resolver_id: str, cause: BaseException | None = None) -> None:
        super().__init__(f"Resolver '{resolver_id}' query failed: {cause!r}", code="RESOLVER_QUERY_FAILED")
        self.resolver_id = resolver_id
        self.cause = cause


class NoSourceFoundError(DomainError):
    """No active resolver produced a usable source, even after on-demand resolution."""

    def __init__(self, track_title: str, message: str | None = None) -> None:
        msg = message or f"No playable source found for '{track_title}'"
        super().__init__(msg, code="NO_SOURCE_FOUND")
        self.track_title = track_title


class PlaybackFailedError(DomainError):
    """Playback failed and neither the retry nor re-resolution recovered it."""

    def __init__(self, resolver_id: str, message: str | None = None) -> None:
        msg = message or f"Playback via '{resolver_id}' failed"
        super().__init__(msg, code="PLAYBACK_FAILED")
        self.resolver_id = resolver_id


class CachePersistenceFailedError(DomainError):
    """Reading from or writing to the backing key-value store failed."""

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        super().__init__(f"Cache {operation} failed: {cause!r}", code="CACHE_PERSISTENCE_FAILED")
        self.operation = operation
        self.cause = cause
