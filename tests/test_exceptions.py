"""
Domain Exception Tests

Tests messages, codes and attributes of domain exceptions.
"""

import pytest

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


class TestBaseExceptions:
    """Tests for the generic domain exceptions."""

    def test_domain_error_with_message(self):
        error = DomainError("Something went wrong")

        assert str(error) == "Something went wrong"
        assert error.message == "Something went wrong"
        assert error.code == "DomainError"

    def test_domain_error_with_custom_code(self):
        assert DomainError("Custom error", code="CUSTOM_CODE").code == "CUSTOM_CODE"

    def test_validation_error_with_field(self):
        error = ValidationError("Title is required", field="title")

        assert error.message == "Title is required"
        assert error.field == "title"
        assert error.code == "VALIDATION_ERROR"

    def test_validation_error_without_field(self):
        assert ValidationError("Invalid input").field is None

    def test_entity_not_found_default_message(self):
        error = EntityNotFoundError("Resolver", "spotify")

        assert str(error) == "Resolver with id 'spotify' not found"
        assert error.entity_type == "Resolver"
        assert error.identifier == "spotify"
        assert error.code == "ENTITY_NOT_FOUND"

    def test_entity_not_found_custom_message(self):
        assert str(EntityNotFoundError("Track", 42, message="gone")) == "gone"

    def test_invalid_operation_default_message(self):
        error = InvalidOperationError("uninstall", "builtin")

        assert str(error) == "Cannot perform 'uninstall' in state 'builtin'"
        assert error.operation == "uninstall"
        assert error.current_state == "builtin"
        assert error.code == "INVALID_OPERATION"


class TestResolutionExceptions:
    """Tests for resolver, playback and cache failures."""

    def test_invalid_manifest(self):
        error = InvalidManifestError("missing id")

        assert error.code == "INVALID_MANIFEST"
        assert error.resolver_id is None

    def test_resolver_query_failed_keeps_cause(self):
        cause = TimeoutError("slow")
        error = ResolverQueryFailedError("youtube", cause)

        assert error.cause is cause
        assert error.resolver_id == "youtube"
        assert "youtube" in str(error)
        assert "slow" in str(error)

    def test_no_source_found_default_message(self):
        error = NoSourceFoundError("Karma Police")

        assert str(error) == "No playable source found for 'Karma Police'"
        assert error.track_title == "Karma Police"
        assert error.code == "NO_SOURCE_FOUND"

    def test_playback_failed_default_message(self):
        error = PlaybackFailedError("local")

        assert str(error) == "Playback via 'local' failed"
        assert error.code == "PLAYBACK_FAILED"

    def test_cache_persistence_failed(self):
        cause = OSError("disk full")
        error = CachePersistenceFailedError("flush", cause)

        assert error.operation == "flush"
        assert error.cause is cause
        assert str(error).startswith("Cache flush failed")

    @pytest.mark.parametrize(
        "error",
        [
            InvalidManifestError("x"),
            ResolverQueryFailedError("a"),
            NoSourceFoundError("t"),
            PlaybackFailedError("a"),
            CachePersistenceFailedError("load"),
        ],
    )
    def test_all_are_domain_errors(self, error):
        assert isinstance(error, DomainError)
