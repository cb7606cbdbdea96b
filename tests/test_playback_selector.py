"""
Unit Tests for the Playback Source Selector

Tests for:
- Candidate ranking (preferred resolver, priority, confidence)
- On-demand resolution and NoSourceFoundError
- External playback confirmation, skip and timeout
- Retry and recovery after a failed play
"""

import asyncio
import gc

import pytest
from conftest import FakeResolverPlugin, make_manifest, source

from music_resolver.application.services.playback_selector import (
    ExplicitSource,
    PlaybackSourceSelector,
    PlaybackStatus,
)
from music_resolver.config.settings import PlaybackSettings
from music_resolver.domain.music.entities import Track
from music_resolver.domain.shared.events import (
    EventBus,
    ExternalPlaybackRequested,
    ExternalPlaybackSkipped,
    PlaybackRecoverableError,
    PlaybackStarted,
)
from music_resolver.domain.shared.exceptions import NoSourceFoundError, PlaybackFailedError


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def published(event_bus):
    """Collect every playback event published during a test."""
    events = []

    async def handler(event):
        events.append(event)

    for event_type in (PlaybackStarted, ExternalPlaybackRequested, ExternalPlaybackSkipped, PlaybackRecoverableError):
        event_bus.subscribe(event_type, handler)
    return events


@pytest.fixture
def selector(registry, track_resolver, event_bus):
    return PlaybackSourceSelector(
        registry=registry,
        track_resolver=track_resolver,
        settings=PlaybackSettings(confirmation_timeout_s=0.05, retry_delay_s=0.0),
        event_bus=event_bus,
    )


def _track_with(**confidences):
    return Track(title="Karma Police", artist="Radiohead", duration=264.0).with_sources(
        {rid: source("Karma Police", confidence=conf) for rid, conf in confidences.items()}
    )


# =============================================================================
# Ranking
# =============================================================================


class TestRanking:
    """Tests for candidates()."""

    async def test_priority_then_confidence(self, registry, selector):
        for resolver_id in ("a", "b", "c"):
            await registry.load(make_manifest(resolver_id), FakeResolverPlugin())
        registry.reorder(["b", "a", "c"])

        ranked = selector.candidates(_track_with(a=0.99, b=0.5, c=0.7))

        assert [c.resolver_id for c in ranked] == ["b", "a", "c"]

    async def test_preferred_resolver_wins(self, registry, selector, published):
        """An explicitly preferred resolver outranks priority and confidence."""
        plugins = {rid: FakeResolverPlugin() for rid in ("a", "b")}
        for resolver_id, plugin in plugins.items():
            await registry.load(make_manifest(resolver_id), plugin)

        outcome = await selector.select_and_play(_track_with(a=0.99, b=0.6), preferred_resolver="b")

        assert outcome.status is PlaybackStatus.PLAYING
        assert outcome.resolver_id == "b"
        assert plugins["a"].play_calls == []
        assert [type(e) for e in published] == [PlaybackStarted]

    async def test_inactive_and_unknown_excluded(self, registry, selector):
        await registry.load(make_manifest("a"), FakeResolverPlugin())
        await registry.load(make_manifest("b"), FakeResolverPlugin())
        registry.set_active("a", False)

        ranked = selector.candidates(_track_with(a=0.9, b=0.5, ghost=1.0))

        assert [c.resolver_id for c in ranked] == ["b"]

    async def test_missing_confidence_ranks_last(self, registry, selector):
        await registry.load(make_manifest("a"), FakeResolverPlugin())
        track = Track(title="Song", artist="A").with_sources({"a": source()})

        assert selector.candidates(track)[0].confidence == 0.0


# =============================================================================
# On-demand Resolution
# =============================================================================


class TestOnDemand:
    async def test_resolves_when_no_sources(self, registry, selector):
        plugin = FakeResolverPlugin(source("Karma Police", duration=264.0))
        await registry.load(make_manifest("a"), plugin)

        outcome = await selector.select_and_play(Track(title="Karma Police", artist="Radiohead", duration=264.0))

        assert outcome.status is PlaybackStatus.PLAYING
        assert outcome.track.resolver_ids == frozenset({"a"})
        assert len(plugin.resolve_calls) == 1

    async def test_no_source_found(self, registry, selector):
        await registry.load(make_manifest("a"), FakeResolverPlugin(None))

        with pytest.raises(NoSourceFoundError, match="Try enabling more resolvers"):
            await selector.select_and_play(Track(title="Obscure", artist="Nobody"))

    async def test_only_disabled_resolver_has_source(self, registry, selector):
        await registry.load(make_manifest("a"), FakeResolverPlugin(None))
        await registry.load(make_manifest("b"), FakeResolverPlugin())
        registry.set_active("b", False)

        with pytest.raises(NoSourceFoundError):
            await selector.select_and_play(_track_with(b=0.9))


# =============================================================================
# Explicit Sources
# =============================================================================


class TestExplicitSource:
    async def test_plays_chosen_source(self, registry, selector):
        plugins = {rid: FakeResolverPlugin() for rid in ("a", "b")}
        for resolver_id, plugin in plugins.items():
            await registry.load(make_manifest(resolver_id), plugin)
        chosen = source("Live version")

        outcome = await selector.select_and_play(ExplicitSource(resolver_id="b", source=chosen))

        assert outcome.resolver_id == "b"
        assert plugins["b"].play_calls == [chosen]

    async def test_disabled_resolver_rejected(self, registry, selector):
        await registry.load(make_manifest("a"), FakeResolverPlugin())
        registry.set_active("a", False)

        with pytest.raises(NoSourceFoundError, match="not loaded or not enabled"):
            await selector.select_and_play(ExplicitSource(resolver_id="a", source=source()))


# =============================================================================
# External Playback
# =============================================================================


class TestExternalPlayback:
    """Non-streaming resolvers wait for the user before playing."""

    @pytest.fixture
    async def external(self, registry):
        plugin = FakeResolverPlugin()
        await registry.load(make_manifest("spotify", stream=False), plugin)
        return plugin

    async def test_prompt_returned(self, selector, external, published):
        outcome = await selector.select_and_play(_track_with(spotify=0.9))

        assert outcome.status is PlaybackStatus.AWAITING_CONFIRMATION
        assert outcome.prompt is not None
        assert external.play_calls == []
        assert isinstance(published[0], ExternalPlaybackRequested)
        await outcome.prompt.skip()

    async def test_confirm_plays(self, selector, external):
        outcome = await selector.select_and_play(_track_with(spotify=0.9))

        result = await outcome.prompt.confirm()

        assert result.status is PlaybackStatus.PLAYING
        assert len(external.play_calls) == 1
        assert await outcome.prompt.outcome() == result

    async def test_skip(self, selector, external, published):
        outcome = await selector.select_and_play(_track_with(spotify=0.9))

        result = await outcome.prompt.skip()

        assert result.status is PlaybackStatus.SKIPPED
        assert external.play_calls == []
        skipped = [e for e in published if isinstance(e, ExternalPlaybackSkipped)]
        assert skipped[0].timed_out is False

    async def test_timeout_skips(self, selector, external, published):
        outcome = await selector.select_and_play(_track_with(spotify=0.9))

        result = await asyncio.wait_for(outcome.prompt.outcome(), timeout=1)

        assert result.status is PlaybackStatus.SKIPPED
        assert outcome.prompt.settled
        assert external.play_calls == []
        assert [e.timed_out for e in published if isinstance(e, ExternalPlaybackSkipped)] == [True]

    async def test_failed_confirm_raises_without_unretrieved_error(self, registry, selector, caplog):
        """The failure reaches confirm() and outcome(), and asyncio never reports it as lost."""
        await registry.load(make_manifest("remote", stream=False), FakeResolverPlugin(None, play_results=[False]))
        outcome = await selector.select_and_play(_track_with(remote=0.9))
        prompt = outcome.prompt

        with pytest.raises(PlaybackFailedError):
            await prompt.confirm()
        with pytest.raises(PlaybackFailedError):
            await prompt.outcome()

        del outcome, prompt
        gc.collect()
        assert "never retrieved" not in caplog.text

    async def test_confirm_after_skip_is_noop(self, selector, external):
        outcome = await selector.select_and_play(_track_with(spotify=0.9))
        await outcome.prompt.skip()

        result = await outcome.prompt.confirm()

        assert result.status is PlaybackStatus.SKIPPED
        assert external.play_calls == []


# =============================================================================
# Failure Handling
# =============================================================================


class TestPlaybackFailure:
    async def test_retry_once_when_declared(self, registry, selector):
        plugin = FakeResolverPlugin(play_results=[False, True])
        await registry.load(make_manifest("device", retry_playback=True), plugin)

        outcome = await selector.select_and_play(_track_with(device=0.9))

        assert outcome.status is PlaybackStatus.PLAYING
        assert len(plugin.play_calls) == 2

    async def test_no_retry_by_default(self, registry, selector):
        plugin = FakeResolverPlugin(source("Karma Police"), play_results=[False, True])
        await registry.load(make_manifest("a"), plugin)

        outcome = await selector.select_and_play(_track_with(a=0.9))

        assert outcome.status is PlaybackStatus.RECOVERABLE_ERROR
        assert len(plugin.play_calls) == 1

    async def test_recoverable_error_after_reresolve(self, registry, selector, published):
        """A failed play re-resolves the track and reports a recoverable error."""
        plugin = FakeResolverPlugin(source("Karma Police"), play_results=[RuntimeError("device offline")])
        await registry.load(make_manifest("a"), plugin)

        outcome = await selector.select_and_play(_track_with(a=0.9))

        assert outcome.status is PlaybackStatus.RECOVERABLE_ERROR
        assert "re-resolved" in outcome.message
        assert outcome.track.resolver_ids == frozenset({"a"})
        assert len(plugin.resolve_calls) == 1
        assert isinstance(published[-1], PlaybackRecoverableError)

    async def test_playback_failed_when_nothing_resolves(self, registry, selector):
        plugin = FakeResolverPlugin(None, play_results=[False])
        await registry.load(make_manifest("a"), plugin)

        with pytest.raises(PlaybackFailedError):
            await selector.select_and_play(_track_with(a=0.9))

    async def test_explicit_source_without_track_fails_hard(self, registry, selector):
        await registry.load(make_manifest("a"), FakeResolverPlugin(play_results=[False]))

        with pytest.raises(PlaybackFailedError):
            await selector.select_and_play(ExplicitSource(resolver_id="a", source=source()))
