"""Resolver Registry - loads, installs and orders resolver plugins."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from ...domain.resolvers.entities import (
    ResolverCapabilities,
    ResolverSettingsKey,
    ResolverSettingsSpec,
    ResolverSpec,
)
from ...domain.shared.events import ResolverInstalled, ResolverUninstalled
from ...domain.shared.exceptions import (
    EntityNotFoundError,
    InvalidManifestError,
    InvalidOperationError,
    ValidationError,
)
from ...domain.shared.messages import ErrorMessages, LogTemplates

if TYPE_CHECKING:
    from ...domain.music.entities import SourceRecord, Track
    from ...domain.shared.events import EventBus
    from ..interfaces.key_value_store import KeyValueStore
    from ..interfaces.resolver_plugin import ResolverPlugin
    from ..interfaces.source_holder import SourceHolder

logger = logging.getLogger(__name__)

ACTIVE_RESOLVERS_KEY = "active_resolvers"
RESOLVER_ORDER_KEY = "resolver_order"

PluginFactory = Callable[[ResolverSpec], "ResolverPlugin"]
ManifestInput = ResolverSpec | Mapping[str, Any] | str | bytes

_SCHEME = re.compile(r"^https?://", re.IGNORECASE)


def _strip_url(value: str) -> str:
    return _SCHEME.sub("", value).rstrip("/")


def match_url_pattern(url: str, pattern: str) -> bool:
    """Match a URL against a glob-like pattern.

    ``*`` matches a single path segment and ``*.example.com`` any subdomain.
    Protocol and trailing slash are ignored, comparison is case-insensitive,
    and ``spotify:`` URIs are compared as-is.
    """
    if url.startswith("spotify:") and pattern.startswith("spotify:"):
        target, glob = url, pattern
    else:
        target, glob = _strip_url(url), _strip_url(pattern)

    regex = re.escape(glob).replace(r"\*\.", r"[^/]+\.").replace(r"\*", r"[^/]+")
    return re.fullmatch(regex, target, re.IGNORECASE) is not None


class PluginHandle:
    """Usage count of one plugin instance, shared by every Resolver wrapping it.

    A retired plugin is cleaned up once its last in-flight call returns.
    """

    def __init__(self, plugin: ResolverPlugin) -> None:
        self.plugin = plugin
        self._in_flight = 0
        self._retired = False
        self._cleaned_up = False

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @asynccontextmanager
    async def in_use(self, resolver_id: str) -> AsyncIterator[ResolverPlugin]:
        self._in_flight += 1
        try:
            yield self.plugin
        finally:
            self._in_flight -= 1
            if self._retired and self._in_flight == 0:
                await self.cleanup(resolver_id)

    async def retire(self, resolver_id: str) -> None:
        self._retired = True
        if self._in_flight == 0:
            await self.cleanup(resolver_id)

    async def cleanup(self, resolver_id: str) -> None:
        if self._cleaned_up:
            return
        self._cleaned_up = True
        try:
            await self.plugin.cleanup()
        except Exception as e:
            logger.error(LogTemplates.RESOLVER_CLEANUP_FAILED, resolver_id, e)


class Resolver:
    """A loaded resolver: manifest, plugin instance and user config.

    Every operation is gated on the declared capabilities. Calling one that
    the manifest does not declare is a no-op returning an empty result.
    Instances are never mutated; configuring or reinstalling a resolver
    swaps in a new object so in-flight calls keep the one they started with.
    """

    def __init__(
        self,
        spec: ResolverSpec,
        plugin: ResolverPlugin,
        config: Mapping[str, Any],
        handle: PluginHandle | None = None,
    ) -> None:
        self._spec = spec
        self._handle = handle or PluginHandle(plugin)
        self._config = dict(config)

    def __repr__(self) -> str:
        return f"Resolver(id={self.id!r}, version={self.version!r})"

    @property
    def id(self) -> str:
        return self._spec.id

    @property
    def name(self) -> str:
        return self._spec.manifest.name

    @property
    def version(self) -> str:
        return self._spec.manifest.version

    @property
    def spec(self) -> ResolverSpec:
        return self._spec

    @property
    def plugin(self) -> ResolverPlugin:
        return self._handle.plugin

    @property
    def handle(self) -> PluginHandle:
        return self._handle

    @property
    def in_flight(self) -> int:
        return self._handle.in_flight

    @property
    def capabilities(self) -> ResolverCapabilities:
        return self._spec.capabilities

    @property
    def settings(self) -> ResolverSettingsSpec:
        return self._spec.settings

    @property
    def url_patterns(self) -> tuple[str, ...]:
        return self._spec.url_patterns

    @property
    def config(self) -> dict[str, Any]:
        return dict(self._config)

    def matches_url(self, url: str) -> bool:
        return any(match_url_pattern(url, pattern) for pattern in self._spec.url_patterns)

    def with_config(self, config: Mapping[str, Any]) -> Resolver:
        """A copy using ``config`` that shares this resolver's plugin usage count."""
        return Resolver(self._spec, self.plugin, config, handle=self._handle)

    async def retire(self) -> None:
        """Clean up the plugin once no call on it is in flight."""
        await self._handle.retire(self.id)

    async def cleanup(self) -> None:
        await self._handle.cleanup(self.id)

    async def resolve(self, artist: str, title: str, album: str | None = None) -> SourceRecord | None:
        if not self.capabilities.resolve:
            return None
        async with self._handle.in_use(self.id) as plugin:
            return await plugin.resolve(artist, title, album, self.config)

    async def search(self, query: str) -> list[Track]:
        if not self.capabilities.search:
            return []
        async with self._handle.in_use(self.id) as plugin:
            return list(await plugin.search(query, self.config))

    async def play(self, source: SourceRecord) -> bool:
        # Non-stream resolvers still play: they open an external context.
        async with self._handle.in_use(self.id) as plugin:
            return bool(await plugin.play(source, self.config))

    async def lookup_url(self, url: str) -> Track | None:
        if not self.capabilities.url_lookup:
            return None
        async with self._handle.in_use(self.id) as plugin:
            return await plugin.lookup_url(url, self.config)


class ResolverRegistry:
    """Holds every loaded resolver plus the user's active set and priority order.

    Disabling or uninstalling a resolver synchronously purges its sources from
    every registered :class:`SourceHolder` before returning, so a disabled
    resolver is never offered for playback.
    """

    def __init__(
        self,
        *,
        settings_store: KeyValueStore | None = None,
        plugin_factory: PluginFactory | None = None,
        event_bus: EventBus | None = None,
        builtin_ids: Iterable[str] = (),
        save_debounce_ms: int = 500,
    ) -> None:
        self._settings_store = settings_store
        self._plugin_factory = plugin_factory
        self._event_bus = event_bus
        self._builtin_ids = frozenset(builtin_ids)
        self._save_debounce_s = save_debounce_ms / 1000

        self._resolvers: dict[str, Resolver] = {}
        self._order: list[str] = []
        self._active: set[str] = set()
        # Ids the persisted settings already know about; they keep their stored state.
        self._known: set[str] = set()
        self._holders: list[SourceHolder] = []
        self._save_task: asyncio.Task[None] | None = None
        # Changes not yet written; set even when no event loop can schedule the save.
        self._dirty = False

    # ── Views ───────────────────────────────────────────────────────

    def get(self, resolver_id: str) -> Resolver | None:
        return self._resolvers.get(resolver_id)

    def require(self, resolver_id: str) -> Resolver:
        resolver = self._resolvers.get(resolver_id)
        if resolver is None:
            raise EntityNotFoundError("Resolver", resolver_id)
        return resolver

    @property
    def resolvers(self) -> dict[str, Resolver]:
        return dict(self._resolvers)

    @property
    def order(self) -> tuple[str, ...]:
        return tuple(self._order)

    @property
    def active_ids(self) -> frozenset[str]:
        return frozenset(self._active)

    @property
    def builtin_ids(self) -> frozenset[str]:
        return self._builtin_ids

    @property
    def settings_key(self) -> ResolverSettingsKey:
        return ResolverSettingsKey.build(self._active, self._order)

    def is_active(self, resolver_id: str) -> bool:
        return resolver_id in self._active and resolver_id in self._order

    def priority_of(self, resolver_id: str) -> int | None:
        """Index in the priority order (lower wins), or None when unordered."""
        try:
            return self._order.index(resolver_id)
        except ValueError:
            return None

    def ordered_active(self) -> list[Resolver]:
        """Loaded resolvers in ActiveResolvers ∩ ResolverOrder, highest priority first."""
        return [
            self._resolvers[resolver_id]
            for resolver_id in self._order
            if resolver_id in self._active and resolver_id in self._resolvers
        ]

    def resolve_capable(self) -> list[Resolver]:
        return [resolver for resolver in self.ordered_active() if resolver.capabilities.resolve]

    # ── Loading ─────────────────────────────────────────────────────

    async def load(
        self,
        manifest: ManifestInput,
        plugin: ResolverPlugin | None = None,
        config: Mapping[str, Any] | None = None,
    ) -> Resolver:
        """Validate a manifest, initialize its plugin and register it.

        A resolver with the same id is replaced in place; its plugin is
        cleaned up once the calls already running on it return. A new id is appended to the priority order
        and enabled unless the persisted settings already know it.

        Raises:
            InvalidManifestError: the manifest is malformed, its implementation
                cannot be obtained or ``init`` failed. Registry state is unchanged.
        """
        spec = ResolverSpec.parse(manifest)
        resolver_id = spec.id
        previous = self._resolvers.get(resolver_id)

        if plugin is None:
            plugin = self._create_plugin(spec)

        merged_config = {
            **spec.settings.default_config(),
            **(previous.config if previous else {}),
            **(config or {}),
        }
        try:
            await plugin.init(merged_config)
        except Exception as e:
            raise InvalidManifestError(
                ErrorMessages.RESOLVER_INIT_FAILED.format(resolver_id=resolver_id, error=e),
                resolver_id=resolver_id,
            ) from e

        shared = previous.handle if previous is not None and previous.plugin is plugin else None
        resolver = Resolver(spec, plugin, merged_config, handle=shared)
        self._resolvers[resolver_id] = resolver

        if resolver_id not in self._order:
            self._order.append(resolver_id)
            if resolver_id not in self._known:
                self._active.add(resolver_id)

        if spec.url_patterns:
            logger.info(LogTemplates.RESOLVER_URL_PATTERNS, len(spec.url_patterns), resolver_id)

        if previous is not None:
            logger.info(LogTemplates.RESOLVER_REPLACED, spec.manifest.name, spec.manifest.version)
            if previous.plugin is not plugin:
                await previous.retire()
        else:
            logger.info(LogTemplates.RESOLVER_LOADED, spec.manifest.name, spec.manifest.version)

        return resolver

    async def load_many(self, manifests: Iterable[ManifestInput]) -> list[Resolver]:
        """Load a batch, skipping manifests that fail to load."""
        loaded: list[Resolver] = []
        for manifest in manifests:
            try:
                loaded.append(await self.load(manifest))
            except InvalidManifestError as e:
                logger.error(LogTemplates.RESOLVER_LOAD_FAILED, e.message)
        return loaded

    async def install(
        self,
        manifest: ManifestInput,
        plugin: ResolverPlugin | None = None,
        config: Mapping[str, Any] | None = None,
    ) -> Resolver:
        """Install or hot-swap a resolver.

        Installing an id that is already loaded is an update: its priority
        and enabled state are preserved.
        """
        spec = ResolverSpec.parse(manifest)
        replaced = spec.id in self._resolvers
        resolver = await self.load(spec, plugin, config)
        self._known.add(resolver.id)

        logger.info(LogTemplates.RESOLVER_INSTALLED, resolver.id)
        self._schedule_save()
        if self._event_bus is not None:
            await self._event_bus.publish(
                ResolverInstalled(resolver_id=resolver.id, version=resolver.version, replaced=replaced)
            )
        return resolver

    async def uninstall(self, resolver_id: str) -> None:
        """Remove a resolver and purge its sources everywhere.

        Raises:
            EntityNotFoundError: no resolver with that id is loaded.
            InvalidOperationError: the resolver is built in.
        """
        resolver = self.require(resolver_id)
        if resolver_id in self._builtin_ids:
            raise InvalidOperationError(
                "uninstall",
                "builtin",
                message=ErrorMessages.RESOLVER_BUILTIN.format(resolver_id=resolver_id),
            )

        del self._resolvers[resolver_id]
        if resolver_id in self._order:
            self._order.remove(resolver_id)
        self._active.discard(resolver_id)
        self._known.discard(resolver_id)
        self.purge_resolver(resolver_id)

        await resolver.retire()
        logger.info(LogTemplates.RESOLVER_UNINSTALLED, resolver_id)

        self._schedule_save()
        if self._event_bus is not None:
            await self._event_bus.publish(ResolverUninstalled(resolver_id=resolver_id))

    async def configure(self, resolver_id: str, config: Mapping[str, Any]) -> Resolver:
        """Merge ``config`` into a resolver's settings and re-run its ``init``."""
        resolver = self.require(resolver_id)
        merged_config = {**resolver.config, **config}
        try:
            await resolver.plugin.init(merged_config)
        except Exception as e:
            raise InvalidManifestError(
                ErrorMessages.RESOLVER_INIT_FAILED.format(resolver_id=resolver_id, error=e),
                resolver_id=resolver_id,
            ) from e

        updated = resolver.with_config(merged_config)
        self._resolvers[resolver_id] = updated
        return updated

    async def shutdown(self) -> None:
        """Flush pending settings and clean up every plugin."""
        await self.flush_settings()
        for resolver in list(self._resolvers.values()):
            await resolver.cleanup()

    # ── Active set and order ────────────────────────────────────────

    def set_active(self, resolver_id: str, active: bool) -> None:
        """Enable or disable a resolver. Disabling purges its sources synchronously."""
        self.require(resolver_id)
        self._known.add(resolver_id)

        if active:
            self._active.add(resolver_id)
            if resolver_id not in self._order:
                self._order.append(resolver_id)
        else:
            self._active.discard(resolver_id)
            self.purge_resolver(resolver_id)

        logger.info(LogTemplates.RESOLVER_TOGGLED, resolver_id, "enabled" if active else "disabled")
        self._schedule_save()

    def reorder(self, new_order: Iterable[str]) -> tuple[str, ...]:
        """Replace the priority order.

        Loaded resolvers missing from ``new_order`` keep their relative order
        and are appended at the end.

        Raises:
            ValidationError: ``new_order`` repeats an id or names an unknown one.
        """
        requested = list(new_order)

        duplicates = sorted({rid for rid in requested if requested.count(rid) > 1})
        if duplicates:
            raise ValidationError(ErrorMessages.ORDER_DUPLICATE_IDS.format(ids=duplicates), field="order")

        known = set(self._resolvers) | set(self._order)
        unknown = sorted(set(requested) - known)
        if unknown:
            raise ValidationError(ErrorMessages.ORDER_UNKNOWN_IDS.format(ids=unknown), field="order")

        remaining = [rid for rid in self._order if rid not in requested]
        remaining += [rid for rid in self._resolvers if rid not in requested and rid not in remaining]
        self._order = requested + remaining

        logger.info(LogTemplates.RESOLVER_ORDER_UPDATED, self._order)
        self._schedule_save()
        return self.order

    # ── Source purge fan-out ────────────────────────────────────────

    def add_source_holder(self, holder: SourceHolder) -> None:
        if holder not in self._holders:
            self._holders.append(holder)

    def remove_source_holder(self, holder: SourceHolder) -> None:
        if holder in self._holders:
            self._holders.remove(holder)

    def purge_resolver(self, resolver_id: str) -> int:
        """Strip ``resolver_id`` from every registered holder. Returns entries touched."""
        purged = sum(holder.purge_resolver(resolver_id) for holder in list(self._holders))
        logger.info(LogTemplates.SOURCE_HOLDER_PURGED, resolver_id, purged)
        return purged

    # ── URL lookup ──────────────────────────────────────────────────

    def find_resolver_for_url(self, url: str) -> str | None:
        for resolver in self._resolvers.values():
            if resolver.matches_url(url):
                return resolver.id
        return None

    async def lookup_url(self, url: str) -> tuple[Track, str] | None:
        """Turn a provider URL into a track using the resolver whose pattern matches it."""
        resolver_id = self.find_resolver_for_url(url)
        if resolver_id is None:
            return None

        resolver = self._resolvers[resolver_id]
        try:
            track = await resolver.lookup_url(url)
        except Exception as e:
            logger.error(LogTemplates.RESOLVER_URL_LOOKUP_FAILED, resolver_id, e)
            return None

        if track is None:
            return None
        return track, resolver_id

    # ── Settings persistence ────────────────────────────────────────

    async def load_settings(self) -> None:
        """Restore the active set and priority order from the key-value store."""
        if self._settings_store is None:
            return

        try:
            stored_active = await self._settings_store.get(ACTIVE_RESOLVERS_KEY)
            stored_order = await self._settings_store.get(RESOLVER_ORDER_KEY)
        except Exception as e:
            logger.error(LogTemplates.RESOLVER_SETTINGS_LOAD_FAILED, e)
            return

        if isinstance(stored_order, list):
            order = list(dict.fromkeys(str(rid) for rid in stored_order))
            order += [rid for rid in self._resolvers if rid not in order]
            self._order = order
            self._known |= set(order)
        if isinstance(stored_active, list):
            self._active = {str(rid) for rid in stored_active}
            self._known |= self._active

        logger.info(LogTemplates.RESOLVER_SETTINGS_LOADED, len(self._active), len(self._order))

    async def save_settings(self) -> None:
        if self._settings_store is None:
            return
        try:
            await self._settings_store.set(ACTIVE_RESOLVERS_KEY, sorted(self._active))
            await self._settings_store.set(RESOLVER_ORDER_KEY, list(self._order))
        except Exception as e:
            logger.error(LogTemplates.RESOLVER_SETTINGS_SAVE_FAILED, e)
            return
        self._dirty = False
        logger.debug(LogTemplates.RESOLVER_SETTINGS_SAVED)

    async def flush_settings(self) -> None:
        """Write pending changes immediately."""
        task, self._save_task = self._save_task, None
        if task is not None and not task.done():
            task.cancel()
        if self._dirty:
            await self.save_settings()

    def _schedule_save(self) -> None:
        if self._settings_store is None:
            return
        self._dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(LogTemplates.RESOLVER_SETTINGS_SAVE_DEFERRED)
            return
        if self._save_task is not None and not self._save_task.done():
            self._save_task.cancel()
        self._save_task = loop.create_task(self._save_after_debounce())

    async def _save_after_debounce(self) -> None:
        await asyncio.sleep(self._save_debounce_s)
        await self.save_settings()

    # ── Internals ───────────────────────────────────────────────────

    def _create_plugin(self, spec: ResolverSpec) -> ResolverPlugin:
        if self._plugin_factory is None or not spec.entry_point:
            raise InvalidManifestError(
                ErrorMessages.MANIFEST_NO_IMPLEMENTATION.format(resolver_id=spec.id),
                resolver_id=spec.id,
            )
        return self._plugin_factory(spec)
