"""Resolver manifest discovery and entry-point import."""

from __future__ import annotations

import importlib
import logging
from pathlib import Path

from music_resolver.application.interfaces.resolver_plugin import ResolverPlugin
from music_resolver.domain.resolvers.entities import ResolverSpec
from music_resolver.domain.shared.exceptions import InvalidManifestError
from music_resolver.domain.shared.messages import ErrorMessages, LogTemplates

logger = logging.getLogger(__name__)

MANIFEST_SUFFIXES = (".json", ".axe")


def import_plugin(spec: ResolverSpec) -> ResolverPlugin:
    """Instantiate the plugin named by ``spec.entry_point`` (``"package.module:ClassName"``).

    Raises:
        InvalidManifestError: the entry point is missing, cannot be imported,
            or does not produce a :class:`ResolverPlugin`.
    """
    entry_point = spec.entry_point
    if not entry_point:
        raise InvalidManifestError(
            ErrorMessages.MANIFEST_NO_IMPLEMENTATION.format(resolver_id=spec.id), resolver_id=spec.id
        )

    module_name, _, attribute = entry_point.partition(":")
    try:
        module = importlib.import_module(module_name)
        target = getattr(module, attribute) if attribute else module
        plugin = target() if callable(target) else target
    except Exception as e:
        raise InvalidManifestError(
            ErrorMessages.MANIFEST_BAD_ENTRY_POINT.format(resolver_id=spec.id, entry_point=entry_point, error=e),
            resolver_id=spec.id,
        ) from e

    if not isinstance(plugin, ResolverPlugin):
        raise InvalidManifestError(
            ErrorMessages.MANIFEST_NOT_A_PLUGIN.format(resolver_id=spec.id), resolver_id=spec.id
        )
    return plugin


def read_manifest(path: Path) -> ResolverSpec:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise InvalidManifestError(ErrorMessages.MANIFEST_INVALID.format(error=e)) from e
    return ResolverSpec.parse(content)


def discover_manifests(directory: Path) -> list[ResolverSpec]:
    """Read every manifest file in ``directory``, skipping invalid ones."""
    if not directory.is_dir():
        logger.warning(LogTemplates.APP_MANIFEST_DIR_MISSING, directory)
        return []

    specs: list[ResolverSpec] = []
    for path in sorted(directory.iterdir()):
        if path.suffix not in MANIFEST_SUFFIXES or not path.is_file():
            continue
        try:
            specs.append(read_manifest(path))
        except InvalidManifestError as e:
            logger.error(LogTemplates.RESOLVER_LOAD_FAILED, f"{path.name}: {e.message}")

    logger.info(LogTemplates.APP_MANIFESTS_LOADED, len(specs), directory)
    return specs
