#!/usr/bin/env python3
"""Command-line entry point for the music resolver."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import logging.config
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from music_resolver.domain.shared.exceptions import DomainError
from music_resolver.domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from music_resolver.config.container import Container

_LOGGING_CONFIG_PATH = Path(__file__).resolve().parents[2] / "logging_config.json"


def setup_logging(log_level: str = "INFO") -> None:
    resolved_level = getattr(logging, log_level.upper(), logging.INFO)

    try:
        with open(_LOGGING_CONFIG_PATH) as f:
            config = json.load(f)
        logging.config.dictConfig(config)
    except (FileNotFoundError, json.JSONDecodeError, ValueError):
        logging.basicConfig(
            level=resolved_level,
            format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger(__name__).warning(
            "Could not load %s, falling back to basic config", _LOGGING_CONFIG_PATH
        )

    logging.getLogger().setLevel(resolved_level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="music-resolver",
        description="Resolve tracks to playable sources across resolver plugins.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s resolvers
  %(prog)s resolve "Radiohead" "Karma Police" --album "OK Computer"
  %(prog)s search "karma police"
  %(prog)s disable youtube
        """,
    )
    parser.add_argument(
        "--manifest-dir",
        "-m",
        type=Path,
        default=None,
        help="directory of resolver manifests (default: RESOLVERS__MANIFEST_DIR)",
    )

    subparsers = parser.add_subparsers(dest="action", required=True)

    resolve = subparsers.add_parser("resolve", help="resolve one track")
    resolve.add_argument("artist")
    resolve.add_argument("title")
    resolve.add_argument("--album", default=None)
    resolve.add_argument("--duration", type=float, default=None, help="duration in seconds")
    resolve.add_argument("--position", type=int, default=None, help="track number on the release")
    resolve.add_argument("--force", action="store_true", help="ignore cached sources")

    search = subparsers.add_parser("search", help="search every search-capable resolver")
    search.add_argument("query")

    lookup = subparsers.add_parser("lookup", help="look up a provider URL")
    lookup.add_argument("url")

    subparsers.add_parser("resolvers", help="list loaded resolvers")

    enable = subparsers.add_parser("enable", help="enable a resolver")
    enable.add_argument("resolver_id")
    disable = subparsers.add_parser("disable", help="disable a resolver")
    disable.add_argument("resolver_id")

    return parser


async def _run(container: Container, args: argparse.Namespace) -> Any:
    from music_resolver.domain.music.entities import Track

    registry = container.resolver_registry

    if args.action == "resolve":
        track = Track(
            artist=args.artist,
            title=args.title,
            album=args.album,
            duration=args.duration,
            position=args.position,
        )
        sources = await container.track_resolver.resolve(track, force_refresh=args.force)
        return {resolver_id: source.model_dump(mode="json") for resolver_id, source in sources.items()}

    if args.action == "search":
        tracks = await container.track_resolver.search(args.query)
        return [track.model_dump(mode="json") for track in tracks]

    if args.action == "lookup":
        found = await registry.lookup_url(args.url)
        if found is None:
            return None
        track, resolver_id = found
        return {"resolver_id": resolver_id, "track": track.model_dump(mode="json")}

    if args.action in ("enable", "disable"):
        registry.set_active(args.resolver_id, args.action == "enable")

    return [
        {
            "id": resolver.id,
            "name": resolver.name,
            "version": resolver.version,
            "active": registry.is_active(resolver.id),
            "priority": registry.priority_of(resolver.id),
            "capabilities": resolver.capabilities.model_dump(),
        }
        for resolver in registry.resolvers.values()
    ]


async def run_command(container: Container, args: argparse.Namespace) -> Any:
    await container.initialize(manifest_dir=args.manifest_dir, start_jobs=False)
    try:
        return await _run(container, args)
    finally:
        await container.shutdown()


def main(argv: list[str] | None = None) -> int:
    from music_resolver.config.container import create_container
    from music_resolver.config.settings import get_settings

    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log_level)

    logger = logging.getLogger(__name__)
    logger.info(LogTemplates.APP_STARTING.format(environment=settings.environment))

    container = create_container(settings)
    try:
        result = asyncio.run(run_command(container, args))
    except DomainError as e:
        logger.error("%s: %s", e.code, e.message)
        return 1
    except KeyboardInterrupt:
        return 130

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


def cli() -> None:
    """Console script entry point (used by pyproject.toml [project.scripts])."""
    sys.exit(main())


if __name__ == "__main__":
    cli()  # pragma: no cover
