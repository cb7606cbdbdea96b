"""Port interface implemented by every resolver plugin."""

from __future__ import annotations

from abc import ABC
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ...domain.music.entities import SourceRecord, Track


class ResolverPlugin(ABC):
    """Typed contract between the core and one music provider.

    Plugins override only the operations their manifest declares in
    ``capabilities``; the registry never calls an undeclared one, so the
    defaults below are inert. Network calls are expected to carry their own
    timeouts and retries.
    """

    async def init(self, config: dict[str, Any]) -> None:
        """Prepare the plugin with its user configuration."""

    async def cleanup(self) -> None:
        """Release resources before the plugin is replaced or uninstalled."""

    async def resolve(
        self, artist: str, title: str, album: str | None, config: dict[str, Any]
    ) -> "SourceRecord | None":
        """Find this provider's best match for a logical track."""
        return None

    async def search(self, query: str, config: dict[str, Any]) -> list["Track"]:
        """Free-text search returning tracks whose sources include this provider."""
        return []

    async def play(self, source: "SourceRecord", config: dict[str, Any]) -> bool:
        """Start playback of ``source``. True when playback started."""
        return False

    async def lookup_url(self, url: str, config: dict[str, Any]) -> "Track | None":
        """Turn a provider URL into track metadata."""
        return None
