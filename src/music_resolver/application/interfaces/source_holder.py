"""Protocol for anything that keeps per-resolver sources alive."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class SourceHolder(Protocol):
    """Live tracks, queue snapshots and caches that must forget a disabled resolver.

    ``purge_resolver`` is called synchronously and must remove exactly that
    resolver's entries, returning how many entries it touched.
    """

    def purge_resolver(self, resolver_id: str) -> int: ...
