"""
Application Interfaces (Ports)

Abstract interfaces that define contracts between the application
layer and infrastructure adapters. These are the "ports" in
hexagonal architecture.
"""

from music_resolver.application.interfaces.key_value_store import KeyValueStore
from music_resolver.application.interfaces.resolver_plugin import ResolverPlugin
from music_resolver.application.interfaces.source_holder import SourceHolder

__all__ = [
    "KeyValueStore",
    "ResolverPlugin",
    "SourceHolder",
]
