"""
Application Layer

Services that orchestrate domain objects and infrastructure ports:
- services/: resolver registry, cache store, track resolver, queue
  priority arbiter and playback source selector
- interfaces/: Port interfaces for resolver plugins and persistence adapters
"""
