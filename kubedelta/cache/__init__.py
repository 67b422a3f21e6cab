"""Cache layer for kubedelta.

Holds the last-observed snapshot of every watched object so Modified
notifications can be diffed against the previous state.

Submodules:
    object_cache -- Reader/writer-locked snapshot store with optional LRU bound.
"""

from kubedelta.cache.object_cache import ObjectCache, ReadWriteLock

__all__ = ["ObjectCache", "ReadWriteLock"]
