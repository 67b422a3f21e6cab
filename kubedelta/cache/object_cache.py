"""Last-observed snapshot store, one entry per cache key.

The cache is the only source of "previous state" for the diff engine: a
Modified notification is compared against whatever was stored here, never
against a fresh read from the API server.

Entries are replaced wholesale on ``set`` and removed only by ``delete``
unless ``max_entries`` is given, in which case the least recently used key
is evicted once the cache is full.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

from kubedelta.observability.metrics import cache_entries

_log = structlog.get_logger(component="cache.object_cache")

Snapshot = dict[str, object]


class ReadWriteLock:
    """Many concurrent readers or one writer, never both.

    Writers are preferred: once a writer is waiting, new readers block so a
    steady stream of reads cannot starve it.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class ObjectCache:
    """Keyed store of the last-observed Snapshot per object.

    Args:
        max_entries: Capacity for least-recently-used eviction. None keeps
            every entry until it is explicitly deleted.
    """

    def __init__(self, max_entries: int | None = None) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self._max_entries = max_entries
        self._objects: OrderedDict[str, Snapshot] = OrderedDict()
        self._lock = ReadWriteLock()
        self._evictions = 0

    @property
    def max_entries(self) -> int | None:
        return self._max_entries

    @property
    def evictions(self) -> int:
        return self._evictions

    def get(self, key: str) -> tuple[Snapshot | None, bool]:
        """Return ``(snapshot, found)`` for *key*."""
        if self._max_entries is None:
            with self._lock.read():
                obj = self._objects.get(key)
                return obj, obj is not None

        # Bounded mode: a hit refreshes recency, which mutates ordering.
        with self._lock.write():
            obj = self._objects.get(key)
            if obj is not None:
                self._objects.move_to_end(key)
            return obj, obj is not None

    def set(self, key: str, snapshot: Snapshot) -> None:
        """Store *snapshot* under *key*, replacing any previous entry."""
        with self._lock.write():
            self._objects[key] = snapshot
            self._objects.move_to_end(key)
            if self._max_entries is not None:
                while len(self._objects) > self._max_entries:
                    evicted, _ = self._objects.popitem(last=False)
                    self._evictions += 1
                    _log.debug("cache_entry_evicted", key=evicted, max_entries=self._max_entries)
            cache_entries.set(len(self._objects))

    def delete(self, key: str) -> None:
        """Remove *key*. Deleting an absent key is a no-op."""
        with self._lock.write():
            self._objects.pop(key, None)
            cache_entries.set(len(self._objects))

    def keys(self) -> list[str]:
        with self._lock.read():
            return list(self._objects)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._objects)

    def __contains__(self, key: object) -> bool:
        with self._lock.read():
            return key in self._objects
