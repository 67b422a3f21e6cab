"""Shared fixtures for kubedelta integration tests.

Provides a scripted cluster (discovery plus per-kind watch streams fed from
asyncio queues) and an in-memory hub, so the whole pipeline runs without a
real API server or gRPC peer.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import pytest

from kubedelta.cache.object_cache import ObjectCache
from kubedelta.collector.source import APIResourceGroup
from kubedelta.collector.supervisor import WatchSupervisor
from kubedelta.ledger.detector import ChangeDetector
from kubedelta.models.config import WatchConfig
from kubedelta.models.events import ChangeRecord
from kubedelta.models.resources import ResourceKind

_CLOSE = object()


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class ScriptedCluster:
    """ClusterSource whose watch streams are fed by the test.

    ``emit`` queues a notification on a kind's stream; ``close`` ends it.
    """

    def __init__(self, groups: list[APIResourceGroup]) -> None:
        self._groups = groups
        self._queues: dict[ResourceKind, asyncio.Queue[Any]] = {}
        self.opened: list[tuple[ResourceKind, str | None]] = []

    def _queue(self, kind: ResourceKind) -> asyncio.Queue[Any]:
        return self._queues.setdefault(kind, asyncio.Queue())

    async def discover(self) -> list[APIResourceGroup]:
        return self._groups

    async def open_stream(self, kind: ResourceKind, resource_version: str | None = None) -> AsyncIterator[Any]:
        self.opened.append((kind, resource_version))
        return self._stream(self._queue(kind))

    async def _stream(self, queue: asyncio.Queue[Any]) -> AsyncIterator[tuple[str, Any]]:
        while True:
            item = await queue.get()
            queue.task_done()
            if item is _CLOSE:
                return
            yield item

    def emit(self, kind: ResourceKind, event_type: str, obj: Any) -> None:
        self._queue(kind).put_nowait((event_type, obj))

    def close(self, kind: ResourceKind) -> None:
        self._queue(kind).put_nowait(_CLOSE)

    async def drain(self) -> None:
        """Wait until every queued notification has been picked up and handled."""
        for queue in list(self._queues.values()):
            await queue.join()
        # One more turn so the loop finishes handling the last item it read.
        for _ in range(5):
            await asyncio.sleep(0)


class RecordingHub:
    """ChangeSink that keeps every record it is handed."""

    def __init__(self, ack: bool | None = True) -> None:
        self.records: list[ChangeRecord] = []
        self._ack = ack

    async def send(self, record: ChangeRecord) -> bool | None:
        self.records.append(record)
        return self._ack


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cluster() -> ScriptedCluster:
    return ScriptedCluster(
        [
            APIResourceGroup("v1", ("pods", "configmaps", "events", "nodes")),
            APIResourceGroup("apps/v1", ("deployments", "replicasets")),
        ]
    )


@pytest.fixture
def hub() -> RecordingHub:
    return RecordingHub()


@pytest.fixture
def cache() -> ObjectCache:
    return ObjectCache()


@pytest.fixture
def detector(cache: ObjectCache, hub: RecordingHub) -> ChangeDetector:
    return ChangeDetector(cache, sink=hub, api_key="integration-key")


@pytest.fixture
async def supervisor(cluster: ScriptedCluster, detector: ChangeDetector) -> AsyncIterator[WatchSupervisor]:
    sup = WatchSupervisor(cluster, detector, WatchConfig())
    await sup.start()
    await asyncio.sleep(0)
    yield sup
    await sup.stop()
