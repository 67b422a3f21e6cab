"""Watch supervisor: discovery, allow-list filtering, one loop per kind."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import structlog

from kubedelta.collector.watcher import KindWatcher
from kubedelta.models.config import ALLOWED_RESOURCES, WatchConfig
from kubedelta.models.resources import InvalidGroupVersionError, ResourceKind
from kubedelta.observability.metrics import watched_kinds

if TYPE_CHECKING:
    from kubedelta.collector.source import APIResourceGroup, ClusterSource
    from kubedelta.ledger.detector import ChangeDetector

_log = structlog.get_logger(component="collector.supervisor")


class DiscoveryError(RuntimeError):
    """The API server's resource discovery failed."""


def filter_allowed(
    groups: Iterable[APIResourceGroup],
    allowed: frozenset[str] = ALLOWED_RESOURCES,
) -> list[ResourceKind]:
    """Keep only kinds whose resource name is in *allowed*.

    Group-version strings that do not parse are skipped with a warning.
    Duplicates are dropped, first occurrence wins.
    """
    kinds: list[ResourceKind] = []
    seen: set[ResourceKind] = set()
    for group in groups:
        wanted = [name for name in group.resources if name in allowed]
        if not wanted:
            continue
        try:
            kinds_in_group = [ResourceKind.from_group_version(group.group_version, name) for name in wanted]
        except InvalidGroupVersionError as exc:
            _log.warning("group_version_unparseable", group_version=group.group_version, error=str(exc))
            continue
        for kind in kinds_in_group:
            if kind not in seen:
                seen.add(kind)
                kinds.append(kind)
    return kinds


class WatchSupervisor:
    """Spawns and tracks one KindWatcher task per allowed resource kind."""

    def __init__(
        self,
        source: ClusterSource,
        detector: ChangeDetector,
        config: WatchConfig | None = None,
    ) -> None:
        self._source = source
        self._detector = detector
        self._config = config or WatchConfig()
        self._watchers: dict[ResourceKind, KindWatcher] = {}
        self._tasks: dict[ResourceKind, asyncio.Task[None]] = {}

    @property
    def watchers(self) -> list[KindWatcher]:
        return list(self._watchers.values())

    async def discover(self) -> list[APIResourceGroup]:
        """Query the cluster for every served resource kind.

        Raises:
            DiscoveryError: on any discovery failure.
        """
        try:
            return await self._source.discover()
        except Exception as exc:
            raise DiscoveryError(f"Failed to discover server-supported API resources: {exc}") from exc

    async def start(self) -> list[ResourceKind]:
        """Discover, filter, and start a watch loop for every allowed kind."""
        groups = await self.discover()
        kinds = filter_allowed(groups, self._config.resources)
        for kind in kinds:
            self.spawn(kind)
        watched_kinds.set(len(self._tasks))
        _log.info("watch_loops_started", kinds=sorted(str(kind) for kind in kinds))
        return kinds

    def spawn(self, kind: ResourceKind) -> KindWatcher:
        """Start the loop for *kind*. Calling twice for one kind is a no-op."""
        if kind in self._watchers:
            return self._watchers[kind]
        watcher = KindWatcher(
            kind,
            self._source,
            self._detector,
            restart_policy=self._config.restart_policy,
            max_restarts=self._config.max_restarts,
            backoff_seconds=self._config.backoff_seconds,
            max_backoff_seconds=self._config.max_backoff_seconds,
        )
        self._watchers[kind] = watcher
        self._tasks[kind] = asyncio.create_task(watcher.run(), name=f"watch-{kind}")
        return watcher

    async def wait(self) -> None:
        """Block until every loop has finished.

        Raises the first loop failure (normally WatchStreamError) as soon as it
        happens; loops that end cleanly are simply dropped from the wait set.
        """
        pending = set(self._tasks.values())
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            watched_kinds.set(len(pending))
            for task in done:
                if task.cancelled():
                    continue
                exc = task.exception()
                if exc is not None:
                    raise exc
        _log.warning("all_watch_loops_exited")

    async def stop(self) -> None:
        """Cancel every running loop and wait for them to unwind."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        watched_kinds.set(0)

    def failed(self) -> bool:
        return any(
            task.done() and not task.cancelled() and task.exception() is not None for task in self._tasks.values()
        )

    def status(self) -> list[dict[str, Any]]:
        """Per-kind loop state, for the status endpoint."""
        return [
            {
                "resource": kind.resource,
                "group_version": kind.group_version,
                "state": watcher.state.value,
                "processed": watcher.processed,
                "restarts": watcher.restarts,
                "resource_version": watcher.last_resource_version or "",
            }
            for kind, watcher in self._watchers.items()
        ]
