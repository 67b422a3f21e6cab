"""Per-kind watch loop.

A KindWatcher consumes one kind's cluster-wide watch stream and hands every
notification to the ChangeDetector, awaiting each before reading the next so
that order within the kind is preserved.

Restart policies:
    exit        -- default. A refused stream is fatal (WatchStreamError) and a
                   closed stream ends the loop; recovery is left to whatever
                   restarts the process.
    resubscribe -- reopen the stream from the last seen resourceVersion,
                   backing off exponentially after failed opens and giving up
                   with WatchStreamError after ``max_restarts`` in a row.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from kubedelta.ledger.detector import MalformedObjectError
from kubedelta.ledger.diff import SerializationError
from kubedelta.models.events import Notification, WatchEventType
from kubedelta.observability.metrics import (
    events_dropped_total,
    notifications_total,
    watch_restarts_total,
)

if TYPE_CHECKING:
    from kubedelta.collector.source import ClusterSource, RawEvent
    from kubedelta.ledger.detector import ChangeDetector
    from kubedelta.models.resources import ResourceKind

_log = structlog.get_logger(component="collector.watcher")

_HTTP_GONE = 410

RESTART_EXIT = "exit"
RESTART_RESUBSCRIBE = "resubscribe"


class WatchStreamError(RuntimeError):
    """A watch stream could not be opened (or reopened) for a kind."""

    def __init__(self, kind: ResourceKind, cause: Exception) -> None:
        super().__init__(f"Failed to watch {kind.resource}: {cause}")
        self.kind = kind
        self.cause = cause


class WatcherState(StrEnum):
    """Lifecycle of one watch loop."""

    PENDING = "pending"
    RUNNING = "running"
    BACKOFF = "backoff"
    STOPPED = "stopped"
    FAILED = "failed"


class KindWatcher:
    """Watch loop for a single resource kind."""

    def __init__(
        self,
        kind: ResourceKind,
        source: ClusterSource,
        detector: ChangeDetector,
        restart_policy: str = RESTART_EXIT,
        max_restarts: int = 5,
        backoff_seconds: float = 1.0,
        max_backoff_seconds: float = 30.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if restart_policy not in (RESTART_EXIT, RESTART_RESUBSCRIBE):
            raise ValueError(f"Unknown restart policy: {restart_policy!r}")
        self.kind = kind
        self._source = source
        self._detector = detector
        self._restart_policy = restart_policy
        self._max_restarts = max_restarts
        self._backoff_seconds = backoff_seconds
        self._max_backoff_seconds = max_backoff_seconds
        self._sleep = sleep
        self._log = _log.bind(resource=kind.resource, group_version=kind.group_version)

        self.state = WatcherState.PENDING
        self.last_resource_version: str | None = None
        self.processed = 0
        self.restarts = 0

    @property
    def resubscribes(self) -> bool:
        return self._restart_policy == RESTART_RESUBSCRIBE

    async def run(self) -> None:
        """Consume the stream until it ends (or forever, when resubscribing).

        Raises:
            WatchStreamError: the stream could not be opened.
        """
        failures = 0
        while True:
            try:
                stream = await self._source.open_stream(
                    self.kind,
                    self.last_resource_version if self.resubscribes else None,
                )
            except Exception as exc:
                failures += 1
                if not self.resubscribes or failures > self._max_restarts:
                    self.state = WatcherState.FAILED
                    raise WatchStreamError(self.kind, exc) from exc
                await self._backoff(failures, exc)
                continue

            failures = 0
            processed_before = self.processed
            self.state = WatcherState.RUNNING
            self._log.info("watch_started", resource_version=self.last_resource_version or "")

            try:
                await self._consume(stream)
            except Exception as exc:
                # Mid-stream transport errors end the stream like a close does.
                self._log.warning("watch_stream_error", error=str(exc))

            if not self.resubscribes:
                self.state = WatcherState.STOPPED
                self._log.info("watch_stream_closed", processed=self.processed)
                return

            self.restarts += 1
            watch_restarts_total.labels(resource=self.kind.resource).inc()
            self._log.info("watch_resubscribing", resource_version=self.last_resource_version or "")
            if self.processed == processed_before:
                # An empty stream is not progress; do not spin on it.
                await self._sleep(self._backoff_seconds)

    async def _backoff(self, failures: int, exc: Exception) -> None:
        delay = min(self._backoff_seconds * (2 ** (failures - 1)), self._max_backoff_seconds)
        self.state = WatcherState.BACKOFF
        self._log.warning(
            "watch_open_failed",
            error=str(exc),
            attempt=failures,
            max_restarts=self._max_restarts,
            retry_in=delay,
        )
        await self._sleep(delay)

    async def _consume(self, stream: AsyncIterator[RawEvent]) -> None:
        async for event_type, obj in stream:
            await self.handle(event_type, obj)

    async def handle(self, event_type: str, obj: Any) -> None:
        """Process one notification, dropping it on per-event errors."""
        try:
            event = WatchEventType(event_type)
        except ValueError:
            events_dropped_total.labels(resource=self.kind.resource, reason="unknown_event_type").inc()
            self._log.debug("watch_event_unknown_type", event_type=event_type)
            return

        notifications_total.labels(resource=self.kind.resource, event_type=event.value).inc()
        self.processed += 1

        if event is WatchEventType.ERROR:
            self._handle_error_event(obj)
            return

        resource_version = Notification(self.kind, event, obj).resource_version
        if resource_version:
            self.last_resource_version = resource_version
        if event is WatchEventType.BOOKMARK:
            return

        try:
            await self._detector.process(self.kind, event, obj)
        except MalformedObjectError as exc:
            events_dropped_total.labels(resource=self.kind.resource, reason="malformed").inc()
            self._log.debug("watch_event_malformed", error=str(exc))
        except SerializationError as exc:
            events_dropped_total.labels(resource=self.kind.resource, reason="serialization").inc()
            self._log.debug("watch_event_unserializable", error=str(exc))
        except Exception as exc:  # noqa: BLE001
            events_dropped_total.labels(resource=self.kind.resource, reason="unexpected").inc()
            self._log.warning("watch_event_failed", event_type=event.value, error=str(exc))

    def _handle_error_event(self, obj: Any) -> None:
        code = obj.get("code") if isinstance(obj, dict) else None
        message = obj.get("message", "") if isinstance(obj, dict) else ""
        if code == _HTTP_GONE:
            # Our resourceVersion has been compacted away; start over.
            self.last_resource_version = None
        self._log.warning("watch_error_event", code=code, message=message)

