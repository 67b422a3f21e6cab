"""Per-notification change detection.

ChangeDetector owns the policy that turns a stream of watch notifications
into change records:

    ADDED     -- store a baseline snapshot, never emit.
    MODIFIED  -- diff against the stored snapshot (if any), store the new one,
                 emit when the filtered change set is non-empty.
    DELETED   -- forget the snapshot, never emit.

An object first seen on a MODIFIED notification is not treated as a creation:
without a stored snapshot there is nothing to compare against, so the
notification is ignored and the cache is left untouched.
"""

from __future__ import annotations

import copy
import json
from typing import TYPE_CHECKING, Protocol

import structlog

from kubedelta.ledger.diff import canonicalize, diff
from kubedelta.models.events import ChangeRecord, WatchEventType
from kubedelta.models.resources import ResourceKind, cache_key
from kubedelta.observability.metrics import changes_detected_total, dispatch_total

if TYPE_CHECKING:
    from kubedelta.cache.object_cache import ObjectCache

_log = structlog.get_logger(component="ledger.detector")

_OBJECT_EVENTS = frozenset({WatchEventType.ADDED, WatchEventType.MODIFIED, WatchEventType.DELETED})


class MalformedObjectError(ValueError):
    """Raised when a notification object lacks the fields needed to key it."""


class ChangeSink(Protocol):
    """Anything that accepts an assembled change record (the hub client)."""

    async def send(self, record: ChangeRecord) -> bool | None: ...


def object_identity(obj: object) -> tuple[str, str]:
    """Return ``(namespace, name)`` of a raw object.

    Raises:
        MalformedObjectError: if *obj* is not a mapping or has no name.
    """
    if not isinstance(obj, dict):
        raise MalformedObjectError(f"expected a mapping, got {type(obj).__name__}")
    metadata = obj.get("metadata")
    if not isinstance(metadata, dict):
        raise MalformedObjectError("object has no metadata")
    name = metadata.get("name")
    if not isinstance(name, str) or not name:
        raise MalformedObjectError("object has no metadata.name")
    namespace = metadata.get("namespace") or ""
    return str(namespace), name


class ChangeDetector:
    """Drives the object cache and diff engine for every notification.

    Args:
        cache:                 Snapshot store shared by all watch loops.
        sink:                  Destination for change records; None disables sending.
        api_key:               Credential copied into every record.
        external_send_enabled: When False, records are built and logged but
                               never handed to *sink*.
    """

    def __init__(
        self,
        cache: ObjectCache,
        sink: ChangeSink | None = None,
        api_key: str = "",
        external_send_enabled: bool = True,
    ) -> None:
        self._cache = cache
        self._sink = sink
        self._api_key = api_key
        self._send_enabled = external_send_enabled and sink is not None

    @property
    def send_enabled(self) -> bool:
        return self._send_enabled

    async def process(
        self,
        kind: ResourceKind,
        event_type: WatchEventType | str,
        obj: object,
    ) -> ChangeRecord | None:
        """Handle one notification; return the record it produced, if any.

        Raises:
            MalformedObjectError: the object cannot be keyed.
            SerializationError:   the object cannot be encoded as JSON.
        """
        event_type = WatchEventType(event_type)
        if event_type not in _OBJECT_EVENTS:
            return None

        namespace, name = object_identity(obj)
        key = cache_key(kind.resource, namespace, name)

        if event_type is WatchEventType.ADDED:
            self._cache.set(key, copy.deepcopy(obj))
            return None

        if event_type is WatchEventType.DELETED:
            self._cache.delete(key)
            return None

        prior, found = self._cache.get(key)
        if not found:
            _log.debug("modified_without_baseline", key=key)
            return None

        changes = diff(prior, obj)
        self._cache.set(key, copy.deepcopy(obj))

        if not changes:
            self._log_baseline(key, obj)
            return None

        record = ChangeRecord(
            namespace=namespace,
            name=name,
            event_type=WatchEventType.MODIFIED.value,
            changes=changes,
            api_key=self._api_key,
        )
        changes_detected_total.labels(resource=kind.resource).inc()
        _log.debug(
            "changes_detected",
            key=key,
            changes=json.dumps(changes, indent=4, sort_keys=True),
        )

        if self._send_enabled:
            await self._dispatch(record, key)
        else:
            dispatch_total.labels(outcome="disabled").inc()
        return record

    async def _dispatch(self, record: ChangeRecord, key: str) -> None:
        assert self._sink is not None
        acknowledged = await self._sink.send(record)
        if acknowledged is None:
            dispatch_total.labels(outcome="failed").inc()
            return
        dispatch_total.labels(outcome="acknowledged" if acknowledged else "unacknowledged").inc()
        _log.debug("change_record_sent", key=key, acknowledged=acknowledged)

    def _log_baseline(self, key: str, obj: object) -> None:
        """Log the full object when a modification carries no relevant change."""
        _log.debug("baseline_observed", key=key, object=json.dumps(canonicalize(obj)))
