"""Watch notification and change record data structures."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import StrEnum

from kubedelta.models.resources import ChangeSet, ResourceKind


class WatchEventType(StrEnum):
    """Event types delivered by a Kubernetes watch stream."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    BOOKMARK = "BOOKMARK"
    ERROR = "ERROR"


@dataclass(frozen=True)
class Notification:
    """One (event type, object) pair read from a kind's watch stream."""

    kind: ResourceKind
    event_type: WatchEventType
    obj: dict[str, object]

    @property
    def resource_version(self) -> str:
        metadata = self.obj.get("metadata") if isinstance(self.obj, dict) else None
        if isinstance(metadata, dict):
            return str(metadata.get("resourceVersion") or "")
        return ""


@dataclass(frozen=True)
class ChangeRecord:
    """Payload sent to the hub for one qualifying Modified notification.

    Transient: built once by the ChangeDetector, consumed once by the
    HubClient, never persisted.
    """

    namespace: str
    name: str
    event_type: str
    changes: ChangeSet = field(default_factory=dict)
    api_key: str = field(default="", repr=False)

    @property
    def data(self) -> bytes:
        """Compact JSON encoding of the change set, keys sorted."""
        return json.dumps(self.changes, sort_keys=True, separators=(",", ":")).encode()
