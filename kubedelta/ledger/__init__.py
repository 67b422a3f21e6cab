"""Change detection engine for kubedelta.

Decides which watch notifications amount to a real change and turns them
into change records for the incident hub.

Submodules:
    diff     -- JSON Patch diff with metadata/status filtering and change-set reduction.
    detector -- Per-notification policy over the object cache.
"""

from kubedelta.ledger.detector import ChangeDetector, ChangeSink, MalformedObjectError
from kubedelta.ledger.diff import SerializationError, diff

__all__ = [
    "ChangeDetector",
    "ChangeSink",
    "MalformedObjectError",
    "SerializationError",
    "diff",
]
