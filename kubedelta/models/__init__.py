"""Core data structures for kubedelta."""

from kubedelta.models.config import (
    ALLOWED_RESOURCES,
    APIConfig,
    CacheConfig,
    HubConfig,
    KubeDeltaConfig,
    LogConfig,
    WatchConfig,
)
from kubedelta.models.events import ChangeRecord, Notification, WatchEventType
from kubedelta.models.resources import (
    MISSING,
    ChangeOperation,
    ChangeSet,
    FieldChange,
    InvalidGroupVersionError,
    OpType,
    ResourceKind,
    cache_key,
)

__all__ = [
    "ALLOWED_RESOURCES",
    "APIConfig",
    "CacheConfig",
    "ChangeOperation",
    "ChangeRecord",
    "ChangeSet",
    "FieldChange",
    "HubConfig",
    "InvalidGroupVersionError",
    "KubeDeltaConfig",
    "LogConfig",
    "MISSING",
    "Notification",
    "OpType",
    "ResourceKind",
    "WatchConfig",
    "WatchEventType",
    "cache_key",
]
