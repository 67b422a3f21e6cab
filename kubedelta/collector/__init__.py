"""Collector package for kubedelta.

Discovers the resource kinds the API server serves and runs one watch loop
per allowed kind, feeding every notification to the change detector.

Submodules
----------
source     -- ClusterSource protocol and the kubernetes-asyncio implementation.
watcher    -- KindWatcher: ordered per-kind consumption, optional resubscribe with back-off.
supervisor -- WatchSupervisor: discovery, allow-list filtering, loop lifecycle.
"""

from kubedelta.collector.source import APIResourceGroup, ClusterSource, KubernetesSource
from kubedelta.collector.supervisor import DiscoveryError, WatchSupervisor, filter_allowed
from kubedelta.collector.watcher import KindWatcher, WatcherState, WatchStreamError

__all__ = [
    "APIResourceGroup",
    "ClusterSource",
    "DiscoveryError",
    "KindWatcher",
    "KubernetesSource",
    "WatchStreamError",
    "WatchSupervisor",
    "WatcherState",
    "filter_allowed",
]
