"""Prometheus metrics for the change-detection pipeline.

All collectors live on a module-level registry so the health API can expose
them without touching the process-global default registry.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

registry = CollectorRegistry()

_NAMESPACE = "kubedelta"

notifications_total = Counter(
    name="notifications_total",
    documentation="Watch notifications processed, by resource and event type",
    labelnames=["resource", "event_type"],
    registry=registry,
    namespace=_NAMESPACE,
)

changes_detected_total = Counter(
    name="changes_detected_total",
    documentation="Modified notifications that produced a non-empty change set",
    labelnames=["resource"],
    registry=registry,
    namespace=_NAMESPACE,
)

events_dropped_total = Counter(
    name="events_dropped_total",
    documentation="Notifications dropped by per-event error handling",
    labelnames=["resource", "reason"],
    registry=registry,
    namespace=_NAMESPACE,
)

dispatch_total = Counter(
    name="dispatch_total",
    documentation="Change records sent to the hub, by outcome",
    labelnames=["outcome"],
    registry=registry,
    namespace=_NAMESPACE,
)

watch_restarts_total = Counter(
    name="watch_restarts_total",
    documentation="Watch stream resubscriptions, by resource",
    labelnames=["resource"],
    registry=registry,
    namespace=_NAMESPACE,
)

cache_entries = Gauge(
    name="cache_entries",
    documentation="Snapshots currently held in the object state cache",
    registry=registry,
    namespace=_NAMESPACE,
)

watched_kinds = Gauge(
    name="watched_kinds",
    documentation="Resource kinds with a running watch loop",
    registry=registry,
    namespace=_NAMESPACE,
)


def render_latest() -> bytes:
    """Prometheus text exposition of every kubedelta metric."""
    return generate_latest(registry)
