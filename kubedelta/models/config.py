"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field

ALLOWED_RESOURCES: frozenset[str] = frozenset(
    {
        "pods",
        "deployments",
        "statefulsets",
        "daemonsets",
        "jobs",
        "cronjobs",
        "services",
        "ingresses",
        "networkpolicies",
        "configmaps",
        "secrets",
        "persistentvolumeclaims",
        "roles",
        "rolebindings",
        "clusterroles",
        "clusterrolebindings",
    }
)


@dataclass(frozen=True)
class HubConfig:
    """Incident hub (gRPC) configuration."""

    destination: str = ""
    api_key: str = field(default="", repr=False)
    use_tls: bool = False
    external_send_enabled: bool = True
    timeout_seconds: float = 5.0


@dataclass(frozen=True)
class CacheConfig:
    """Object state cache configuration.

    ``max_entries`` of None keeps every snapshot until an explicit delete.
    """

    max_entries: int | None = None


@dataclass(frozen=True)
class WatchConfig:
    """Watch loop configuration."""

    resources: frozenset[str] = ALLOWED_RESOURCES
    restart_policy: str = "exit"
    max_restarts: int = 5
    backoff_seconds: float = 1.0
    max_backoff_seconds: float = 30.0


@dataclass(frozen=True)
class APIConfig:
    """Health/metrics API configuration."""

    enabled: bool = True
    port: int = 8080


@dataclass(frozen=True)
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    debug_enabled: bool = False

    @property
    def effective_level(self) -> str:
        return "debug" if self.debug_enabled else self.level


@dataclass(frozen=True)
class KubeDeltaConfig:
    """Top-level kubedelta configuration. Read once at startup."""

    hub: HubConfig = field(default_factory=HubConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
