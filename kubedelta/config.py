"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from kubedelta.models.config import (
    ALLOWED_RESOURCES,
    APIConfig,
    CacheConfig,
    HubConfig,
    KubeDeltaConfig,
    LogConfig,
    WatchConfig,
)

_RESTART_POLICIES = ("exit", "resubscribe")


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBEDELTA_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None, max_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_restart_policy(value: str) -> str:
    if value.lower() not in _RESTART_POLICIES:
        raise ValueError(f"Invalid watch restart policy: {value}. Must be one of {_RESTART_POLICIES}")
    return value.lower()


def _parse_resources(value: str) -> frozenset[str]:
    if not value.strip():
        return ALLOWED_RESOURCES
    return frozenset(part.strip().lower() for part in value.split(",") if part.strip())


def load_config() -> KubeDeltaConfig:
    """Load configuration from KUBEDELTA_* environment variables."""
    max_entries = _env_int("CACHE_MAX_ENTRIES", 0, min_val=0)
    return KubeDeltaConfig(
        hub=HubConfig(
            destination=_env("DESTINATION_URL", ""),
            api_key=_env("API_KEY", ""),
            use_tls=_env_bool("USE_TLS", False),
            # Only an explicit "false" turns sending off.
            external_send_enabled=_env("EXTERNAL_SEND_ENABLED", "true").strip().lower() != "false",
            timeout_seconds=_env_float("DISPATCH_TIMEOUT", 5.0, min_val=1.0, max_val=30.0),
        ),
        cache=CacheConfig(
            max_entries=max_entries or None,
        ),
        watch=WatchConfig(
            resources=_parse_resources(_env("WATCH_RESOURCES", "")),
            restart_policy=_validate_restart_policy(_env("WATCH_RESTART_POLICY", "exit")),
            max_restarts=_env_int("WATCH_MAX_RESTARTS", 5, min_val=0, max_val=50),
            backoff_seconds=_env_float("WATCH_BACKOFF_SECONDS", 1.0, min_val=0.0, max_val=60.0),
        ),
        api=APIConfig(
            enabled=_env_bool("API_ENABLED", True),
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            debug_enabled=_env_bool("DEBUG_ENABLED", False),
        ),
    )
