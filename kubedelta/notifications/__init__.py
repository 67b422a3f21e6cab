"""Incident hub delivery for kubedelta.

Exports:
    HubClient           -- gRPC client for EventService.EmitEvent.
    EventMessage        -- Request message class.
    EventResponse       -- Response message class.
    build_hub_client    -- Factory used by the application bootstrap.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from kubedelta.notifications.hub import HubClient
from kubedelta.notifications.proto import EventMessage, EventResponse

if TYPE_CHECKING:
    from kubedelta.models.config import HubConfig

_log = structlog.get_logger(component="notifications")

__all__ = [
    "EventMessage",
    "EventResponse",
    "HubClient",
    "build_hub_client",
]


def build_hub_client(config: HubConfig) -> HubClient | None:
    """Build and connect a HubClient, or return None when sending is off.

    Sending is off when ``external_send_enabled`` is False or no destination
    is configured; change sets are still computed and logged in that case.
    """
    if not config.external_send_enabled:
        _log.info("hub_send_disabled", reason="external send disabled")
        return None
    if not config.destination:
        _log.warning("hub_send_disabled", reason="destination is empty")
        return None

    client = HubClient(
        destination=config.destination,
        secure=config.use_tls,
        timeout=config.timeout_seconds,
    )
    client.connect()
    return client
