"""Response schemas for the kubedelta API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Error envelope returned for every non-2xx response."""

    error: str
    detail: str = ""


class HealthResponse(BaseModel):
    status: str


class WatchStatus(BaseModel):
    """State of one watch loop."""

    resource: str
    group_version: str
    state: str
    processed: int = 0
    restarts: int = 0
    resource_version: str = ""


class StatusResponse(BaseModel):
    """Snapshot of the running agent."""

    version: str
    send_enabled: bool
    cache_entries: int
    cache_max_entries: int | None = None
    watches: list[WatchStatus] = Field(default_factory=list)
