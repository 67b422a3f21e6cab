"""Route handlers for the kubedelta API."""

from __future__ import annotations

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST

from kubedelta.api.schemas import HealthResponse, StatusResponse, WatchStatus
from kubedelta.observability.metrics import render_latest

router = APIRouter()
probe_router = APIRouter()


@probe_router.get("/healthz", response_model=HealthResponse)
async def healthz(request: Request) -> JSONResponse:
    """Liveness: degraded once any watch loop has failed."""
    supervisor = request.app.state.supervisor
    if supervisor is not None and supervisor.failed():
        return JSONResponse(status_code=503, content=HealthResponse(status="degraded").model_dump())
    return JSONResponse(status_code=200, content=HealthResponse(status="ok").model_dump())


@probe_router.get("/metrics")
async def metrics() -> Response:
    return Response(content=render_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/status", response_model=StatusResponse)
async def status(request: Request) -> StatusResponse:
    from kubedelta import __version__

    state = request.app.state
    watches = [WatchStatus(**entry) for entry in state.supervisor.status()] if state.supervisor else []
    return StatusResponse(
        version=__version__,
        send_enabled=bool(state.detector is not None and state.detector.send_enabled),
        cache_entries=len(state.cache) if state.cache is not None else 0,
        cache_max_entries=state.cache.max_entries if state.cache is not None else None,
        watches=watches,
    )
