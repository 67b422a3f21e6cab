"""FastAPI application factory for kubedelta.

Usage::

    from kubedelta.api.app import create_app

    app = create_app(supervisor=supervisor, cache=cache, detector=detector)

The factory is used by both the production bootstrap (``kubedelta.app``) and
unit tests.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from kubedelta.api.routes import probe_router, router
from kubedelta.api.schemas import ErrorResponse

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def create_app(
    supervisor: Any = None,
    cache: Any = None,
    detector: Any = None,
) -> FastAPI:
    """Create and configure the kubedelta FastAPI application.

    Args:
        supervisor: WatchSupervisor, for loop state and health.
        cache:      ObjectCache, for entry counts.
        detector:   ChangeDetector, for the send-enabled flag.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from kubedelta import __version__

    app = FastAPI(
        title="kubedelta",
        summary="Kubernetes change feed health and status",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url=None,
        openapi_url="/api/v1/openapi.json",
    )

    app.state.supervisor = supervisor
    app.state.cache = cache
    app.state.detector = detector

    app.include_router(probe_router)
    app.include_router(router, prefix=_API_PREFIX)

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app
