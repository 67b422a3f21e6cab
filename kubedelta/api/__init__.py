"""REST API layer for kubedelta.

Exposes:
    create_app -- FastAPI application factory.
    build_app  -- Alias for create_app (used by kubedelta.app bootstrap).
"""

from kubedelta.api.app import create_app

build_app = create_app

__all__ = ["build_app", "create_app"]
