"""FastAPI application factory.

APP_ROLE selects the mounted routers:
- public: provider webhook and health probes (internet-facing)
- worker: everything public mounts plus the Cloud Tasks handlers
"""

import os
from typing import Literal

from fastapi import APIRouter, FastAPI, Request, Response

from wsmart.observability.correlation import (
    CORRELATION_ID_HEADER,
    correlation_id_from_headers,
    reset_correlation_id,
    set_correlation_id,
)

from .routers import public, worker
from .routes import tasks_transcription, webhooks_whatsapp

AppRole = Literal["public", "worker"]

_PUBLIC_ROUTERS: tuple[APIRouter, ...] = (public.router, webhooks_whatsapp.router)

ROLE_ROUTERS: dict[str, tuple[APIRouter, ...]] = {
    "public": _PUBLIC_ROUTERS,
    "worker": _PUBLIC_ROUTERS + (worker.router, tasks_transcription.router),
}


def _bind_correlation_id(app: FastAPI) -> None:
    """Expose the request's correlation id to loggers and echo it back."""

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = correlation_id_from_headers(request.headers)
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
        finally:
            reset_correlation_id(token)
        response.headers[CORRELATION_ID_HEADER] = cid
        return response


def create_app(role: AppRole | None = None) -> FastAPI:
    """Build the ingest service for `role` (APP_ROLE when omitted, default public).

    Raises:
        ValueError: If the role is unknown.
    """
    role_name = role or os.environ.get("APP_ROLE", "public")
    routers = ROLE_ROUTERS.get(role_name)
    if routers is None:
        raise ValueError(f"Unknown APP_ROLE: {role_name}")

    app = FastAPI(title="WSmart Ingest", docs_url=None, redoc_url=None)
    _bind_correlation_id(app)
    for router in routers:
        app.include_router(router)
    return app
