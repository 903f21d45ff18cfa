"""Health, readiness and metrics endpoints."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from . import __version__
from .service import IngestService


def create_app(service: IngestService, manage_lifecycle: bool = True) -> FastAPI:
    """Build the app; with ``manage_lifecycle`` the lifespan starts/stops ``service``."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_lifecycle:
            service.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                service.stop()

    app = FastAPI(title="Plant Telemetry Ingest", version=__version__, lifespan=lifespan)

    @app.get("/health", tags=["health"])
    def health():
        """Liveness probe, always returns ok if process is running."""
        return {"status": "ok"}

    @app.get("/ready", tags=["health"])
    def ready():
        """Readiness probe: store reachable and broker connected."""
        if not service.ready():
            raise HTTPException(status_code=503, detail="not ready")
        return {"status": "ready"}

    @app.get("/stats", tags=["health"])
    def stats():
        return service.health_check()

    @app.get("/metrics", tags=["health"])
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
