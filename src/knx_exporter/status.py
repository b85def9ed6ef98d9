"""
FastAPI surface exposing metrics and health probes.

``/metrics`` is a plain ``def`` endpoint, so FastAPI renders it on a worker
thread and scrapes read the snapshot store concurrently with the writer task.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CollectorRegistry
from prometheus_client.exposition import choose_encoder

from .core.config import HttpSettings
from .core.supervisor import Supervisor

logger = logging.getLogger(__name__)


class StatusServer:
    """Serve ``/metrics``, ``/live`` and ``/ready`` for a supervisor."""

    def __init__(
        self,
        supervisor: Supervisor,
        registry: CollectorRegistry,
        settings: HttpSettings | None = None,
        *,
        config_factory: Callable[..., uvicorn.Config] | None = None,
        server_factory: Callable[[uvicorn.Config], uvicorn.Server] | None = None,
    ) -> None:
        self._supervisor = supervisor
        self._registry = registry
        self._settings = settings or HttpSettings()
        self._config_factory = config_factory or uvicorn.Config
        self._server_factory = server_factory or uvicorn.Server
        self._server: uvicorn.Server | None = None
        self._server_task: asyncio.Task[None] | None = None
        self.app = self._build_app()

    async def start(self) -> None:
        if not self._settings.serve_http:
            logger.info("Status server running in embedded-only mode (no HTTP server).")
            return
        config = self._config_factory(
            app=self.app,
            host=self._settings.host,
            port=self._settings.port,
            loop="asyncio",
            lifespan="off",
            log_level="warning",
        )
        self._server = self._server_factory(config)
        self._server_task = asyncio.create_task(self._server.serve(), name="knx-exporter-http")
        logger.info(
            "Serving metrics on http://%s:%s/metrics", self._settings.host, self._settings.port
        )

    async def stop(self) -> None:
        if self._server_task:
            self._server.should_exit = True  # type: ignore[union-attr]
            await asyncio.wait([self._server_task], timeout=1)
            self._server_task = None
        self._server = None

    def _build_app(self) -> FastAPI:
        app = FastAPI(title="KNX Exporter", version="0.1.0")

        @app.get("/metrics")
        def metrics(request: Request) -> Response:
            encoder, content_type = choose_encoder(request.headers.get("accept", ""))
            return Response(content=encoder(self._registry), media_type=content_type)

        @app.get("/live")
        async def live() -> JSONResponse:
            report = self._supervisor.health()
            status_code = 200 if report.status == "healthy" else 503
            return JSONResponse(report.model_dump(), status_code=status_code)

        @app.get("/ready")
        async def ready() -> JSONResponse:
            if self._supervisor.ready:
                return JSONResponse({"status": "ready"})
            return JSONResponse({"status": "starting"}, status_code=503)

        return app


__all__ = ["StatusServer"]
