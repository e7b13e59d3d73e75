import time
import uuid
from contextlib import asynccontextmanager
from typing import Callable, Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .api import ingest, operator, ws
from .config import Settings, get_settings
from .logging_config import configure_logging
from .metrics import ALERTS_CACHED, REQUESTS_TOTAL, REQUEST_ERRORS_TOTAL, REQUEST_LATENCY_MS
from .state import CloudState

logger = structlog.get_logger("gsu_cloud")


@asynccontextmanager
async def lifespan(app: FastAPI):
    cloud: CloudState = app.state.cloud
    logger.info("gsu_cloud_started", storage_dir=str(cloud.captures.root))
    try:
        yield
    finally:
        logger.info("gsu_cloud_stopped", alerts_dropped=len(cloud.alerts))


def create_app(settings: Optional[Settings] = None, clock: Callable[[], float] = time.time) -> FastAPI:
    """Build the service with a fresh in-memory state."""

    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="GSU Cloud", lifespan=lifespan)
    app.state.cloud = CloudState.from_settings(settings, clock=clock)
    app.state.live_feed = ws.LiveFeed()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(ingest.router, prefix="/ingest", tags=["ingest"])
    app.include_router(operator.router, prefix="/api", tags=["operator"])
    app.include_router(ws.router, tags=["ws"])

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        req_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = req_id
        auth_label = "token" if settings.api_token else "none"
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        response.headers["X-Request-ID"] = req_id

        route = request.scope.get("route")
        path_label = getattr(route, "path", request.url.path)
        REQUESTS_TOTAL.labels(method=request.method, path=path_label, status=response.status_code, auth=auth_label).inc()
        REQUEST_LATENCY_MS.labels(method=request.method, path=path_label).observe(elapsed_ms)
        if response.status_code >= 400:
            REQUEST_ERRORS_TOTAL.labels(method=request.method, path=path_label, status=response.status_code).inc()

        content_length = request.headers.get("content-length")
        try:
            body_size = int(content_length) if content_length is not None else 0
        except ValueError:
            body_size = 0

        logger.info(
            "http_request",
            path=request.url.path,
            method=request.method,
            status=response.status_code,
            request_id=req_id,
            latency_ms=round(elapsed_ms, 2),
            body_size=body_size,
            auth=auth_label,
        )
        return response

    @app.get("/health")
    def health():
        return {"status": "ok", "service": "GSU Cloud Online"}

    @app.get("/metrics")
    def metrics():
        """Prometheus text metrics endpoint."""

        ALERTS_CACHED.set(len(app.state.cloud.alerts))
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    return app


def run() -> None:
    settings = get_settings()
    uvicorn.run("gsu_cloud.main:create_app", factory=True, host=settings.host, port=settings.port)
