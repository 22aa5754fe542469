"""FastAPI application entry point: CORS, edge routing and upstream proxy."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from healthmate_edge.config import Settings, settings
from healthmate_edge.cors import CORS_HEADERS, PermissiveCORSMiddleware
from healthmate_edge.proxy import ProxyForwarder, ProxyObserver
from healthmate_edge.routers import edge
from healthmate_edge.schemas import UpstreamTarget
from healthmate_edge.static import AssetRoot

logger = logging.getLogger(__name__)


def create_app(
    config: Settings = settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    observer: Optional[ProxyObserver] = None,
) -> FastAPI:
    """Build the edge application.

    The upstream target is fixed here for the lifetime of the app; changing
    it means building a new app (restarting the process).
    """
    target = UpstreamTarget.from_settings(config)
    assets = AssetRoot(config.STATIC_DIR, config.INDEX_FILE)
    forwarder = ProxyForwarder(target, transport=transport, observer=observer)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application startup and shutdown events."""
        yield
        # Shutdown: release pooled upstream connections
        await forwarder.aclose()

    app = FastAPI(
        title="HealthMate Edge",
        description=(
            "Serves the HealthMate dashboard build and forwards API calls "
            "to the HealthMate backend."
        ),
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.target = target
    app.state.assets = assets
    app.state.forwarder = forwarder

    app.add_middleware(PermissiveCORSMiddleware)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error"},
            headers=CORS_HEADERS,
        )

    app.include_router(edge.router)
    return app


app = create_app()


def run() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    target = app.state.target
    rule = target.rule
    logger.info(f"Server running on port {settings.PORT}")
    logger.info(f"Backend: {target.base_url}")
    logger.info(f"Proxy: {rule.prefix} -> {target.base_url}{rule.replacement} ({rule.policy.value})")
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
