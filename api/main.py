"""
FastAPI backend for the wind server.

Serves converted GFS wind snapshots:
- GET /latest   newest available snapshot
- GET /nearest  snapshot nearest to a requested time
- GET /pulse    liveness

A background poll scheduler harvests new snapshots from NOAA NOMADS every
15 minutes and sweeps snapshots past the retention window.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from api.config import settings
from api.middleware import setup_middleware, get_request_id
from api.state import get_app_state
from api.routers import snapshots, system
from windserver import __version__
from windserver.errors import RejectedQuery, StoreError

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Start the poll scheduler; on shutdown let the running cycle finish."""
    scheduler = get_app_state().components.scheduler
    if settings.poll_enabled:
        scheduler.start()
    else:
        logger.info("Polling disabled (POLL_ENABLED=false), serving existing snapshots only")
    logger.info(f"Starting server on port {settings.port}")
    try:
        yield
    finally:
        await scheduler.stop()


def create_app() -> FastAPI:
    """
    Application factory.

    Returns:
        FastAPI: Configured application instance
    """
    application = FastAPI(
        title="Wind Server",
        description="Latest and nearest-in-time GFS wind snapshots as JSON.",
        version=__version__,
        lifespan=lifespan,
    )

    setup_middleware(application, debug=settings.is_development)

    # Only whitelisted origins may read snapshots cross-origin
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.whitelist_list,
        allow_credentials=False,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @application.exception_handler(RejectedQuery)
    async def rejected_query_handler(request: Request, exc: RejectedQuery):
        return JSONResponse(
            status_code=400,
            content={"error": "Bad Request", "detail": str(exc), "request_id": get_request_id()},
        )

    @application.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error(f"Store failure serving {request.url.path}: {exc}")
        return JSONResponse(
            status_code=503,
            content={"error": "Service Unavailable", "detail": "Snapshot storage unavailable",
                     "request_id": get_request_id()},
        )

    application.include_router(system.router)
    application.include_router(snapshots.router)
    return application


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "api.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
