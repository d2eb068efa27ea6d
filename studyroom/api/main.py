"""
FastAPI application with assembled routers.

Initializes FastAPI app with all API routers and configures uvicorn server.

Dependencies: fastapi, studyroom.api.routers, uvicorn
System role: API entry point with router assembly and server launch
"""

from contextlib import asynccontextmanager

import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from studyroom.configs import get_settings
from studyroom.dependencies import get_service_cache
from studyroom.observability import configure_logging
from studyroom.observability.middleware import CorrelationMiddleware, RequestLoggingMiddleware
from .routers import (
    conversion_router,
    health_router,
    jobs_router,
    pages_router,
    study_room_router,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Handles startup and shutdown events.
    """
    configure_logging(get_settings().log_level)
    logger = logging.getLogger("uvicorn")

    # Startup
    logger.info("Pre-warming service cache...")
    cache = get_service_cache()
    _ = cache.retrieval
    _ = cache.diagnostics
    _ = cache.job_service
    logger.info("Service cache pre-warmed")

    yield

    # Shutdown
    cache.clear()
    logger.info("Service cache cleared")


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application with routers.

    Returns:
        FastAPI: Configured application instance with all routers registered
    """
    app = FastAPI(
        title="Study Room Page API",
        description="Cached page images for the study room document viewer",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add observability middleware
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationMiddleware)

    # Register all routers with /api/v1 prefix for versioning
    app.include_router(health_router, prefix="/api/v1")
    app.include_router(pages_router, prefix="/api/v1")
    app.include_router(conversion_router, prefix="/api/v1")
    app.include_router(study_room_router, prefix="/api/v1")
    app.include_router(jobs_router, prefix="/api/v1")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "studyroom.api.main:app",
        host="0.0.0.0",
        port=8000,
    )
