"""
Health check API endpoints.

Routes: GET /health, GET /health/db

Dependencies: studyroom.dependencies
System role: Health check HTTP API
"""

import logging

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from studyroom.configs import get_settings
from studyroom.dependencies import get_service_cache

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    message: str
    service: str
    environment: str


router = APIRouter(prefix="/health", tags=["health"])


def _healthy(message: str) -> HealthResponse:
    settings = get_settings()
    return HealthResponse(
        status="healthy",
        message=message,
        service=settings.service_name,
        environment=settings.environment,
    )


@router.get("", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check."""
    return _healthy("Server Healthy")


@router.get("/db", response_model=HealthResponse)
async def health_check_db() -> HealthResponse:
    """Database health check."""
    try:
        async with get_service_cache().session_factory() as session:
            await session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Database health check failed", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database unavailable",
        )
    return _healthy("Database connection OK")
