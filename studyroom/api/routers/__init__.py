"""API routers."""

from .conversion import router as conversion_router
from .health import router as health_router
from .jobs import router as jobs_router
from .pages import router as pages_router
from .pages import study_room_router

__all__ = [
    "conversion_router",
    "health_router",
    "jobs_router",
    "pages_router",
    "study_room_router",
]
