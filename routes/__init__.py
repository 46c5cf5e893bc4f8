"""
API route modules.

Each module defines routes for one area; prefixes live in the routers.
"""

from routes.imports import router as imports_router
from routes.jobs import router as jobs_router
from routes.media import router as media_router
from routes.pricing import router as pricing_router

__all__ = [
    "imports_router",
    "jobs_router",
    "media_router",
    "pricing_router",
]
