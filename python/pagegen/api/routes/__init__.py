"""API route definitions.

Uses a factory pattern to avoid import-time settings loading.
This allows tests to import modules without requiring all environment
variables to be configured upfront.
"""

from fastapi import APIRouter

from pagegen.api.routes.generation import router as generation_router
from pagegen.api.routes.health import router as health_router
from pagegen.api.routes.queue import router as queue_router


def create_api_router() -> APIRouter:
    """Create and configure the API router.

    Returns:
        Configured APIRouter with all routes registered.
    """
    api_router = APIRouter()
    api_router.include_router(health_router, tags=["health"])
    api_router.include_router(queue_router, tags=["queue"])
    api_router.include_router(generation_router, tags=["generation"])
    return api_router


__all__ = ["create_api_router"]
