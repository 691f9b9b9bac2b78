"""API routers for the audit log engine."""
from fastapi import APIRouter

from . import events, health, maintenance


def get_api_router() -> APIRouter:
    """Return the root API router."""

    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(events.router)
    api_router.include_router(maintenance.router)
    return api_router
