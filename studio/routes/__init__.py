"""Top-level router assembly."""

from fastapi import APIRouter

from .auth import router as auth_router
from .projects import catalog_router, router as projects_router


def get_api_router() -> APIRouter:
    api = APIRouter()
    api.include_router(auth_router)
    api.include_router(catalog_router)
    api.include_router(projects_router)
    return api


__all__ = ["get_api_router"]
