"""API v1 endpoints."""

from fastapi import APIRouter

from .entries import router as entries_router

router = APIRouter(prefix="/api/v1")
router.include_router(entries_router)

__all__ = [
    "entries_router",
    "router",
]
