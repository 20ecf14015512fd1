"""Core routes aggregation."""

from fastapi import APIRouter

from .blog import router as blog_router

# Create main core router
core_router = APIRouter()

# Mount sub-routers
core_router.include_router(blog_router, prefix="/blog", tags=["blog"])

__all__ = ["core_router", "blog_router"]
