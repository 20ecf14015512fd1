"""Blog services: the post query service, slug cache and token helpers."""

from .blog_service import BlogServiceOptions, PostQueryService

__all__ = ["BlogServiceOptions", "PostQueryService"]
