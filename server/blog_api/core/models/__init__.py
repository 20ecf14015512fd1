from .auth import CurrentUser, TokenPayload
from .blog import (
    AuthorRef,
    BlogListResponse,
    BlogMessageResponse,
    BlogPost,
    BlogPostCreate,
    BlogPostCreatedResponse,
    BlogPostUpdate,
    BlogStatus,
    PostFilter,
)

__all__ = [
    "CurrentUser",
    "TokenPayload",
    "AuthorRef",
    "BlogListResponse",
    "BlogMessageResponse",
    "BlogPost",
    "BlogPostCreate",
    "BlogPostCreatedResponse",
    "BlogPostUpdate",
    "BlogStatus",
    "PostFilter",
]
