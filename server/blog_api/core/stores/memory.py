"""In-process post store, used for local development and tests."""

from typing import Dict, List, Optional, Tuple

from ...exceptions import ConflictError, NotFoundError, ValidationError
from ..models.blog import BlogPost, BlogStatus
from .base import COUNTER_FIELDS, PostQuery, distinct_in_order, page_of


class InMemoryPostStore:
    """Dict-backed store. Records are copied in and out so callers never share state."""

    name = "memory"

    def __init__(self, posts: Optional[List[BlogPost]] = None):
        self._posts: Dict[str, BlogPost] = {}
        for post in posts or []:
            self._posts[post.id] = post.model_copy(deep=True)

    async def find_paged(self, query: PostQuery, offset: int, limit: int) -> Tuple[List[BlogPost], int]:
        page, total = page_of(list(self._posts.values()), query, offset, limit)
        return [p.model_copy(deep=True) for p in page], total

    async def find_by_slug(self, slug: str) -> Optional[BlogPost]:
        for post in self._posts.values():
            if post.slug == slug:
                return post.model_copy(deep=True)
        return None

    async def find_by_id(self, post_id: str) -> Optional[BlogPost]:
        post = self._posts.get(post_id)
        return post.model_copy(deep=True) if post else None

    async def upsert(self, post: BlogPost) -> None:
        for existing in self._posts.values():
            if existing.slug == post.slug and existing.id != post.id:
                raise ConflictError(f"Slug '{post.slug}' already exists")
        stored = post.model_copy(deep=True)
        current = self._posts.get(post.id)
        if current is not None:
            # Counters only move through increment_counter.
            for field in COUNTER_FIELDS:
                setattr(stored, field, getattr(current, field))
        self._posts[post.id] = stored

    async def delete(self, post_id: str) -> bool:
        return self._posts.pop(post_id, None) is not None

    async def increment_counter(self, post_id: str, field: str, amount: int = 1) -> None:
        if field not in COUNTER_FIELDS:
            raise ValidationError.for_field("field", f"'{field}' is not a counter")
        post = self._posts.get(post_id)
        if post is None:
            raise NotFoundError("Blog post not found")
        setattr(post, field, getattr(post, field) + amount)

    async def list_categories(self, status: BlogStatus = BlogStatus.PUBLISHED) -> List[str]:
        return distinct_in_order(p.category for p in self._posts.values() if p.status == status)

    async def list_tags(self, status: BlogStatus = BlogStatus.PUBLISHED) -> List[str]:
        return distinct_in_order(
            tag for p in self._posts.values() if p.status == status for tag in p.tags
        )

    async def close(self) -> None:
        return None
