"""
Post Storage Port

This module defines the typing.Protocol interface every post store adapter
implements, plus the filtering and ordering rules shared by the adapters that
cannot push them down into a query language (memory, DynamoDB scans).

The post query service only ever talks to a ``PostStore``; it never branches on
which backend is configured.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Protocol, Tuple

from ..models.blog import BlogPost, BlogStatus

# Counters a store must be able to add to atomically.
COUNTER_FIELDS = ("view_count", "like_count", "comment_count")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class PostQuery:
    """Filters for a paged scan. ``None`` means "no constraint"."""
    status: Optional[BlogStatus] = BlogStatus.PUBLISHED
    category: Optional[str] = None     # exact, case-sensitive
    tag: Optional[str] = None          # membership in tags
    search: Optional[str] = None       # case-insensitive over title/excerpt/content
    author: Optional[str] = None       # case-insensitive over author display name
    featured_only: bool = False


class PostStore(Protocol):
    """Protocol defining the interface for blog post persistence.

    Implementations should provide methods for:
    - Paged, filtered listing ordered newest-published first
    - Lookups by slug and by id, regardless of status
    - Whole-record upserts and hard deletes
    - Atomic counter increments
    - Distinct categories and tags

    Implementations raise ``StorageUnavailableError`` for backend failures and
    ``ConflictError`` when a write would break slug uniqueness. They never
    report a failure as an empty result.
    """

    name: str

    async def find_paged(
        self, query: PostQuery, offset: int, limit: int
    ) -> Tuple[List[BlogPost], int]:
        """Return one page of matching posts and the total match count.

        Args:
            query: Filters to apply.
            offset: Number of matching posts to skip.
            limit: Maximum number of posts to return.

        Returns:
            Tuple of (posts, total) where total counts every match before paging.
        """
        ...

    async def find_by_slug(self, slug: str) -> Optional[BlogPost]:
        """Return the post with this slug in any status, or None."""
        ...

    async def find_by_id(self, post_id: str) -> Optional[BlogPost]:
        """Return the post with this id in any status, or None."""
        ...

    async def upsert(self, post: BlogPost) -> None:
        """Insert or fully replace a post record."""
        ...

    async def delete(self, post_id: str) -> bool:
        """Hard delete a post. Returns False when nothing was deleted."""
        ...

    async def increment_counter(self, post_id: str, field: str, amount: int = 1) -> None:
        """Atomically add ``amount`` to one of COUNTER_FIELDS."""
        ...

    async def list_categories(self, status: BlogStatus = BlogStatus.PUBLISHED) -> List[str]:
        """Distinct categories among posts with ``status``."""
        ...

    async def list_tags(self, status: BlogStatus = BlogStatus.PUBLISHED) -> List[str]:
        """Distinct tags among posts with ``status``."""
        ...

    async def close(self) -> None:
        """Release any client resources."""
        ...


def matches_query(post: BlogPost, query: PostQuery) -> bool:
    """True when ``post`` satisfies every filter in ``query`` (AND semantics)."""
    if query.status is not None and post.status != query.status:
        return False
    if query.featured_only and not post.is_featured:
        return False
    if query.category is not None and post.category != query.category:
        return False
    if query.tag is not None and query.tag not in post.tags:
        return False
    if query.search is not None:
        needle = query.search.lower()
        haystacks = (post.title, post.excerpt, post.content)
        if not any(needle in text.lower() for text in haystacks):
            return False
    if query.author is not None and query.author.lower() not in post.author.name.lower():
        return False
    return True


def listing_sort_key(post: BlogPost):
    """
    Ordering key for listings, to be used with ``reverse=True``.

    Newest ``published_at`` first, ties broken by ``id`` descending. Posts that
    were never published (admin listings only) sort after every dated post,
    newest ``created_at`` first.
    """
    if post.published_at is not None:
        return (1, post.published_at, post.id)
    return (0, post.created_at or _EPOCH, post.id)


def sort_posts(posts: Iterable[BlogPost]) -> List[BlogPost]:
    return sorted(posts, key=listing_sort_key, reverse=True)


def page_of(posts: List[BlogPost], query: PostQuery, offset: int, limit: int) -> Tuple[List[BlogPost], int]:
    """Filter, order and slice an unordered collection of posts."""
    matching = sort_posts(p for p in posts if matches_query(p, query))
    return matching[offset:offset + limit], len(matching)


def distinct_in_order(values: Iterable[str]) -> List[str]:
    seen: dict[str, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return list(seen)
