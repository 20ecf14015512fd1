"""
Post Query Service

Serves filtered, paginated views over the published subset of blog posts,
resolves single posts by slug (with a best-effort view counter), and handles
the authoring operations. All persistence goes through a ``PostStore``; the
optional Redis cache only accelerates slug lookups.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Set, Union
from uuid import uuid4

from pydantic import BaseModel, ValidationError as PydanticValidationError

from ...exceptions import (
    ConflictError,
    NotFoundError,
    StorageUnavailableError,
    ValidationError,
    field_errors,
)
from ..models.blog import (
    ALLOWED_STATUS_TRANSITIONS,
    AuthorRef,
    BlogListResponse,
    BlogPost,
    BlogPostBase,
    BlogPostCreate,
    BlogPostUpdate,
    BlogStatus,
    PostFilter,
)
from ..stores.base import PostQuery, PostStore
from .blog_text import estimate_read_time, slugify
from .redis_cache import blog_post_key, cache_delete, cache_get, cache_set

logger = logging.getLogger(__name__)

# Patchable fields that may not be cleared with an explicit null.
NON_NULLABLE_FIELDS = (
    "title", "slug", "excerpt", "content", "category", "tags",
    "status", "author", "is_featured", "seo_keywords",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class BlogServiceOptions:
    """Everything the service needs, passed in explicitly."""
    store: PostStore
    cache: Optional[Any] = None  # redis.asyncio.Redis, or None to disable caching
    default_page_size: int = 10
    max_page_size: int = 50
    featured_limit: int = 5
    cache_ttl_seconds: int = 3600
    storage_timeout_seconds: float = 5.0

    @classmethod
    def from_settings(cls, settings, store: PostStore, cache=None) -> "BlogServiceOptions":
        return cls(
            store=store,
            cache=cache,
            default_page_size=settings.default_page_size,
            max_page_size=settings.max_page_size,
            featured_limit=settings.featured_limit,
            cache_ttl_seconds=settings.cache_ttl_seconds,
            storage_timeout_seconds=settings.storage_timeout_seconds,
        )


class PostQueryService:
    """
    Listing, lookup and authoring operations over blog posts.

    Visibility: public operations only ever return ``published`` posts. A
    draft or archived post looked up by slug is reported as not found, the
    same as a slug that never existed.
    """

    def __init__(
        self,
        options: BlogServiceOptions,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.options = options
        self.store = options.store
        self.cache = options.cache
        self._now = clock or _utcnow
        self._pending_increments: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _store_call(self, operation: str, awaitable):
        """Await a store call, bounded by the configured timeout."""
        timeout = self.options.storage_timeout_seconds
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as exc:
            logger.error("[Blog] Store %s timed out after %ss", operation, timeout)
            raise StorageUnavailableError(f"Post store timed out during {operation}", cause=exc) from exc

    @staticmethod
    def _coerce(model_cls, data: Union[BaseModel, dict]):
        if isinstance(data, model_cls):
            return data
        if isinstance(data, BaseModel):
            data = data.model_dump(exclude_unset=True)
        try:
            return model_cls.model_validate(data)
        except PydanticValidationError as exc:
            details = field_errors(exc.errors())
            fields = ", ".join(d["field"] for d in details)
            raise ValidationError(f"Invalid fields: {fields}", details) from exc

    def _page_params(self, page: Optional[int], page_size: Optional[int]) -> tuple[int, int]:
        if page is None:
            page = 1
        if not _is_int(page) or page < 1:
            raise ValidationError.for_field("page", "must be a positive integer")

        if page_size is None:
            page_size = self.options.default_page_size
        if not _is_int(page_size) or page_size < 1:
            raise ValidationError.for_field("limit", "must be a positive integer")
        return page, min(page_size, self.options.max_page_size)

    @staticmethod
    def _filter_query(filters: Union[PostFilter, dict, None]) -> PostQuery:
        if filters is None:
            return PostQuery()
        if isinstance(filters, dict):
            filters = PostQueryService._coerce(PostFilter, filters)

        values = {}
        for field in ("category", "tag", "search", "author"):
            value = getattr(filters, field)
            if value is None:
                continue
            value = value.strip()
            if not value:
                raise ValidationError.for_field(field, "must not be empty")
            values[field] = value
        return PostQuery(**values)

    async def _paged(self, query: PostQuery, page: int, page_size: int) -> BlogListResponse:
        offset = (page - 1) * page_size
        posts, total = await self._store_call("list", self.store.find_paged(query, offset, page_size))
        total_pages = math.ceil(total / page_size)
        return BlogListResponse(
            posts=posts,
            total=total,
            page=page,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )

    async def _invalidate(self, *slugs: str) -> None:
        if self.cache is None:
            return
        await cache_delete(
            self.cache,
            *{blog_post_key(s) for s in slugs},
            timeout=self.options.storage_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Public reads
    # ------------------------------------------------------------------

    async def list_posts(
        self,
        filters: Union[PostFilter, dict, None] = None,
        page: Optional[int] = 1,
        page_size: Optional[int] = None,
    ) -> BlogListResponse:
        """
        One page of published posts, newest first.

        Filters are AND-combined: exact category, tag membership,
        case-insensitive search over title/excerpt/content, case-insensitive
        author name substring. ``page_size`` above the maximum is capped.
        """
        page, page_size = self._page_params(page, page_size)
        query = self._filter_query(filters)
        return await self._paged(query, page, page_size)

    async def get_featured(self, limit: Optional[int] = None) -> List[BlogPost]:
        if limit is None:
            limit = self.options.featured_limit
        if not _is_int(limit) or limit < 1:
            raise ValidationError.for_field("limit", "must be a positive integer")
        limit = min(limit, self.options.max_page_size)

        query = PostQuery(featured_only=True)
        posts, _ = await self._store_call("featured list", self.store.find_paged(query, 0, limit))
        return posts

    async def get_by_slug(self, slug: str) -> BlogPost:
        """
        Resolve a published post by slug and count a view.

        The returned post carries the view count from before this read. The
        increment runs as a background task against the store, even on a
        cache hit, and its failure never reaches the caller.
        """
        slug = (slug or "").strip()
        if not slug:
            raise ValidationError.for_field("slug", "must not be empty")

        post = await self._cached_post(slug)
        if post is None:
            post = await self._store_call("slug lookup", self.store.find_by_slug(slug))
            if post is None or not post.is_published:
                raise NotFoundError("Blog post not found")
            if self.cache is not None:
                await cache_set(
                    self.cache,
                    blog_post_key(slug),
                    post.model_dump(mode="json"),
                    ttl=self.options.cache_ttl_seconds,
                    timeout=self.options.storage_timeout_seconds,
                )

        self._schedule_view_increment(post.id)
        return post

    async def _cached_post(self, slug: str) -> Optional[BlogPost]:
        if self.cache is None:
            return None
        data = await cache_get(
            self.cache, blog_post_key(slug), timeout=self.options.storage_timeout_seconds
        )
        if data is None:
            return None
        try:
            post = BlogPost.model_validate(data)
        except PydanticValidationError as e:
            logger.warning("[Blog] Discarding malformed cache entry for %s: %s", slug, e)
            return None
        return post if post.is_published else None

    def _schedule_view_increment(self, post_id: str) -> None:
        task = asyncio.create_task(self._increment_views(post_id))
        self._pending_increments.add(task)
        task.add_done_callback(self._pending_increments.discard)

    async def _increment_views(self, post_id: str) -> None:
        try:
            await self._store_call(
                "view increment", self.store.increment_counter(post_id, "view_count", 1)
            )
        except Exception as e:
            logger.warning("[Blog] View count increment failed for %s: %s", post_id, e)

    async def drain(self) -> None:
        """Wait for every scheduled view increment to finish."""
        while self._pending_increments:
            await asyncio.gather(*list(self._pending_increments), return_exceptions=True)

    async def list_categories(self) -> List[str]:
        return await self._store_call("category listing", self.store.list_categories(BlogStatus.PUBLISHED))

    async def list_tags(self) -> List[str]:
        return await self._store_call("tag listing", self.store.list_tags(BlogStatus.PUBLISHED))

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def list_all_posts(
        self,
        status: Union[BlogStatus, str, None] = None,
        page: Optional[int] = 1,
        page_size: Optional[int] = None,
    ) -> BlogListResponse:
        """Every post (or every post in one status), for the admin dashboard."""
        page, page_size = self._page_params(page, page_size)
        if status is not None and not isinstance(status, BlogStatus):
            try:
                status = BlogStatus(status)
            except ValueError:
                raise ValidationError.for_field("status", f"unknown status '{status}'")
        return await self._paged(PostQuery(status=status), page, page_size)

    async def create_post(
        self,
        data: Union[BlogPostCreate, dict],
        author: Optional[AuthorRef] = None,
    ) -> BlogPost:
        payload = self._coerce(BlogPostCreate, data)

        # The authenticated caller wins; a body author only applies to direct imports.
        author = author or payload.author
        if author is None:
            raise ValidationError.for_field("author", "an author is required")

        slug = payload.slug or slugify(payload.title)
        if not slug:
            raise ValidationError.for_field("slug", "could not be derived from the title, supply one")

        existing = await self._store_call("slug lookup", self.store.find_by_slug(slug))
        if existing is not None:
            raise ConflictError(f"Slug '{slug}' already exists")

        now = _as_utc(self._now())
        published_at = None
        if payload.status == BlogStatus.PUBLISHED:
            published_at = _as_utc(payload.published_at) if payload.published_at else now

        post = BlogPost(
            **payload.model_dump(include=set(BlogPostBase.model_fields)),
            id=str(uuid4()),
            slug=slug,
            status=payload.status,
            author=author,
            read_time=estimate_read_time(payload.content),
            published_at=published_at,
            created_at=now,
            updated_at=now,
        )
        await self._store_call("create", self.store.upsert(post))
        logger.info("[Blog] Created post %s (%s, %s)", post.id, post.slug, post.status.value)
        return post

    async def update_post(self, post_id: str, patch: Union[BlogPostUpdate, dict]) -> BlogPost:
        """
        Apply a partial update.

        ``published_at`` is set only on the first move into ``published``;
        re-publishing an archived post keeps the original date. Cache entries
        for both the old and the new slug are dropped after the write.
        """
        changes = self._coerce(BlogPostUpdate, patch).model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No fields to update")
        for field in NON_NULLABLE_FIELDS:
            if field in changes and changes[field] is None:
                raise ValidationError.for_field(field, "cannot be null")

        existing = await self._store_call("id lookup", self.store.find_by_id(post_id))
        if existing is None:
            raise NotFoundError("Blog post not found")

        new_status = changes.get("status", existing.status)
        if new_status != existing.status and new_status not in ALLOWED_STATUS_TRANSITIONS[existing.status]:
            raise ValidationError.for_field(
                "status", f"cannot move from {existing.status.value} to {new_status.value}"
            )

        new_slug = changes.get("slug", existing.slug)
        if new_slug != existing.slug:
            clash = await self._store_call("slug lookup", self.store.find_by_slug(new_slug))
            if clash is not None and clash.id != existing.id:
                raise ConflictError(f"Slug '{new_slug}' already exists")
            logger.info("[Blog] Changing slug of %s from %s to %s", post_id, existing.slug, new_slug)

        now = _as_utc(self._now())
        data = existing.model_dump()
        data.update(changes)
        if new_status == BlogStatus.PUBLISHED and existing.published_at is None:
            data["published_at"] = now
        if "content" in changes:
            data["read_time"] = estimate_read_time(changes["content"])
        data["updated_at"] = now
        updated = self._coerce(BlogPost, data)

        await self._store_call("update", self.store.upsert(updated))
        await self._invalidate(existing.slug, updated.slug)
        return updated

    async def delete_post(self, post_id: str) -> None:
        existing = await self._store_call("id lookup", self.store.find_by_id(post_id))
        if existing is None:
            raise NotFoundError("Blog post not found")

        deleted = await self._store_call("delete", self.store.delete(post_id))
        if not deleted:
            raise NotFoundError("Blog post not found")

        await self._invalidate(existing.slug)
        logger.info("[Blog] Deleted post %s (%s)", post_id, existing.slug)


# Global service instance, wired up in the app lifespan
_blog_service: Optional[PostQueryService] = None


def init_blog_service(options: BlogServiceOptions) -> PostQueryService:
    global _blog_service
    _blog_service = PostQueryService(options)
    return _blog_service


def get_blog_service() -> PostQueryService:
    if _blog_service is None:
        raise RuntimeError("Blog service not initialized. Call init_blog_service first.")
    return _blog_service


async def close_blog_service() -> None:
    global _blog_service
    if _blog_service is not None:
        await _blog_service.drain()
        await _blog_service.store.close()
        _blog_service = None
