"""PostgreSQL post store built on the shared asyncpg pool."""

import functools
import json
import logging
from typing import List, Optional, Tuple

import asyncpg

from ...database import get_connection
from ...exceptions import ConflictError, NotFoundError, StorageUnavailableError, ValidationError
from ..models.blog import AuthorRef, BlogPost, BlogStatus
from .base import COUNTER_FIELDS, PostQuery

logger = logging.getLogger(__name__)

_COLUMNS = """
    id, title, slug, excerpt, content, author_id, author_name, category, tags,
    status, featured_image, is_featured, read_time, view_count, like_count,
    comment_count, seo_title, seo_description, seo_keywords, published_at,
    created_at, updated_at
"""

# Published rows newest first; unpublished rows (admin listings) after them.
_ORDER_BY = """
    ORDER BY published_at DESC NULLS LAST,
             (CASE WHEN published_at IS NULL THEN created_at END) DESC NULLS LAST,
             id DESC
"""


def _storage_errors(operation: str):
    """Translate asyncpg failures into the service's error taxonomy."""
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except asyncpg.UniqueViolationError as exc:
                raise ConflictError("Slug already exists") from exc
            except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
                logger.error("[Store] postgres %s failed: %s", operation, exc)
                raise StorageUnavailableError(f"Post store unavailable during {operation}", cause=exc) from exc
        return wrapper
    return decorator


def _escape_like(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _json_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, str):
        return json.loads(value)
    return list(value)


def row_to_post(row) -> BlogPost:
    data = dict(row)
    author = AuthorRef(id=data.pop("author_id"), name=data.pop("author_name"))
    data["tags"] = _json_list(data.get("tags"))
    data["seo_keywords"] = _json_list(data.get("seo_keywords"))
    return BlogPost(author=author, **data)


def build_where(query: PostQuery) -> Tuple[str, list]:
    """Build a WHERE clause and its positional params for ``query``."""
    conditions = []
    params = []
    param_idx = 1

    if query.status is not None:
        conditions.append(f"status = ${param_idx}")
        params.append(query.status.value)
        param_idx += 1

    if query.featured_only:
        conditions.append("is_featured = true")

    if query.category is not None:
        conditions.append(f"category = ${param_idx}")
        params.append(query.category)
        param_idx += 1

    if query.tag is not None:
        conditions.append(f"tags @> ${param_idx}::jsonb")
        params.append(json.dumps([query.tag]))
        param_idx += 1

    if query.search is not None:
        conditions.append(
            f"(title ILIKE ${param_idx} OR excerpt ILIKE ${param_idx} OR content ILIKE ${param_idx})"
        )
        params.append(_escape_like(query.search))
        param_idx += 1

    if query.author is not None:
        conditions.append(f"author_name ILIKE ${param_idx}")
        params.append(_escape_like(query.author))
        param_idx += 1

    where_clause = ""
    if conditions:
        where_clause = "WHERE " + " AND ".join(conditions)
    return where_clause, params


class PostgresPostStore:
    """Post store backed by the ``blog_posts`` table."""

    name = "postgres"

    def __init__(self, connection_factory=get_connection):
        self._connection = connection_factory

    @_storage_errors("list")
    async def find_paged(self, query: PostQuery, offset: int, limit: int) -> Tuple[List[BlogPost], int]:
        where_clause, params = build_where(query)
        param_idx = len(params) + 1

        async with self._connection() as conn:
            total = await conn.fetchval(f"SELECT COUNT(*) FROM blog_posts {where_clause}", *params)
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS}
                FROM blog_posts
                {where_clause}
                {_ORDER_BY}
                LIMIT ${param_idx} OFFSET ${param_idx + 1}
                """,
                *params,
                limit,
                offset,
            )
        return [row_to_post(row) for row in rows], total or 0

    @_storage_errors("slug lookup")
    async def find_by_slug(self, slug: str) -> Optional[BlogPost]:
        async with self._connection() as conn:
            row = await conn.fetchrow(f"SELECT {_COLUMNS} FROM blog_posts WHERE slug = $1", slug)
        return row_to_post(row) if row else None

    @_storage_errors("id lookup")
    async def find_by_id(self, post_id: str) -> Optional[BlogPost]:
        async with self._connection() as conn:
            row = await conn.fetchrow(f"SELECT {_COLUMNS} FROM blog_posts WHERE id = $1", post_id)
        return row_to_post(row) if row else None

    @_storage_errors("upsert")
    async def upsert(self, post: BlogPost) -> None:
        async with self._connection() as conn:
            # Counters are left alone on update so concurrent increments survive.
            await conn.execute(
                """
                INSERT INTO blog_posts (
                    id, title, slug, excerpt, content, author_id, author_name,
                    category, tags, status, featured_image, is_featured, read_time,
                    view_count, like_count, comment_count, seo_title,
                    seo_description, seo_keywords, published_at, created_at, updated_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::jsonb, $10, $11, $12, $13,
                        $14, $15, $16, $17, $18, $19::jsonb, $20, $21, $22)
                ON CONFLICT (id) DO UPDATE SET
                    title = EXCLUDED.title,
                    slug = EXCLUDED.slug,
                    excerpt = EXCLUDED.excerpt,
                    content = EXCLUDED.content,
                    author_id = EXCLUDED.author_id,
                    author_name = EXCLUDED.author_name,
                    category = EXCLUDED.category,
                    tags = EXCLUDED.tags,
                    status = EXCLUDED.status,
                    featured_image = EXCLUDED.featured_image,
                    is_featured = EXCLUDED.is_featured,
                    read_time = EXCLUDED.read_time,
                    seo_title = EXCLUDED.seo_title,
                    seo_description = EXCLUDED.seo_description,
                    seo_keywords = EXCLUDED.seo_keywords,
                    published_at = COALESCE(blog_posts.published_at, EXCLUDED.published_at),
                    updated_at = EXCLUDED.updated_at
                """,
                post.id,
                post.title,
                post.slug,
                post.excerpt,
                post.content,
                post.author.id,
                post.author.name,
                post.category,
                json.dumps(post.tags),
                post.status.value,
                post.featured_image,
                post.is_featured,
                post.read_time,
                post.view_count,
                post.like_count,
                post.comment_count,
                post.seo_title,
                post.seo_description,
                json.dumps(post.seo_keywords),
                post.published_at,
                post.created_at,
                post.updated_at,
            )

    @_storage_errors("delete")
    async def delete(self, post_id: str) -> bool:
        async with self._connection() as conn:
            result = await conn.execute("DELETE FROM blog_posts WHERE id = $1", post_id)
        return result != "DELETE 0"

    @_storage_errors("counter increment")
    async def increment_counter(self, post_id: str, field: str, amount: int = 1) -> None:
        if field not in COUNTER_FIELDS:
            raise ValidationError.for_field("field", f"'{field}' is not a counter")
        async with self._connection() as conn:
            result = await conn.execute(
                f"UPDATE blog_posts SET {field} = {field} + $1 WHERE id = $2",
                amount,
                post_id,
            )
        if result == "UPDATE 0":
            raise NotFoundError("Blog post not found")

    @_storage_errors("category listing")
    async def list_categories(self, status: BlogStatus = BlogStatus.PUBLISHED) -> List[str]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                "SELECT DISTINCT category FROM blog_posts WHERE status = $1", status.value
            )
        return [row["category"] for row in rows]

    @_storage_errors("tag listing")
    async def list_tags(self, status: BlogStatus = BlogStatus.PUBLISHED) -> List[str]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                """
                SELECT DISTINCT jsonb_array_elements_text(tags) AS tag
                FROM blog_posts
                WHERE status = $1
                """,
                status.value,
            )
        return [row["tag"] for row in rows]

    async def close(self) -> None:
        # The pool is owned by blog_api.database and closed at shutdown.
        return None
