import asyncio
import json
from datetime import datetime, timezone

import asyncpg
import pytest

from blog_api.core.models.blog import AuthorRef, BlogPost, BlogStatus
from blog_api.core.stores.base import PostQuery
from blog_api.core.stores.postgres import PostgresPostStore, build_where, row_to_post
from blog_api.exceptions import ConflictError, NotFoundError, StorageUnavailableError, ValidationError

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class _ConnectionContext:
    def __init__(self, conn):
        self._conn = conn

    async def __aenter__(self):
        return self._conn

    async def __aexit__(self, exc_type, exc, tb):
        return False


def _connection_factory(conn):
    return lambda: _ConnectionContext(conn)


def _row(post_id="p1", **overrides):
    row = {
        "id": post_id,
        "title": "Hello",
        "slug": "hello",
        "excerpt": "Excerpt",
        "content": "Body",
        "author_id": "author-1",
        "author_name": "Sarah Johnson",
        "category": "Tech",
        "tags": '["python", "async"]',
        "status": "published",
        "featured_image": None,
        "is_featured": False,
        "read_time": 1,
        "view_count": 4,
        "like_count": 0,
        "comment_count": 0,
        "seo_title": None,
        "seo_description": None,
        "seo_keywords": "[]",
        "published_at": T0,
        "created_at": T0,
        "updated_at": T0,
    }
    row.update(overrides)
    return row


class _RecordingConn:
    def __init__(self, rows=None, total=0, execute_result="INSERT 0 1", error=None):
        self.rows = rows or []
        self.total = total
        self.execute_result = execute_result
        self.error = error
        self.calls: list[tuple[str, str, tuple]] = []

    def _record(self, method, query, args):
        self.calls.append((method, query, args))
        if self.error is not None:
            raise self.error

    async def fetchval(self, query, *args):
        self._record("fetchval", query, args)
        return self.total

    async def fetch(self, query, *args):
        self._record("fetch", query, args)
        return self.rows

    async def fetchrow(self, query, *args):
        self._record("fetchrow", query, args)
        return self.rows[0] if self.rows else None

    async def execute(self, query, *args):
        self._record("execute", query, args)
        return self.execute_result


def test_build_where_numbers_params_in_order():
    where, params = build_where(
        PostQuery(category="Tech", tag="python", search="50%_off", author="sarah")
    )
    assert where == (
        "WHERE status = $1 AND category = $2 AND tags @> $3::jsonb"
        " AND (title ILIKE $4 OR excerpt ILIKE $4 OR content ILIKE $4)"
        " AND author_name ILIKE $5"
    )
    assert params == ["published", "Tech", '["python"]', "%50\\%\\_off%", "%sarah%"]


def test_build_where_without_status_or_filters():
    assert build_where(PostQuery(status=None)) == ("", [])
    where, params = build_where(PostQuery(featured_only=True))
    assert where == "WHERE status = $1 AND is_featured = true"
    assert params == ["published"]


def test_row_to_post_decodes_json_columns():
    post = row_to_post(_row())
    assert post.tags == ["python", "async"]
    assert post.seo_keywords == []
    assert post.author == AuthorRef(id="author-1", name="Sarah Johnson")
    assert post.status == BlogStatus.PUBLISHED
    assert post.view_count == 4


def test_find_paged_appends_limit_and_offset_params():
    async def _run():
        conn = _RecordingConn(rows=[_row()], total=11)
        store = PostgresPostStore(connection_factory=_connection_factory(conn))

        posts, total = await store.find_paged(PostQuery(category="Tech"), offset=10, limit=5)

        assert total == 11
        assert [p.id for p in posts] == ["p1"]
        count_call, page_call = conn.calls
        assert count_call[0] == "fetchval"
        assert count_call[2] == ("published", "Tech")
        assert "LIMIT $3 OFFSET $4" in page_call[1]
        assert "ORDER BY published_at DESC NULLS LAST" in page_call[1]
        assert page_call[2] == ("published", "Tech", 5, 10)

    asyncio.run(_run())


def test_lookups_return_none_when_missing():
    async def _run():
        store = PostgresPostStore(connection_factory=_connection_factory(_RecordingConn()))
        assert await store.find_by_slug("nope") is None
        assert await store.find_by_id("nope") is None

    asyncio.run(_run())


def test_upsert_sends_json_columns_and_preserves_publish_date():
    post = BlogPost(
        id="p1",
        title="Hello",
        slug="hello",
        excerpt="Excerpt",
        content="Body",
        category="Tech",
        tags=["python"],
        status=BlogStatus.PUBLISHED,
        author=AuthorRef(id="author-1", name="Sarah Johnson"),
        published_at=T0,
        created_at=T0,
        updated_at=T0,
    )

    async def _run():
        conn = _RecordingConn()
        store = PostgresPostStore(connection_factory=_connection_factory(conn))
        await store.upsert(post)

        method, query, args = conn.calls[0]
        assert method == "execute"
        assert "ON CONFLICT (id) DO UPDATE" in query
        assert "COALESCE(blog_posts.published_at, EXCLUDED.published_at)" in query
        assert "view_count = EXCLUDED.view_count" not in query
        assert args[0] == "p1"
        assert json.loads(args[8]) == ["python"]
        assert args[9] == "published"

    asyncio.run(_run())


def test_delete_reports_whether_a_row_was_removed():
    async def _run():
        deleted = PostgresPostStore(connection_factory=_connection_factory(_RecordingConn(execute_result="DELETE 1")))
        missing = PostgresPostStore(connection_factory=_connection_factory(_RecordingConn(execute_result="DELETE 0")))
        assert await deleted.delete("p1") is True
        assert await missing.delete("p1") is False

    asyncio.run(_run())


def test_increment_counter_is_a_single_atomic_update():
    async def _run():
        conn = _RecordingConn(execute_result="UPDATE 1")
        store = PostgresPostStore(connection_factory=_connection_factory(conn))
        await store.increment_counter("p1", "view_count")

        method, query, args = conn.calls[0]
        assert query == "UPDATE blog_posts SET view_count = view_count + $1 WHERE id = $2"
        assert args == (1, "p1")

        with pytest.raises(ValidationError):
            await store.increment_counter("p1", "title")

        gone = PostgresPostStore(connection_factory=_connection_factory(_RecordingConn(execute_result="UPDATE 0")))
        with pytest.raises(NotFoundError):
            await gone.increment_counter("p1", "view_count")

    asyncio.run(_run())


def test_list_categories_and_tags_filter_on_status():
    async def _run():
        conn = _RecordingConn(rows=[{"category": "Tech"}, {"category": "Design"}])
        store = PostgresPostStore(connection_factory=_connection_factory(conn))
        assert await store.list_categories() == ["Tech", "Design"]
        assert conn.calls[0][2] == ("published",)

        tag_conn = _RecordingConn(rows=[{"tag": "python"}])
        tag_store = PostgresPostStore(connection_factory=_connection_factory(tag_conn))
        assert await tag_store.list_tags(BlogStatus.DRAFT) == ["python"]
        assert "jsonb_array_elements_text(tags)" in tag_conn.calls[0][1]
        assert tag_conn.calls[0][2] == ("draft",)

    asyncio.run(_run())


def test_driver_errors_are_translated():
    async def _run():
        duplicate = PostgresPostStore(
            connection_factory=_connection_factory(_RecordingConn(error=asyncpg.UniqueViolationError("dup")))
        )
        with pytest.raises(ConflictError):
            await duplicate.find_by_slug("hello")

        down = PostgresPostStore(
            connection_factory=_connection_factory(_RecordingConn(error=ConnectionRefusedError("refused")))
        )
        with pytest.raises(StorageUnavailableError) as exc_info:
            await down.find_paged(PostQuery(), 0, 10)
        assert isinstance(exc_info.value.cause, ConnectionRefusedError)

    asyncio.run(_run())
