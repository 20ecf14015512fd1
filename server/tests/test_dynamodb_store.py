import asyncio
import threading
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from blog_api.core.models.blog import AuthorRef, BlogPost, BlogStatus
from blog_api.core.services.blog_service import BlogServiceOptions, PostQueryService
from blog_api.core.stores.base import PostQuery
from blog_api.core.stores.dynamodb import DynamoPostStore, build_upsert_kwargs, item_to_post
from blog_api.exceptions import ConflictError, NotFoundError, StorageUnavailableError

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def _item(post_id, status="published", published_at="2026-03-01T09:00:00Z", **overrides):
    item = {
        "id": post_id,
        "title": f"Post {post_id}",
        "slug": f"post-{post_id}",
        "excerpt": "Excerpt",
        "content": "Body",
        "category": "Tech",
        "tags": ["python"],
        "status": status,
        "author": {"id": "author-1", "name": "Sarah Johnson"},
        "featured_image": None,
        "is_featured": False,
        "read_time": Decimal("2"),
        "view_count": Decimal("7"),
        "like_count": Decimal("0"),
        "comment_count": Decimal("0"),
        "seo_keywords": [],
        "created_at": "2026-02-01T00:00:00Z",
        "updated_at": "2026-02-01T00:00:00Z",
    }
    if published_at is not None:
        item["published_at"] = published_at
    item.update(overrides)
    return item


def _matches(item, condition):
    if condition is None:
        return True
    expression = condition.get_expression()
    attribute, value = expression["values"]
    return item.get(attribute.name) == value


class _FakeTable:
    """Just enough of a boto3 Table to exercise the store, with scans split into pages."""

    def __init__(self, items=None, page_size=2):
        self.items = {item["id"]: item for item in items or []}
        self.page_size = page_size
        self.scan_calls = []
        self.update_calls = []
        self.error = None
        self._lock = threading.Lock()

    def _maybe_fail(self):
        if self.error is not None:
            raise self.error

    @staticmethod
    def _condition_failed(operation):
        return ClientError(
            {"Error": {"Code": "ConditionalCheckFailedException", "Message": "The conditional request failed"}},
            operation,
        )

    def scan(self, **kwargs):
        self._maybe_fail()
        self.scan_calls.append(kwargs)
        with self._lock:
            ids = sorted(self.items)
            start = ids.index(kwargs["ExclusiveStartKey"]["id"]) + 1 if "ExclusiveStartKey" in kwargs else 0
            chunk = ids[start:start + self.page_size]
            response = {
                "Items": [self.items[i] for i in chunk if _matches(self.items[i], kwargs.get("FilterExpression"))]
            }
        if start + self.page_size < len(ids):
            response["LastEvaluatedKey"] = {"id": chunk[-1]}
        return response

    def get_item(self, Key):
        self._maybe_fail()
        item = self.items.get(Key["id"])
        return {"Item": item} if item else {}

    def put_item(self, Item, ConditionExpression=None, ExpressionAttributeValues=None):
        self._maybe_fail()
        with self._lock:
            current = self.items.get(Item["id"])
            if current is not None and current.get("post_id") != ExpressionAttributeValues[":post_id"]:
                raise self._condition_failed("PutItem")
            self.items[Item["id"]] = dict(Item)
        return {}

    def update_item(self, **kwargs):
        self._maybe_fail()
        self.update_calls.append(kwargs)
        key = kwargs["Key"]["id"]
        expression = kwargs["UpdateExpression"]
        names = kwargs.get("ExpressionAttributeNames", {})
        values = kwargs.get("ExpressionAttributeValues", {})
        with self._lock:
            item = self.items.get(key)
            if kwargs.get("ConditionExpression") == "attribute_exists(id)" and item is None:
                raise self._condition_failed("UpdateItem")
            if expression.startswith("ADD"):
                field = names["#counter"]
                item[field] = item.get(field, 0) + values[":amount"]
                return {}

            item = item if item is not None else {"id": key}
            old = {}
            for placeholder, field in names.items():
                if f"if_not_exists({placeholder}" in expression and field in item:
                    continue
                if field in item:
                    old[field] = item[field]
                item[field] = values[f":{field}"]
            self.items[key] = item
        if kwargs.get("ReturnValues") == "UPDATED_OLD" and old:
            return {"Attributes": old}
        return {}

    def delete_item(self, Key, ReturnValues=None, ConditionExpression=None, ExpressionAttributeValues=None):
        self._maybe_fail()
        with self._lock:
            item = self.items.get(Key["id"])
            if ConditionExpression is not None and (
                item is None or item.get("post_id") != ExpressionAttributeValues[":post_id"]
            ):
                raise self._condition_failed("DeleteItem")
            self.items.pop(Key["id"], None)
        return {"Attributes": item} if item and ReturnValues == "ALL_OLD" else {}


def test_item_to_post_converts_decimals():
    post = item_to_post(_item("p1"))
    assert post.view_count == 7
    assert isinstance(post.view_count, int)
    assert post.read_time == 2
    assert post.published_at == T0
    assert post.author == AuthorRef(id="author-1", name="Sarah Johnson")


def test_find_paged_scans_every_page_and_orders_in_memory():
    table = _FakeTable([
        _item("a", published_at="2024-01-01T00:00:00Z"),
        _item("b", published_at="2024-03-01T00:00:00Z"),
        _item("c", status="draft", published_at=None),
        _item("d", published_at="2024-02-01T00:00:00Z", category="Design"),
        _item("e", published_at="2024-04-01T00:00:00Z"),
    ])
    store = DynamoPostStore(table=table)

    async def _run():
        posts, total = await store.find_paged(PostQuery(), offset=0, limit=3)
        assert [p.id for p in posts] == ["e", "b", "d"]
        assert total == 4
        assert len(table.scan_calls) == 3

        tech, tech_total = await store.find_paged(PostQuery(category="Tech"), offset=1, limit=10)
        assert [p.id for p in tech] == ["b", "a"]
        assert tech_total == 3

    asyncio.run(_run())


def test_find_by_slug_and_id():
    table = _FakeTable([_item("a"), _item("b", status="draft", published_at=None)])
    store = DynamoPostStore(table=table)

    async def _run():
        assert (await store.find_by_slug("post-b")).status == BlogStatus.DRAFT
        assert await store.find_by_slug("post-z") is None
        assert (await store.find_by_id("a")).slug == "post-a"
        assert await store.find_by_id("z") is None

    asyncio.run(_run())


def test_upsert_never_overwrites_counters_or_publish_date():
    post = BlogPost(
        id="p1",
        title="Hello",
        slug="hello",
        excerpt="Excerpt",
        content="Body",
        category="Tech",
        status=BlogStatus.PUBLISHED,
        author=AuthorRef(id="author-1", name="Sarah Johnson"),
        published_at=T0,
        created_at=T0,
        updated_at=T0,
    )
    kwargs = build_upsert_kwargs(post)

    assert kwargs["Key"] == {"id": "p1"}
    expression = kwargs["UpdateExpression"]
    assert expression.startswith("SET ")
    assert "#view_count = if_not_exists(#view_count, :view_count)" in expression
    assert "#published_at = if_not_exists(#published_at, :published_at)" in expression
    assert "#title = :title" in expression
    assert "#id" not in kwargs["ExpressionAttributeNames"]
    assert kwargs["ExpressionAttributeNames"]["#status"] == "status"
    assert kwargs["ExpressionAttributeValues"][":status"] == "published"

    draft = post.model_copy(update={"status": BlogStatus.DRAFT, "published_at": None})
    assert "#published_at" not in build_upsert_kwargs(draft)["ExpressionAttributeNames"]


def test_increment_counter_uses_atomic_add():
    table = _FakeTable([_item("a")])
    store = DynamoPostStore(table=table)

    async def _run():
        await store.increment_counter("a", "view_count")
        call = table.update_calls[0]
        assert call["UpdateExpression"] == "ADD #counter :amount"
        assert call["ExpressionAttributeNames"] == {"#counter": "view_count"}
        assert call["ExpressionAttributeValues"] == {":amount": 1}

        with pytest.raises(NotFoundError):
            await store.increment_counter("missing", "view_count")

    asyncio.run(_run())


def test_delete_and_listings():
    table = _FakeTable([
        _item("a", category="Tech", tags=["python", "async"]),
        _item("b", category="Design", tags=["css", "python"]),
        _item("c", category="Drafts", tags=["wip"], status="draft", published_at=None),
    ])
    store = DynamoPostStore(table=table)

    async def _run():
        assert sorted(await store.list_categories()) == ["Design", "Tech"]
        assert sorted(await store.list_tags()) == ["async", "css", "python"]
        assert await store.list_categories(BlogStatus.DRAFT) == ["Drafts"]

        assert await store.delete("a") is True
        assert await store.delete("a") is False

    asyncio.run(_run())


def test_client_errors_become_storage_unavailable():
    table = _FakeTable([_item("a")])
    store = DynamoPostStore(table=table)

    async def _run():
        table.error = ClientError(
            {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}},
            "Scan",
        )
        with pytest.raises(StorageUnavailableError):
            await store.find_paged(PostQuery(), 0, 10)

        table.error = EndpointConnectionError(endpoint_url="http://localhost:8000")
        with pytest.raises(StorageUnavailableError):
            await store.find_by_id("a")

    asyncio.run(_run())


def _blog_post(post_id, slug):
    return BlogPost(
        id=post_id,
        title=f"Post {post_id}",
        slug=slug,
        excerpt="Excerpt",
        content="Body",
        category="Tech",
        status=BlogStatus.PUBLISHED,
        author=AuthorRef(id="author-1", name="Sarah Johnson"),
        published_at=T0,
        created_at=T0,
        updated_at=T0,
    )


def test_upsert_rejects_a_slug_owned_by_another_post():
    table = _FakeTable()
    store = DynamoPostStore(table=table)

    async def _run():
        await store.upsert(_blog_post("p1", "hello"))
        await store.upsert(_blog_post("p1", "hello"))
        with pytest.raises(ConflictError):
            await store.upsert(_blog_post("p2", "hello"))

        assert await store.find_by_id("p2") is None
        assert table.items["slug#hello"]["post_id"] == "p1"

    asyncio.run(_run())


def test_concurrent_creates_with_the_same_title_store_one_post():
    table = _FakeTable()
    store = DynamoPostStore(table=table)
    service = PostQueryService(BlogServiceOptions(store=store))
    payload = {"title": "Dup", "excerpt": "Summary", "content": "Body", "category": "Tech"}
    author = AuthorRef(id="author-1", name="Sarah Johnson")

    async def _run():
        results = await asyncio.gather(
            service.create_post(dict(payload), author=author),
            service.create_post(dict(payload), author=author),
            return_exceptions=True,
        )
        created = [r for r in results if isinstance(r, BlogPost)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(created) == 1
        assert len(conflicts) == 1

        posts, total = await store.find_paged(PostQuery(status=BlogStatus.DRAFT), 0, 10)
        assert total == 1
        assert posts[0].id == created[0].id
        assert table.items["slug#dup"]["post_id"] == created[0].id

    asyncio.run(_run())


def test_slug_change_moves_the_claim_and_delete_releases_it():
    table = _FakeTable()
    store = DynamoPostStore(table=table)

    async def _run():
        await store.upsert(_blog_post("p1", "old-slug"))
        await store.upsert(_blog_post("p1", "new-slug"))
        assert "slug#old-slug" not in table.items
        assert table.items["slug#new-slug"]["post_id"] == "p1"

        # The freed slug is available to another post.
        await store.upsert(_blog_post("p2", "old-slug"))

        assert await store.delete("p1") is True
        assert "slug#new-slug" not in table.items
        await store.upsert(_blog_post("p3", "new-slug"))

    asyncio.run(_run())


def test_slug_claims_are_invisible_to_reads():
    table = _FakeTable()
    store = DynamoPostStore(table=table)

    async def _run():
        await store.upsert(_blog_post("p1", "hello"))
        assert await store.find_by_id("slug#hello") is None

        posts, total = await store.find_paged(PostQuery(status=None), 0, 10)
        assert [p.id for p in posts] == ["p1"]
        assert total == 1
        assert await store.list_categories() == ["Tech"]

    asyncio.run(_run())
