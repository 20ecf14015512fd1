"""DynamoDB post store.

Slug uniqueness is enforced with claim items (``id = "slug#<slug>"``) written
by a conditional put before the post itself, so two writers racing for the
same slug cannot both succeed. Claim items are skipped by every read.

Listing uses a paginated scan filtered on status and applies the remaining
filters and ordering in memory, the same way for every query, via the shared
helpers in ``base``. boto3 is synchronous, so every call runs in a worker
thread.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from ...exceptions import ConflictError, NotFoundError, StorageUnavailableError, ValidationError
from ..models.blog import BlogPost, BlogStatus
from .base import COUNTER_FIELDS, PostQuery, distinct_in_order, page_of

logger = logging.getLogger(__name__)

SLUG_CLAIM = "slug_claim"


def slug_claim_key(slug: str) -> Dict[str, str]:
    return {"id": f"slug#{slug}"}


def _is_slug_claim(item: Dict[str, Any]) -> bool:
    return item.get("record_type") == SLUG_CLAIM


def _from_dynamo(value: Any) -> Any:
    """Undo boto3's Decimal conversion for numbers."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, list):
        return [_from_dynamo(v) for v in value]
    if isinstance(value, dict):
        return {k: _from_dynamo(v) for k, v in value.items()}
    return value


def item_to_post(item: Dict[str, Any]) -> BlogPost:
    return BlogPost.model_validate(_from_dynamo(item))


def build_upsert_kwargs(post: BlogPost) -> Dict[str, Any]:
    """
    Build update_item arguments that write every field except the counters.

    Counters and ``published_at`` use ``if_not_exists`` so an upsert never
    rewinds a concurrent increment or overwrites the first publish time.
    """
    item = post.model_dump(mode="json")
    item.pop("id")
    published_at = item.pop("published_at")

    names: Dict[str, str] = {}
    values: Dict[str, Any] = {}
    assignments = []
    for field, value in item.items():
        names[f"#{field}"] = field
        values[f":{field}"] = value
        if field in COUNTER_FIELDS:
            assignments.append(f"#{field} = if_not_exists(#{field}, :{field})")
        else:
            assignments.append(f"#{field} = :{field}")

    if published_at is not None:
        names["#published_at"] = "published_at"
        values[":published_at"] = published_at
        assignments.append("#published_at = if_not_exists(#published_at, :published_at)")

    return {
        "Key": {"id": post.id},
        "UpdateExpression": "SET " + ", ".join(assignments),
        "ExpressionAttributeNames": names,
        "ExpressionAttributeValues": values,
    }


class DynamoPostStore:
    """Post store backed by a DynamoDB table keyed on ``id``."""

    name = "dynamodb"

    def __init__(
        self,
        table_name: str = "blog-posts",
        region_name: str = "us-west-1",
        endpoint_url: Optional[str] = None,
        table=None,
    ):
        if table is None:
            resource = boto3.resource("dynamodb", region_name=region_name, endpoint_url=endpoint_url)
            table = resource.Table(table_name)
        self._table = table

    async def _call(self, operation: str, method, condition_error=NotFoundError, **kwargs) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(method, **kwargs)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code == "ConditionalCheckFailedException":
                if condition_error is ConflictError:
                    raise ConflictError("Slug already exists") from exc
                raise NotFoundError("Blog post not found") from exc
            logger.error("[Store] dynamodb %s failed (%s): %s", operation, code, exc)
            raise StorageUnavailableError(f"Post store unavailable during {operation}", cause=exc) from exc
        except BotoCoreError as exc:
            logger.error("[Store] dynamodb %s failed: %s", operation, exc)
            raise StorageUnavailableError(f"Post store unavailable during {operation}", cause=exc) from exc

    async def _scan(self, operation: str, filter_expression=None) -> List[BlogPost]:
        kwargs: Dict[str, Any] = {}
        if filter_expression is not None:
            kwargs["FilterExpression"] = filter_expression

        posts = []
        while True:
            response = await self._call(operation, self._table.scan, **kwargs)
            posts.extend(
                item_to_post(item) for item in response.get("Items", []) if not _is_slug_claim(item)
            )
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return posts
            kwargs["ExclusiveStartKey"] = last_key

    async def _claim_slug(self, slug: str, post_id: str) -> None:
        """Conditionally record ``post_id`` as the owner of ``slug``. Idempotent for the owner."""
        await self._call(
            "slug claim",
            self._table.put_item,
            condition_error=ConflictError,
            Item={**slug_claim_key(slug), "post_id": post_id, "record_type": SLUG_CLAIM},
            ConditionExpression="attribute_not_exists(id) OR post_id = :post_id",
            ExpressionAttributeValues={":post_id": post_id},
        )

    async def _release_slug(self, slug: str, post_id: str) -> None:
        try:
            await self._call(
                "slug release",
                self._table.delete_item,
                Key=slug_claim_key(slug),
                ConditionExpression="post_id = :post_id",
                ExpressionAttributeValues={":post_id": post_id},
            )
        except NotFoundError:
            logger.info("[Store] slug claim %s no longer held by %s", slug, post_id)

    async def find_paged(self, query: PostQuery, offset: int, limit: int) -> Tuple[List[BlogPost], int]:
        status_filter = Attr("status").eq(query.status.value) if query.status is not None else None
        posts = await self._scan("list", status_filter)
        return page_of(posts, query, offset, limit)

    async def find_by_slug(self, slug: str) -> Optional[BlogPost]:
        posts = await self._scan("slug lookup", Attr("slug").eq(slug))
        return posts[0] if posts else None

    async def find_by_id(self, post_id: str) -> Optional[BlogPost]:
        response = await self._call("id lookup", self._table.get_item, Key={"id": post_id})
        item = response.get("Item")
        if not item or _is_slug_claim(item):
            return None
        return item_to_post(item)

    async def upsert(self, post: BlogPost) -> None:
        await self._claim_slug(post.slug, post.id)
        response = await self._call(
            "upsert", self._table.update_item, ReturnValues="UPDATED_OLD", **build_upsert_kwargs(post)
        )
        old_slug = response.get("Attributes", {}).get("slug")
        if old_slug and old_slug != post.slug:
            await self._release_slug(old_slug, post.id)

    async def delete(self, post_id: str) -> bool:
        response = await self._call(
            "delete", self._table.delete_item, Key={"id": post_id}, ReturnValues="ALL_OLD"
        )
        old = response.get("Attributes")
        if not old:
            return False
        if old.get("slug"):
            await self._release_slug(old["slug"], post_id)
        return True

    async def increment_counter(self, post_id: str, field: str, amount: int = 1) -> None:
        if field not in COUNTER_FIELDS:
            raise ValidationError.for_field("field", f"'{field}' is not a counter")
        await self._call(
            "counter increment",
            self._table.update_item,
            Key={"id": post_id},
            UpdateExpression="ADD #counter :amount",
            ConditionExpression="attribute_exists(id)",
            ExpressionAttributeNames={"#counter": field},
            ExpressionAttributeValues={":amount": amount},
        )

    async def list_categories(self, status: BlogStatus = BlogStatus.PUBLISHED) -> List[str]:
        posts = await self._scan("category listing", Attr("status").eq(status.value))
        return distinct_in_order(p.category for p in posts)

    async def list_tags(self, status: BlogStatus = BlogStatus.PUBLISHED) -> List[str]:
        posts = await self._scan("tag listing", Attr("status").eq(status.value))
        return distinct_in_order(tag for p in posts for tag in p.tags)

    async def close(self) -> None:
        return None
