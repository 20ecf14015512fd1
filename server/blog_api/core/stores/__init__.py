"""Post store adapters behind the ``PostStore`` port."""

from .base import PostQuery, PostStore
from .dynamodb import DynamoPostStore
from .memory import InMemoryPostStore
from .postgres import PostgresPostStore


def build_post_store(settings) -> PostStore:
    """Instantiate the adapter named by ``settings.post_store``."""
    if settings.post_store == "postgres":
        return PostgresPostStore()
    if settings.post_store == "dynamodb":
        return DynamoPostStore(
            table_name=settings.dynamodb_table,
            region_name=settings.aws_region,
            endpoint_url=settings.dynamodb_endpoint_url,
        )
    return InMemoryPostStore()


__all__ = [
    "PostQuery",
    "PostStore",
    "DynamoPostStore",
    "InMemoryPostStore",
    "PostgresPostStore",
    "build_post_store",
]
