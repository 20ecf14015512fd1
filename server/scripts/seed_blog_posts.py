"""
Seed script to populate sample published blog posts.
Run with: python scripts/seed_blog_posts.py
Posts whose slug already exists are skipped, so the script can be re-run.
"""
import asyncio
import sys
import os
from datetime import datetime, timezone

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from blog_api.config import load_settings
from blog_api.core.models.blog import AuthorRef, BlogPostCreate, BlogStatus
from blog_api.core.services.blog_service import BlogServiceOptions, PostQueryService
from blog_api.core.stores import build_post_store
from blog_api.database import init_pool, close_pool, init_db
from blog_api.exceptions import ConflictError

SEED_AUTHOR = AuthorRef(id="seed-editorial", name="Editorial Team")

SAMPLE_POSTS = [
    BlogPostCreate(
        title="Building Meaningful Connections in the Digital Age",
        excerpt="How technology can help people meet in person around shared interests.",
        content=(
            "# Why meetups matter\n\n"
            "Online tools make it easy to find people, but real friendships still form face to face.\n\n"
            "# Quality over quantity\n\n"
            "Small recurring groups build trust faster than large one-off events."
        ),
        category="Technology",
        tags=["connections", "digital", "community"],
        status=BlogStatus.PUBLISHED,
        is_featured=True,
        published_at=datetime(2024, 3, 15, tzinfo=timezone.utc),
        seo_title="Building Meaningful Connections in the Digital Age",
        seo_keywords=["social connections", "community building"],
    ),
    BlogPostCreate(
        title="The Future of Social Networking",
        excerpt="Social platforms are shifting from engagement metrics to authentic connection.",
        content=(
            "Users are tired of endless feeds.\n\n"
            "# What comes next\n\n"
            "Platforms that get people off their phones and into the same room."
        ),
        category="Innovation",
        tags=["social networking", "future", "authenticity"],
        status=BlogStatus.PUBLISHED,
        published_at=datetime(2024, 3, 10, tzinfo=timezone.utc),
    ),
    BlogPostCreate(
        title="Community Building Best Practices",
        excerpt="Strategies for creating local groups that keep meeting.",
        content=(
            "Set a regular schedule.\n\n"
            "Welcome newcomers by name.\n\n"
            "Share organizing work so no one burns out."
        ),
        category="Community",
        tags=["community building", "best practices", "leadership"],
        status=BlogStatus.PUBLISHED,
        published_at=datetime(2024, 3, 5, tzinfo=timezone.utc),
    ),
]


async def seed_blog_posts():
    settings = load_settings()
    if settings.post_store == "postgres":
        await init_pool(settings.database_url)
        await init_db()

    service = PostQueryService(BlogServiceOptions.from_settings(settings, build_post_store(settings)))

    created = 0
    try:
        for sample in SAMPLE_POSTS:
            try:
                post = await service.create_post(sample, author=SEED_AUTHOR)
            except ConflictError:
                print(f"Skipping '{sample.title}': slug already exists")
                continue
            created += 1
            print(f"Created post: {post.slug} ({post.id})")
    finally:
        await close_pool()

    print(f"Seeded {created} blog posts into the {settings.post_store} store.")


if __name__ == "__main__":
    asyncio.run(seed_blog_posts())
