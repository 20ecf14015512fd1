from contextlib import asynccontextmanager
from typing import Optional

import asyncpg

_pool: Optional[asyncpg.Pool] = None


async def init_pool(database_url: str, command_timeout: Optional[float] = None):
    """Initialize the connection pool."""
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(
            database_url,
            min_size=2,
            max_size=10,
            command_timeout=command_timeout,
        )
    return _pool


async def get_pool() -> asyncpg.Pool:
    """Get the existing connection pool."""
    global _pool
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool first.")
    return _pool


async def close_pool():
    """Close the connection pool."""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None


@asynccontextmanager
async def get_connection():
    """Get a database connection from the pool."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        yield conn


async def init_db():
    """Create tables if they don't exist."""
    async with get_connection() as conn:
        # Blog posts table
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS blog_posts (
                id TEXT PRIMARY KEY,
                title VARCHAR(200) NOT NULL,
                slug VARCHAR(200) NOT NULL UNIQUE,
                excerpt VARCHAR(500) NOT NULL,
                content TEXT NOT NULL,
                author_id TEXT NOT NULL,
                author_name VARCHAR(255) NOT NULL,
                category VARCHAR(100) NOT NULL,
                tags JSONB NOT NULL DEFAULT '[]'::jsonb,
                status VARCHAR(20) NOT NULL DEFAULT 'draft'
                    CHECK (status IN ('draft', 'published', 'archived')),
                featured_image TEXT,
                is_featured BOOLEAN NOT NULL DEFAULT false,
                read_time INTEGER NOT NULL DEFAULT 1,
                view_count INTEGER NOT NULL DEFAULT 0 CHECK (view_count >= 0),
                like_count INTEGER NOT NULL DEFAULT 0 CHECK (like_count >= 0),
                comment_count INTEGER NOT NULL DEFAULT 0 CHECK (comment_count >= 0),
                seo_title VARCHAR(60),
                seo_description VARCHAR(160),
                seo_keywords JSONB NOT NULL DEFAULT '[]'::jsonb,
                published_at TIMESTAMPTZ,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_blog_posts_status_published
            ON blog_posts(status, published_at DESC, id DESC)
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_blog_posts_category ON blog_posts(category)
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_blog_posts_featured ON blog_posts(is_featured)
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_blog_posts_tags ON blog_posts USING GIN (tags)
        """)
