import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import load_settings, parse_cors_origins
from .core.errors import register_exception_handlers
from .core.routes import core_router
from .core.services.blog_service import (
    BlogServiceOptions,
    close_blog_service,
    get_blog_service,
    init_blog_service,
)
from .core.services.redis_cache import close_redis_cache, init_redis_cache
from .core.stores import build_post_store
from .database import close_pool, init_db, init_pool

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("[Blog] Starting server on port %s with %s store", settings.port, settings.post_store)

    # Initialize database
    if settings.post_store == "postgres":
        await init_pool(settings.database_url, command_timeout=settings.storage_timeout_seconds)
        await init_db()

    # Redis is optional; without it every slug lookup goes to the store
    cache = None
    if settings.redis_url:
        cache = await init_redis_cache(settings.redis_url, timeout=settings.storage_timeout_seconds)
    else:
        logger.info("[Blog] REDIS_URL not set, slug cache disabled")

    store = build_post_store(settings)
    init_blog_service(BlogServiceOptions.from_settings(settings, store, cache))

    yield

    # Cleanup
    await close_blog_service()
    await close_redis_cache()
    await close_pool()
    logger.info("[Blog] Server shutdown complete")


app = FastAPI(
    title="Blog API",
    description="Blog post listing, lookup and authoring",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS - allow the marketing site and admin dashboard
app.add_middleware(
    CORSMiddleware,
    allow_origins=parse_cors_origins(os.getenv("CORS_ORIGINS")),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(core_router, prefix="/api")


@app.get("/health")
async def health_check():
    try:
        store = get_blog_service().store.name
    except RuntimeError:
        store = None
    return {"status": "healthy", "service": "blog-api", "store": store}
