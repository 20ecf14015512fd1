import os
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

POST_STORES = ("postgres", "dynamodb", "memory")


@dataclass
class Settings:
    # Storage
    post_store: str
    database_url: Optional[str]
    dynamodb_table: str
    aws_region: str
    dynamodb_endpoint_url: Optional[str]

    # Cache
    redis_url: Optional[str]

    # Server
    port: int
    log_level: str

    # Auth
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"

    # Blog query limits
    cache_ttl_seconds: int = 3600
    default_page_size: int = 10
    max_page_size: int = 50
    featured_limit: int = 5
    storage_timeout_seconds: float = 5.0

    cors_origins: list[str] = field(default_factory=list)


# Global settings instance
_settings: Optional[Settings] = None


def _int_env(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name, str(default))
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def parse_cors_origins(raw: Optional[str]) -> list[str]:
    if raw is None:
        raw = "http://localhost:3000"
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def load_settings() -> Settings:
    global _settings
    load_dotenv()

    post_store = os.getenv("POST_STORE", "memory").strip().lower()
    if post_store not in POST_STORES:
        raise ValueError(f"POST_STORE must be one of {', '.join(POST_STORES)}, got {post_store!r}")

    database_url = os.getenv("DATABASE_URL", "").strip().strip('"')
    if post_store == "postgres" and not database_url:
        raise ValueError("DATABASE_URL environment variable is required when POST_STORE=postgres")

    # JWT settings
    jwt_secret_key = os.getenv("JWT_SECRET_KEY", "")
    if not jwt_secret_key:
        # Generate a default for development, but warn
        import secrets
        jwt_secret_key = secrets.token_urlsafe(32)
        print("[WARNING] JWT_SECRET_KEY not set. Using random key (admin tokens won't validate across restarts)")

    try:
        storage_timeout = float(os.getenv("STORAGE_TIMEOUT_SECONDS", "5"))
    except ValueError:
        raise ValueError("STORAGE_TIMEOUT_SECONDS must be a number")
    if storage_timeout <= 0:
        raise ValueError(f"STORAGE_TIMEOUT_SECONDS must be positive, got {storage_timeout}")

    default_page_size = _int_env("BLOG_DEFAULT_PAGE_SIZE", 10)
    max_page_size = _int_env("BLOG_MAX_PAGE_SIZE", 50)
    if default_page_size > max_page_size:
        raise ValueError("BLOG_DEFAULT_PAGE_SIZE cannot exceed BLOG_MAX_PAGE_SIZE")

    cors_origins = parse_cors_origins(os.getenv("CORS_ORIGINS"))

    _settings = Settings(
        post_store=post_store,
        database_url=database_url or None,
        dynamodb_table=os.getenv("DYNAMODB_TABLE", "blog-posts"),
        aws_region=os.getenv("AWS_REGION", "us-west-1"),
        dynamodb_endpoint_url=os.getenv("DYNAMODB_ENDPOINT_URL") or None,
        redis_url=os.getenv("REDIS_URL") or None,
        port=int(os.getenv("PORT", "8000")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        jwt_secret_key=jwt_secret_key,
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        cache_ttl_seconds=_int_env("BLOG_CACHE_TTL_SECONDS", 3600),
        default_page_size=default_page_size,
        max_page_size=max_page_size,
        featured_limit=_int_env("BLOG_FEATURED_LIMIT", 5),
        storage_timeout_seconds=storage_timeout,
        cors_origins=cors_origins,
    )
    return _settings


def get_settings() -> Settings:
    """Get the loaded settings. Must call load_settings() first."""
    global _settings
    if _settings is None:
        raise RuntimeError("Settings not initialized. Call load_settings() first.")
    return _settings
