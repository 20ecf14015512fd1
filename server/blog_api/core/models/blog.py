import re
from datetime import datetime
from typing import Optional, List
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
SLUG_MAX_LENGTH = 200


class BlogStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


# Status changes an update may perform; same-status updates are always allowed.
ALLOWED_STATUS_TRANSITIONS = {
    BlogStatus.DRAFT: {BlogStatus.PUBLISHED, BlogStatus.ARCHIVED},
    BlogStatus.PUBLISHED: {BlogStatus.ARCHIVED},
    BlogStatus.ARCHIVED: {BlogStatus.PUBLISHED},
}


class BlogModel(BaseModel):
    """camelCase on the wire, snake_case in Python; both accepted on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


def _normalize_tags(tags: Optional[List[str]]) -> Optional[List[str]]:
    if tags is None:
        return None
    seen = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def _check_image_url(url: Optional[str]) -> Optional[str]:
    if url is None or url == "":
        return None
    if not url.startswith(("http://", "https://")):
        raise ValueError("featured image must be an http(s) URL")
    return url


def _check_slug(slug: Optional[str]) -> Optional[str]:
    if slug is None:
        return None
    if len(slug) > SLUG_MAX_LENGTH:
        raise ValueError(f"slug must be at most {SLUG_MAX_LENGTH} characters")
    if not SLUG_PATTERN.match(slug):
        raise ValueError("slug must be lowercase letters and digits separated by single hyphens")
    return slug


class AuthorRef(BlogModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)


class BlogPostBase(BlogModel):
    title: str = Field(min_length=1, max_length=200)
    excerpt: str = Field(min_length=1, max_length=500)
    content: str = Field(min_length=1)
    category: str = Field(min_length=1)
    tags: List[str] = []
    featured_image: Optional[str] = None
    is_featured: bool = False
    seo_title: Optional[str] = Field(None, max_length=60)
    seo_description: Optional[str] = Field(None, max_length=160)
    seo_keywords: List[str] = []

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v):
        return _normalize_tags(v)

    @field_validator("featured_image")
    @classmethod
    def check_featured_image(cls, v):
        return _check_image_url(v)


class BlogPostCreate(BlogPostBase):
    slug: Optional[str] = None
    status: BlogStatus = BlogStatus.DRAFT
    author: Optional[AuthorRef] = None
    # Only honoured for posts created as published (imports, seeding).
    published_at: Optional[datetime] = None

    @field_validator("slug")
    @classmethod
    def check_slug(cls, v):
        return _check_slug(v)


class BlogPostUpdate(BlogModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    slug: Optional[str] = None
    excerpt: Optional[str] = Field(None, min_length=1, max_length=500)
    content: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = Field(None, min_length=1)
    tags: Optional[List[str]] = None
    status: Optional[BlogStatus] = None
    author: Optional[AuthorRef] = None
    featured_image: Optional[str] = None
    is_featured: Optional[bool] = None
    seo_title: Optional[str] = Field(None, max_length=60)
    seo_description: Optional[str] = Field(None, max_length=160)
    seo_keywords: Optional[List[str]] = None

    @field_validator("slug")
    @classmethod
    def check_slug(cls, v):
        return _check_slug(v)

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v):
        return _normalize_tags(v)

    @field_validator("featured_image")
    @classmethod
    def check_featured_image(cls, v):
        return _check_image_url(v)


class BlogPost(BlogPostBase):
    id: str
    slug: str
    status: BlogStatus = BlogStatus.DRAFT
    author: AuthorRef
    read_time: int = Field(1, ge=0)
    view_count: int = Field(0, ge=0)
    like_count: int = Field(0, ge=0)
    comment_count: int = Field(0, ge=0)
    published_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_published(self) -> bool:
        return self.status == BlogStatus.PUBLISHED


class PostFilter(BlogModel):
    category: Optional[str] = None
    tag: Optional[str] = None
    search: Optional[str] = None
    author: Optional[str] = None


class BlogListResponse(BlogModel):
    posts: List[BlogPost]
    total: int
    page: int
    total_pages: int
    has_next: bool
    has_prev: bool


class BlogPostCreatedResponse(BlogModel):
    id: str
    slug: str
    message: str = "Blog post created successfully"


class BlogMessageResponse(BlogModel):
    message: str
