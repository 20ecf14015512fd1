from typing import Optional, List

from fastapi import APIRouter, Depends, status as http_status

from ..dependencies import require_admin
from ..models.auth import CurrentUser
from ..models.blog import (
    BlogListResponse,
    BlogMessageResponse,
    BlogPost,
    BlogPostCreate,
    BlogPostCreatedResponse,
    BlogPostUpdate,
    BlogStatus,
    PostFilter,
)
from ..services.blog_service import PostQueryService, get_blog_service

router = APIRouter()

# -----------------------------------------------------------------------------
# PUBLIC LISTINGS: static routes first, then {slug} catch-all
# -----------------------------------------------------------------------------

@router.get("", response_model=BlogListResponse)
async def list_blogs(
    page: int = 1,
    limit: Optional[int] = None,
    category: Optional[str] = None,
    tag: Optional[str] = None,
    search: Optional[str] = None,
    author: Optional[str] = None,
    service: PostQueryService = Depends(get_blog_service),
):
    """List published blog posts, newest first."""
    filters = PostFilter(category=category, tag=tag, search=search, author=author)
    return await service.list_posts(filters, page=page, page_size=limit)


@router.get("/featured", response_model=List[BlogPost])
async def list_featured(
    limit: Optional[int] = None,
    service: PostQueryService = Depends(get_blog_service),
):
    """Featured published posts, newest first."""
    return await service.get_featured(limit)


@router.get("/categories", response_model=List[str])
async def list_categories(service: PostQueryService = Depends(get_blog_service)):
    return await service.list_categories()


@router.get("/tags", response_model=List[str])
async def list_tags(service: PostQueryService = Depends(get_blog_service)):
    return await service.list_tags()


# -----------------------------------------------------------------------------
# ADMIN: must be before /{slug} to avoid route conflict
# -----------------------------------------------------------------------------

@router.get("/admin/posts", response_model=BlogListResponse)
async def list_all_blogs(
    status: Optional[BlogStatus] = None,
    page: int = 1,
    limit: Optional[int] = None,
    current_user: CurrentUser = Depends(require_admin),
    service: PostQueryService = Depends(get_blog_service),
):
    """Admin: list posts in every status."""
    return await service.list_all_posts(status, page=page, page_size=limit)


@router.post("", response_model=BlogPostCreatedResponse, status_code=http_status.HTTP_201_CREATED)
async def create_blog_post(
    post: BlogPostCreate,
    current_user: CurrentUser = Depends(require_admin),
    service: PostQueryService = Depends(get_blog_service),
):
    """Create a new blog post. The slug is derived from the title when omitted."""
    created = await service.create_post(post, author=current_user.as_author())
    return BlogPostCreatedResponse(id=created.id, slug=created.slug)


# -----------------------------------------------------------------------------
# SLUG / ID ROUTES
# -----------------------------------------------------------------------------

@router.get("/{slug}", response_model=BlogPost)
async def get_blog_post(slug: str, service: PostQueryService = Depends(get_blog_service)):
    """Get a single published blog post by slug. Drafts and archived posts are 404."""
    return await service.get_by_slug(slug)


@router.put("/{id}", response_model=BlogMessageResponse)
async def update_blog_post(
    id: str,
    post: BlogPostUpdate,
    current_user: CurrentUser = Depends(require_admin),
    service: PostQueryService = Depends(get_blog_service),
):
    """Update a blog post."""
    await service.update_post(id, post)
    return BlogMessageResponse(message="Blog post updated successfully")


@router.delete("/{id}", response_model=BlogMessageResponse)
async def delete_blog_post(
    id: str,
    current_user: CurrentUser = Depends(require_admin),
    service: PostQueryService = Depends(get_blog_service),
):
    """Delete a blog post."""
    await service.delete_post(id)
    return BlogMessageResponse(message="Blog post deleted successfully")
