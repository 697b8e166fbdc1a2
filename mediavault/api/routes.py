"""Media library endpoints: media items, tags, categories and API options."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from mediavault.api.schemas import (
    ApiOption,
    ApiOptionCreate,
    ApiOptionUpdate,
    Category,
    CategoryCreate,
    MediaCategoryLink,
    MediaItem,
    MediaItemUpdate,
    MediaPage,
    MediaSubmit,
    MediaTagLink,
    MediaType,
    SizeRange,
    Tag,
    TagCreate,
)
from mediavault.api.service import MetadataRefresher
from mediavault.config import Settings
from mediavault.store.redis import DuplicateError, MediaStore, NotFoundError

router = APIRouter()


def _get_store(request: Request) -> MediaStore:
    return request.app.state.store


def _get_refresher(request: Request) -> MetadataRefresher:
    return request.app.state.refresher


def _get_settings(request: Request) -> Settings:
    return request.app.state.settings


@router.get("/health")
async def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


# --- media items ---


@router.get("/api/media", response_model=MediaPage)
@router.get("/api/media/pages", response_model=MediaPage)
async def list_media(
    search: str | None = None,
    tags: list[str] | None = Query(None),
    categories: list[str] | None = Query(None),
    type: MediaType | None = None,
    size_range: SizeRange | None = Query(None, alias="sizeRange"),
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    store: MediaStore = Depends(_get_store),
    refresher: MetadataRefresher = Depends(_get_refresher),
    settings: Settings = Depends(_get_settings),
):
    limit = min(limit or settings.media_page_limit, settings.media_max_page_limit)
    items, total = await store.list_media(
        search=search,
        tags=tags,
        categories=categories,
        media_type=type,
        size_range=size_range,
        page=page,
        limit=limit,
    )

    stale = [item for item in items if item.needs_metadata()]
    if stale:
        refresher.schedule(stale)
    return MediaPage(items=items, total=total)


@router.get("/api/media/{media_id}", response_model=MediaItem)
async def get_media(media_id: str, store: MediaStore = Depends(_get_store)):
    item = await store.get_media(media_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Media item not found")
    return item


@router.post("/api/media", response_model=list[MediaItem], status_code=status.HTTP_201_CREATED)
async def submit_media(
    body: MediaSubmit,
    store: MediaStore = Depends(_get_store),
    refresher: MetadataRefresher = Depends(_get_refresher),
):
    items: list[MediaItem] = []
    created: list[MediaItem] = []
    for url in body.urls:
        item, is_new = await store.get_or_create_media(url)
        items.append(item)
        if is_new:
            created.append(item)

    if created:
        refresher.schedule(created)
    return items


@router.put("/api/media/{media_id}", response_model=MediaItem)
async def update_media(
    media_id: str,
    body: MediaItemUpdate,
    store: MediaStore = Depends(_get_store),
):
    try:
        item = await store.update_media(media_id, body.model_dump(exclude_unset=True))
    except DuplicateError:
        raise HTTPException(status_code=409, detail="Media item with this URL already exists")
    if item is None:
        raise HTTPException(status_code=404, detail="Media item not found")
    return item


@router.delete("/api/media/{media_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_media(media_id: str, store: MediaStore = Depends(_get_store)):
    if not await store.delete_media(media_id):
        raise HTTPException(status_code=404, detail="Media item not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/api/media/{media_id}/refresh", response_model=MediaItem)
async def refresh_media(media_id: str, refresher: MetadataRefresher = Depends(_get_refresher)):
    item = await refresher.refresh_item(media_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Media item not found")
    return item


# --- tags ---


@router.get("/api/tags", response_model=list[Tag])
async def list_tags(store: MediaStore = Depends(_get_store)):
    return await store.list_tags()


@router.post("/api/tags", response_model=Tag, status_code=status.HTTP_201_CREATED)
async def create_tag(body: TagCreate, store: MediaStore = Depends(_get_store)):
    try:
        return await store.create_tag(body)
    except DuplicateError:
        raise HTTPException(status_code=409, detail="Tag already exists")


@router.delete("/api/tags/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tag(tag_id: str, store: MediaStore = Depends(_get_store)):
    if not await store.delete_tag(tag_id):
        raise HTTPException(status_code=404, detail="Tag not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/api/media/{media_id}/tags/{tag_id}",
    response_model=MediaTagLink,
    status_code=status.HTTP_201_CREATED,
)
async def add_tag_to_media(media_id: str, tag_id: str, store: MediaStore = Depends(_get_store)):
    try:
        return await store.add_tag_to_media(media_id, tag_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.delete("/api/media/{media_id}/tags/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_tag_from_media(media_id: str, tag_id: str, store: MediaStore = Depends(_get_store)):
    if not await store.remove_tag_from_media(media_id, tag_id):
        raise HTTPException(status_code=404, detail="Tag association not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- categories ---


@router.get("/api/categories", response_model=list[Category])
async def list_categories(store: MediaStore = Depends(_get_store)):
    return await store.list_categories()


@router.post("/api/categories", response_model=Category, status_code=status.HTTP_201_CREATED)
async def create_category(body: CategoryCreate, store: MediaStore = Depends(_get_store)):
    try:
        return await store.create_category(body)
    except DuplicateError:
        raise HTTPException(status_code=409, detail="Category already exists")


@router.delete("/api/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(category_id: str, store: MediaStore = Depends(_get_store)):
    if not await store.delete_category(category_id):
        raise HTTPException(status_code=404, detail="Category not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/api/media/{media_id}/categories/{category_id}",
    response_model=MediaCategoryLink,
    status_code=status.HTTP_201_CREATED,
)
async def add_category_to_media(
    media_id: str,
    category_id: str,
    store: MediaStore = Depends(_get_store),
):
    try:
        return await store.add_category_to_media(media_id, category_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.delete(
    "/api/media/{media_id}/categories/{category_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def remove_category_from_media(
    media_id: str,
    category_id: str,
    store: MediaStore = Depends(_get_store),
):
    if not await store.remove_category_from_media(media_id, category_id):
        raise HTTPException(status_code=404, detail="Category association not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- download API options ---


@router.get("/api/api-options", response_model=list[ApiOption])
async def list_api_options(store: MediaStore = Depends(_get_store)):
    return await store.list_api_options()


@router.post("/api/api-options", response_model=ApiOption, status_code=status.HTTP_201_CREATED)
async def create_api_option(body: ApiOptionCreate, store: MediaStore = Depends(_get_store)):
    return await store.create_api_option(body)


@router.put("/api/api-options/{option_id}", response_model=ApiOption)
async def update_api_option(
    option_id: str,
    body: ApiOptionUpdate,
    store: MediaStore = Depends(_get_store),
):
    option = await store.update_api_option(option_id, body.model_dump(exclude_unset=True, exclude_none=True))
    if option is None:
        raise HTTPException(status_code=404, detail="API option not found")
    return option


@router.delete("/api/api-options/{option_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_api_option(option_id: str, store: MediaStore = Depends(_get_store)):
    if not await store.delete_api_option(option_id):
        raise HTTPException(status_code=404, detail="API option not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
