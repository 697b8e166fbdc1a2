"""Request/response Pydantic models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, HttpUrl, TypeAdapter, ValidationError, field_validator

MediaType = Literal["video", "folder"]
SizeRange = Literal["small", "medium", "large"]

PLACEHOLDER_TITLE = "Processing..."


class TagCreate(BaseModel):
    name: str = Field(min_length=1)
    color: str = "primary"


class Tag(TagCreate):
    id: str
    created_at: datetime


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1)


class Category(CategoryCreate):
    id: str
    created_at: datetime


class MediaItemCreate(BaseModel):
    url: str = Field(min_length=1)
    title: str = PLACEHOLDER_TITLE
    description: str | None = None
    thumbnail: str | None = None
    type: MediaType = "video"
    duration: int | None = None
    size: int | None = None
    download_url: str | None = None
    download_expires_at: datetime | None = None
    download_fetched_at: datetime | None = None
    folder_video_count: int = 0
    folder_image_count: int = 0


_HTTP_URL = TypeAdapter(HttpUrl)


class MediaSubmit(BaseModel):
    """Bulk submission of share links; each must be an absolute http(s) URL."""

    urls: list[str]

    @field_validator("urls")
    @classmethod
    def _validate_urls(cls, urls: list[str]) -> list[str]:
        for url in urls:
            try:
                _HTTP_URL.validate_python(url)
            except ValidationError:
                raise ValueError(f"invalid URL: {url!r}") from None
        # Stored as submitted; HttpUrl would rewrite them
        return urls


class MediaItemUpdate(BaseModel):
    url: str | None = None
    title: str | None = None
    description: str | None = None
    thumbnail: str | None = None
    type: MediaType | None = None
    duration: int | None = None
    size: int | None = None
    download_url: str | None = None
    download_expires_at: datetime | None = None
    download_fetched_at: datetime | None = None
    scraped_at: datetime | None = None
    error: str | None = None
    folder_video_count: int | None = None
    folder_image_count: int | None = None


class MediaItem(MediaItemCreate):
    id: str
    scraped_at: datetime | None = None
    error: str | None = None
    created_at: datetime
    tags: list[Tag] = []
    categories: list[Category] = []

    def needs_metadata(self) -> bool:
        """True when the item has never been scraped or is missing title/thumbnail."""
        return (
            not self.title
            or self.title == PLACEHOLDER_TITLE
            or not self.thumbnail
            or self.scraped_at is None
        )


class MediaPage(BaseModel):
    items: list[MediaItem] = []
    total: int = 0


class MediaTagLink(BaseModel):
    media_item_id: str
    tag_id: str


class MediaCategoryLink(BaseModel):
    media_item_id: str
    category_id: str


class ApiOptionCreate(BaseModel):
    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    method: Literal["GET", "POST"] = "POST"
    type: Literal["json", "query"] = "json"
    field: str = "url"
    status: str = "available"
    is_active: bool = True


class ApiOptionUpdate(BaseModel):
    name: str | None = None
    url: str | None = None
    method: Literal["GET", "POST"] | None = None
    type: Literal["json", "query"] | None = None
    field: str | None = None
    status: str | None = None
    is_active: bool | None = None


class ApiOption(ApiOptionCreate):
    id: str
