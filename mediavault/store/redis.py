"""Redis-backed storage for media items, tags, categories and API options."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

import redis.asyncio as redis
from redis.backoff import ExponentialBackoff
from redis.retry import Retry

from mediavault.api.schemas import (
    ApiOption,
    ApiOptionCreate,
    Category,
    CategoryCreate,
    MediaCategoryLink,
    MediaItem,
    MediaItemCreate,
    MediaTagLink,
    Tag,
    TagCreate,
)

logger = logging.getLogger(__name__)

MEDIA_PREFIX = "media:item:"
MEDIA_INDEX = "media:index"
MEDIA_SEQ = "media:seq"
MEDIA_URL_PREFIX = "media:url:"
TAG_PREFIX = "tag:item:"
TAG_IDS = "tag:ids"
TAG_NAME_PREFIX = "tag:name:"
CATEGORY_PREFIX = "category:item:"
CATEGORY_IDS = "category:ids"
CATEGORY_NAME_PREFIX = "category:name:"
API_OPTION_PREFIX = "api_option:item:"
API_OPTION_IDS = "api_option:ids"

# Fields a partial update may not null out
_REQUIRED_MEDIA_FIELDS = frozenset({"url", "title", "type", "folder_video_count", "folder_image_count"})

MB = 1024 * 1024
GB = 1024 * MB

# (min inclusive, max exclusive) in bytes
SIZE_RANGES: dict[str, tuple[int, int | None]] = {
    "small": (0, 100 * MB),
    "medium": (100 * MB, GB),
    "large": (GB, None),
}

DEFAULT_API_OPTIONS: tuple[ApiOption, ...] = (
    ApiOption(id="playertera", name="PlayerTera", url="/api/playertera-proxy", method="POST", type="json", field="url"),
    ApiOption(id="tera-fast", name="TeraFast", url="/api/tera-fast-proxy", method="GET", type="query", field="url"),
    ApiOption(id="teradwn", name="TeraDownloadr", url="/api/teradwn-proxy", method="POST", type="json", field="link"),
    ApiOption(id="iteraplay", name="IteraPlay", url="/api/iteraplay-proxy", method="POST", type="json", field="link"),
    ApiOption(id="raspywave", name="RaspyWave", url="/api/raspywave-proxy", method="POST", type="json", field="link"),
    ApiOption(id="rapidapi", name="RapidAPI", url="/api/rapidapi-proxy", method="POST", type="json", field="link"),
    ApiOption(
        id="tera-downloader-cc",
        name="Tera Downloader CC",
        url="/api/tera-downloader-cc-proxy",
        method="POST",
        type="json",
        field="url",
    ),
)


class StoreError(Exception):
    """Base class for storage errors surfaced to the API layer."""


class NotFoundError(StoreError):
    pass


class DuplicateError(StoreError):
    pass


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _media_tags_key(media_id: str) -> str:
    return f"{MEDIA_PREFIX}{media_id}:tags"


def _media_categories_key(media_id: str) -> str:
    return f"{MEDIA_PREFIX}{media_id}:categories"


def _tag_media_key(tag_id: str) -> str:
    return f"{TAG_PREFIX}{tag_id}:media"


def _category_media_key(category_id: str) -> str:
    return f"{CATEGORY_PREFIX}{category_id}:media"


def _in_size_range(size: int | None, size_range: str) -> bool:
    if size is None or size_range not in SIZE_RANGES:
        return False
    low, high = SIZE_RANGES[size_range]
    return size >= low and (high is None or size < high)


class MediaStore:
    """Async Redis store for the media library.

    Records are JSON documents keyed by id. Secondary keys keep URLs and
    tag/category names unique, and link sets are kept in both directions so
    deleting either side cleans up the other.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    # --- media items ---

    async def list_media(
        self,
        search: str | None = None,
        tags: list[str] | None = None,
        categories: list[str] | None = None,
        media_type: str | None = None,
        size_range: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[MediaItem], int]:
        """Return one page of items (newest first) and the filtered total."""
        offset = (max(page, 1) - 1) * limit
        if not (search or tags or categories or media_type or size_range):
            total = await self._client.zcard(MEDIA_INDEX)
            ids = await self._client.zrevrange(MEDIA_INDEX, offset, offset + limit - 1)
            items = [item for item in await self._load_media(ids) if item is not None]
            logger.debug("media listed", extra={"total": total, "page": page, "limit": limit})
            return items, total

        # Filters run over the loaded records
        ids = await self._client.zrevrange(MEDIA_INDEX, 0, -1)
        items = [item for item in await self._load_media(ids) if item is not None]

        if search:
            needle = search.lower()
            items = [
                item
                for item in items
                if needle in item.title.lower()
                or needle in item.url.lower()
                or needle in (item.description or "").lower()
            ]
        if tags:
            wanted = set(tags)
            items = [item for item in items if wanted & {t.name for t in item.tags}]
        if categories:
            wanted = set(categories)
            items = [item for item in items if wanted & {c.name for c in item.categories}]
        if media_type:
            items = [item for item in items if item.type == media_type]
        if size_range:
            items = [item for item in items if _in_size_range(item.size, size_range)]

        total = len(items)
        logger.debug(
            "media listed",
            extra={"total": total, "page": page, "limit": limit},
        )
        return items[offset : offset + limit], total

    async def get_media(self, media_id: str) -> MediaItem | None:
        items = await self._load_media([media_id])
        return items[0]

    async def get_media_by_url(self, url: str) -> MediaItem | None:
        media_id = await self._client.get(f"{MEDIA_URL_PREFIX}{url}")
        if media_id is None:
            return None
        return await self.get_media(media_id)

    async def create_media(self, data: MediaItemCreate) -> MediaItem:
        item = MediaItem(id=_new_id(), created_at=_now(), **data.model_dump())
        claimed = await self._client.set(f"{MEDIA_URL_PREFIX}{item.url}", item.id, nx=True)
        if not claimed:
            raise DuplicateError(f"media item with url {item.url!r} already exists")

        # Insertion sequence orders the index; timestamps can collide
        seq = await self._client.incr(MEDIA_SEQ)
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.set(f"{MEDIA_PREFIX}{item.id}", self._dump_media(item))
            pipe.zadd(MEDIA_INDEX, {item.id: seq})
            await pipe.execute()
        logger.info("media item created", extra={"media_id": item.id, "url": item.url})
        return item

    async def get_or_create_media(self, url: str) -> tuple[MediaItem, bool]:
        """Return the item stored for *url*, creating a placeholder if there is none.

        The flag is ``True`` when the item was created by this call.
        """
        existing = await self.get_media_by_url(url)
        if existing is not None:
            return existing, False
        try:
            return await self.create_media(MediaItemCreate(url=url)), True
        except DuplicateError:
            # Another writer claimed the URL between the lookup and the insert
            existing = await self.get_media_by_url(url)
            if existing is None:
                raise
            return existing, False

    async def update_media(self, media_id: str, updates: dict[str, Any]) -> MediaItem | None:
        """Apply a partial update; returns ``None`` if the item does not exist."""
        current = await self.get_media(media_id)
        if current is None:
            return None
        updates = {k: v for k, v in updates.items() if v is not None or k not in _REQUIRED_MEDIA_FIELDS}

        new_url = updates.get("url")
        if new_url and new_url != current.url:
            claimed = await self._client.set(f"{MEDIA_URL_PREFIX}{new_url}", media_id, nx=True)
            if not claimed:
                raise DuplicateError(f"media item with url {new_url!r} already exists")
            await self._client.delete(f"{MEDIA_URL_PREFIX}{current.url}")

        updated = current.model_copy(update=updates)
        # xx: a concurrent delete must not be undone by a late write
        if not await self._client.set(f"{MEDIA_PREFIX}{media_id}", self._dump_media(updated), xx=True):
            return None
        logger.debug("media item updated", extra={"media_id": media_id, "fields": sorted(updates)})
        return updated

    async def delete_media(self, media_id: str) -> bool:
        item = await self.get_media(media_id)
        if item is None:
            return False

        tag_ids = await self._client.smembers(_media_tags_key(media_id))
        category_ids = await self._client.smembers(_media_categories_key(media_id))
        async with self._client.pipeline(transaction=True) as pipe:
            for tag_id in tag_ids:
                pipe.srem(_tag_media_key(tag_id), media_id)
            for category_id in category_ids:
                pipe.srem(_category_media_key(category_id), media_id)
            pipe.delete(
                f"{MEDIA_PREFIX}{media_id}",
                f"{MEDIA_URL_PREFIX}{item.url}",
                _media_tags_key(media_id),
                _media_categories_key(media_id),
            )
            pipe.zrem(MEDIA_INDEX, media_id)
            await pipe.execute()
        logger.info("media item deleted", extra={"media_id": media_id})
        return True

    # --- tags ---

    async def list_tags(self) -> list[Tag]:
        ids = await self._client.smembers(TAG_IDS)
        tags = await self._load_many(TAG_PREFIX, sorted(ids), Tag)
        return sorted(tags, key=lambda t: t.name)

    async def get_tag(self, tag_id: str) -> Tag | None:
        raw = await self._client.get(f"{TAG_PREFIX}{tag_id}")
        return Tag.model_validate_json(raw) if raw is not None else None

    async def get_tag_by_name(self, name: str) -> Tag | None:
        tag_id = await self._client.get(f"{TAG_NAME_PREFIX}{name}")
        return await self.get_tag(tag_id) if tag_id is not None else None

    async def create_tag(self, data: TagCreate) -> Tag:
        tag = Tag(id=_new_id(), created_at=_now(), **data.model_dump())
        if not await self._client.set(f"{TAG_NAME_PREFIX}{tag.name}", tag.id, nx=True):
            raise DuplicateError(f"tag {tag.name!r} already exists")
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.set(f"{TAG_PREFIX}{tag.id}", tag.model_dump_json())
            pipe.sadd(TAG_IDS, tag.id)
            await pipe.execute()
        return tag

    async def delete_tag(self, tag_id: str) -> bool:
        tag = await self.get_tag(tag_id)
        if tag is None:
            return False
        media_ids = await self._client.smembers(_tag_media_key(tag_id))
        async with self._client.pipeline(transaction=True) as pipe:
            for media_id in media_ids:
                pipe.srem(_media_tags_key(media_id), tag_id)
            pipe.delete(f"{TAG_PREFIX}{tag_id}", f"{TAG_NAME_PREFIX}{tag.name}", _tag_media_key(tag_id))
            pipe.srem(TAG_IDS, tag_id)
            await pipe.execute()
        return True

    async def add_tag_to_media(self, media_id: str, tag_id: str) -> MediaTagLink:
        await self._require(f"{MEDIA_PREFIX}{media_id}", "media item", media_id)
        await self._require(f"{TAG_PREFIX}{tag_id}", "tag", tag_id)
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.sadd(_media_tags_key(media_id), tag_id)
            pipe.sadd(_tag_media_key(tag_id), media_id)
            await pipe.execute()
        return MediaTagLink(media_item_id=media_id, tag_id=tag_id)

    async def remove_tag_from_media(self, media_id: str, tag_id: str) -> bool:
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.srem(_media_tags_key(media_id), tag_id)
            pipe.srem(_tag_media_key(tag_id), media_id)
            removed, _ = await pipe.execute()
        return bool(removed)

    # --- categories ---

    async def list_categories(self) -> list[Category]:
        ids = await self._client.smembers(CATEGORY_IDS)
        categories = await self._load_many(CATEGORY_PREFIX, sorted(ids), Category)
        return sorted(categories, key=lambda c: c.name)

    async def get_category(self, category_id: str) -> Category | None:
        raw = await self._client.get(f"{CATEGORY_PREFIX}{category_id}")
        return Category.model_validate_json(raw) if raw is not None else None

    async def get_category_by_name(self, name: str) -> Category | None:
        category_id = await self._client.get(f"{CATEGORY_NAME_PREFIX}{name}")
        return await self.get_category(category_id) if category_id is not None else None

    async def create_category(self, data: CategoryCreate) -> Category:
        category = Category(id=_new_id(), created_at=_now(), **data.model_dump())
        if not await self._client.set(f"{CATEGORY_NAME_PREFIX}{category.name}", category.id, nx=True):
            raise DuplicateError(f"category {category.name!r} already exists")
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.set(f"{CATEGORY_PREFIX}{category.id}", category.model_dump_json())
            pipe.sadd(CATEGORY_IDS, category.id)
            await pipe.execute()
        return category

    async def delete_category(self, category_id: str) -> bool:
        category = await self.get_category(category_id)
        if category is None:
            return False
        media_ids = await self._client.smembers(_category_media_key(category_id))
        async with self._client.pipeline(transaction=True) as pipe:
            for media_id in media_ids:
                pipe.srem(_media_categories_key(media_id), category_id)
            pipe.delete(
                f"{CATEGORY_PREFIX}{category_id}",
                f"{CATEGORY_NAME_PREFIX}{category.name}",
                _category_media_key(category_id),
            )
            pipe.srem(CATEGORY_IDS, category_id)
            await pipe.execute()
        return True

    async def add_category_to_media(self, media_id: str, category_id: str) -> MediaCategoryLink:
        await self._require(f"{MEDIA_PREFIX}{media_id}", "media item", media_id)
        await self._require(f"{CATEGORY_PREFIX}{category_id}", "category", category_id)
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.sadd(_media_categories_key(media_id), category_id)
            pipe.sadd(_category_media_key(category_id), media_id)
            await pipe.execute()
        return MediaCategoryLink(media_item_id=media_id, category_id=category_id)

    async def remove_category_from_media(self, media_id: str, category_id: str) -> bool:
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.srem(_media_categories_key(media_id), category_id)
            pipe.srem(_category_media_key(category_id), media_id)
            removed, _ = await pipe.execute()
        return bool(removed)

    # --- API options ---

    async def list_api_options(self) -> list[ApiOption]:
        ids = await self._client.smembers(API_OPTION_IDS)
        options = await self._load_many(API_OPTION_PREFIX, sorted(ids), ApiOption)
        return sorted(options, key=lambda o: o.name)

    async def get_api_option(self, option_id: str) -> ApiOption | None:
        raw = await self._client.get(f"{API_OPTION_PREFIX}{option_id}")
        return ApiOption.model_validate_json(raw) if raw is not None else None

    async def create_api_option(self, data: ApiOptionCreate) -> ApiOption:
        option = ApiOption(id=_new_id(), **data.model_dump())
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.set(f"{API_OPTION_PREFIX}{option.id}", option.model_dump_json())
            pipe.sadd(API_OPTION_IDS, option.id)
            await pipe.execute()
        return option

    async def update_api_option(self, option_id: str, updates: dict[str, Any]) -> ApiOption | None:
        current = await self.get_api_option(option_id)
        if current is None:
            return None
        updated = current.model_copy(update=updates)
        if not await self._client.set(f"{API_OPTION_PREFIX}{option_id}", updated.model_dump_json(), xx=True):
            return None
        return updated

    async def delete_api_option(self, option_id: str) -> bool:
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.delete(f"{API_OPTION_PREFIX}{option_id}")
            pipe.srem(API_OPTION_IDS, option_id)
            deleted, _ = await pipe.execute()
        return bool(deleted)

    async def seed_api_options(self, options: tuple[ApiOption, ...] = DEFAULT_API_OPTIONS) -> int:
        """Insert default options that are not stored yet. Returns how many were added."""
        added = 0
        for option in options:
            if await self._client.set(f"{API_OPTION_PREFIX}{option.id}", option.model_dump_json(), nx=True):
                await self._client.sadd(API_OPTION_IDS, option.id)
                added += 1
        logger.info("api options seeded", extra={"added": added})
        return added

    # --- helpers ---

    async def _require(self, key: str, kind: str, ident: str) -> None:
        if not await self._client.exists(key):
            raise NotFoundError(f"{kind} {ident!r} not found")

    async def _load_many(self, prefix: str, ids: list[str], model: type) -> list:
        if not ids:
            return []
        raws = await self._client.mget([f"{prefix}{i}" for i in ids])
        return [model.model_validate_json(raw) for raw in raws if raw is not None]

    async def _load_media(self, ids: list[str]) -> list[MediaItem | None]:
        """Load media records with their tags and categories attached, preserving order."""
        if not ids:
            return []
        raws = await self._client.mget([f"{MEDIA_PREFIX}{i}" for i in ids])
        found = {
            media_id: MediaItem.model_validate_json(raw)
            for media_id, raw in zip(ids, raws)
            if raw is not None
        }
        if not found:
            return [None] * len(ids)

        async with self._client.pipeline(transaction=False) as pipe:
            for media_id in found:
                pipe.smembers(_media_tags_key(media_id))
                pipe.smembers(_media_categories_key(media_id))
            link_sets = await pipe.execute()
        tag_sets, category_sets = link_sets[0::2], link_sets[1::2]

        tags = {t.id: t for t in await self._load_many(TAG_PREFIX, sorted(set().union(*tag_sets)), Tag)}
        categories = {
            c.id: c
            for c in await self._load_many(CATEGORY_PREFIX, sorted(set().union(*category_sets)), Category)
        }
        for item, tag_ids, category_ids in zip(found.values(), tag_sets, category_sets):
            item.tags = sorted((tags[i] for i in tag_ids if i in tags), key=lambda t: t.name)
            item.categories = sorted(
                (categories[i] for i in category_ids if i in categories),
                key=lambda c: c.name,
            )
        return [found.get(media_id) for media_id in ids]

    @staticmethod
    def _dump_media(item: MediaItem) -> str:
        # Links live in their own sets
        return item.model_dump_json(exclude={"tags", "categories"})


async def create_redis_client(redis_url: str) -> redis.Redis:
    # Strip credentials for logging (everything before @ if present)
    safe_url = redis_url.split("@")[-1] if "@" in redis_url else redis_url
    logger.info("connecting to redis", extra={"redis_url": safe_url})
    retry = Retry(ExponentialBackoff(), retries=3)
    return redis.from_url(
        redis_url,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
        health_check_interval=30,
        retry=retry,
        retry_on_error=[redis.ConnectionError, redis.TimeoutError],
    )
