"""Service layer — keeps stored media metadata in sync with scrape results."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from mediavault.api.schemas import MediaItem
from mediavault.scrape import ScrapedMetadata, ScrapeEngine
from mediavault.store.redis import MediaStore

logger = logging.getLogger(__name__)


def apply_scrape_result(
    item: MediaItem,
    result: ScrapedMetadata,
    scraped_at: datetime | None = None,
) -> dict[str, Any]:
    """Build the partial update that merges *result* into *item*.

    A failed result only records the error and the attempt time; it never
    replaces a title, description or thumbnail already on the item.
    """
    scraped_at = scraped_at or datetime.now(timezone.utc)
    if result.error is not None:
        return {"error": result.error, "scraped_at": scraped_at}

    return {
        "title": result.title,
        "description": result.description or item.description,
        "thumbnail": result.thumbnail or item.thumbnail,
        "error": None,
        "scraped_at": scraped_at,
    }


class MetadataRefresher:
    """Runs the scrape engine for stored items and writes results back.

    At most one refresh runs per item at a time. Background refreshes skip
    items that are already being refreshed, and an on-demand refresh waits
    for the running one instead of opening a second browser.
    """

    def __init__(self, engine: ScrapeEngine, store: MediaStore) -> None:
        self._engine = engine
        self._store = store
        # item id -> the task or future that finishes its current refresh
        self._running: dict[str, asyncio.Future[Any]] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> frozenset[str]:
        return frozenset(self._running)

    async def refresh(self, items: list[MediaItem]) -> list[MediaItem]:
        """Scrape *items* now and return them as stored after the merge."""
        if not items:
            return []

        results = await self._engine.scrape([item.url for item in items])
        refreshed: list[MediaItem] = []
        for item, result in zip(items, results):
            updated = await self._store.update_media(item.id, apply_scrape_result(item, result))
            if updated is None:
                logger.info("media item deleted during scrape", extra={"media_id": item.id})
                continue
            refreshed.append(updated)
        return refreshed

    async def refresh_item(self, media_id: str) -> MediaItem | None:
        """Refresh one stored item and return it, or ``None`` if it does not exist.

        If a refresh of the item is already running, waits for it and returns
        the stored result rather than scraping again.
        """
        running = self._running.get(media_id)
        if running is not None:
            logger.info("joining running refresh", extra={"media_id": media_id})
            await asyncio.wait([running])
            return await self._store.get_media(media_id)

        item = await self._store.get_media(media_id)
        if item is None:
            return None

        done = asyncio.get_running_loop().create_future()
        self._running[media_id] = done
        try:
            refreshed = await self.refresh([item])
        finally:
            del self._running[media_id]
            done.set_result(None)
        return refreshed[0] if refreshed else None

    def schedule(self, items: list[MediaItem]) -> asyncio.Task[None] | None:
        """Refresh *items* in the background. Returns the task, or ``None`` if nothing to do."""
        pending = [item for item in items if item.id not in self._running]
        if not pending:
            return None

        logger.info("background metadata refresh scheduled", extra={"item_count": len(pending)})

        task = asyncio.create_task(self._run_background(pending))
        for item in pending:
            self._running[item.id] = task
        self._tasks.add(task)
        task.add_done_callback(self._release)
        return task

    def _release(self, task: asyncio.Task[None]) -> None:
        # Also runs for tasks cancelled before their first step
        self._tasks.discard(task)
        for media_id in [k for k, running in self._running.items() if running is task]:
            del self._running[media_id]

    async def _run_background(self, items: list[MediaItem]) -> None:
        try:
            await self.refresh(items)
        except Exception:
            logger.exception("background metadata refresh failed", extra={"item_count": len(items)})

    async def aclose(self) -> None:
        """Cancel outstanding background refreshes."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
