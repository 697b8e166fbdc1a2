"""Scrape engine — renders share pages headlessly and extracts metadata."""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from .browser import BrowserLauncher, BrowserSession, ScrapePage
from .extractors import (
    DESCRIPTION_EXTRACTORS,
    THUMBNAIL_EXTRACTORS,
    TITLE_EXTRACTORS,
    first_value,
)
from .models import ScrapedMetadata
from .normalize import normalize_url

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5
NO_TITLE_ERROR = "No title found"


def _error_message(exc: BaseException) -> str:
    return str(exc).strip() or type(exc).__name__


class ScrapeEngine:
    """Scrapes batches of URLs through one browser session per call.

    URLs are processed in consecutive windows of ``batch_size``. Pages within
    a window run concurrently and every page of a window is closed before the
    next window starts. Per-URL failures are returned as results, never
    raised; only a failure to start the browser escapes ``scrape``.
    """

    def __init__(
        self,
        launcher: BrowserLauncher,
        batch_size: int = DEFAULT_BATCH_SIZE,
        navigation_timeout_ms: int = 30000,
        settle_delay_ms: int = 2000,
        page_timeout_seconds: float = 60.0,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._launcher = launcher
        self._batch_size = batch_size
        self._navigation_timeout_ms = navigation_timeout_ms
        self._settle_delay = settle_delay_ms / 1000
        self._page_timeout = page_timeout_seconds

    @property
    def batch_size(self) -> int:
        return self._batch_size

    async def scrape(self, urls: Sequence[str]) -> list[ScrapedMetadata]:
        """Scrape *urls* and return one result per input, in input order."""
        if not urls:
            return []

        session = await self._launcher.open_session()
        logger.info(
            "scrape batch started",
            extra={"url_count": len(urls), "batch_size": self._batch_size},
        )
        # Hard cap on open pages, independent of how windows are sliced
        semaphore = asyncio.Semaphore(self._batch_size)
        results: list[ScrapedMetadata] = []
        try:
            for start in range(0, len(urls), self._batch_size):
                window = urls[start : start + self._batch_size]
                window_results = await asyncio.gather(
                    *(self._scrape_single(session, semaphore, url) for url in window)
                )
                results.extend(window_results)
        finally:
            await session.close()

        failed = sum(1 for r in results if r.error is not None)
        logger.info(
            "scrape batch complete",
            extra={"urls_attempted": len(urls), "succeeded": len(results) - failed, "failed": failed},
        )
        return results

    async def _scrape_single(
        self,
        session: BrowserSession,
        semaphore: asyncio.Semaphore,
        url: str,
    ) -> ScrapedMetadata:
        normalized = normalize_url(url)
        async with semaphore:
            page: ScrapePage | None = None
            try:
                page = await asyncio.wait_for(session.new_page(), self._page_timeout)
                return await asyncio.wait_for(
                    self._extract(page, normalized), self._page_timeout
                )
            except asyncio.TimeoutError:
                logger.warning("scrape timed out", extra={"url": normalized, "timeout": self._page_timeout})
                return ScrapedMetadata.failure(
                    normalized, f"Timed out after {self._page_timeout:g}s"
                )
            except Exception as exc:
                logger.warning("scrape failed for %s", normalized, exc_info=True)
                return ScrapedMetadata.failure(normalized, _error_message(exc))
            finally:
                if page is not None:
                    await self._close_page(page, normalized)

    async def _extract(self, page: ScrapePage, url: str) -> ScrapedMetadata:
        logger.debug("navigating", extra={"url": url})
        await page.goto(url, wait_until="networkidle", timeout=self._navigation_timeout_ms)
        if self._settle_delay > 0:
            # Share pages fill in their metadata after the network goes quiet
            await asyncio.sleep(self._settle_delay)

        title = await first_value(page, TITLE_EXTRACTORS)
        if not title:
            logger.info("no title on page", extra={"url": url})
            return ScrapedMetadata.failure(url, NO_TITLE_ERROR)

        description = await first_value(page, DESCRIPTION_EXTRACTORS)
        thumbnail = await first_value(page, THUMBNAIL_EXTRACTORS)
        logger.debug(
            "metadata extracted",
            extra={"url": url, "has_description": description is not None, "has_thumbnail": thumbnail is not None},
        )
        return ScrapedMetadata(
            url=url,
            title=title,
            description=description,
            thumbnail=thumbnail,
        )

    async def _close_page(self, page: ScrapePage, url: str) -> None:
        try:
            await page.close()
        except Exception:
            logger.warning("page close failed", extra={"url": url}, exc_info=True)
