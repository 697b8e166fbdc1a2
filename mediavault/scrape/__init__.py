"""Metadata scraping submodule: URL normalization and the browser-driven engine."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .browser import (
    BrowserLauncher,
    BrowserLaunchError,
    BrowserSession,
    ChromiumLauncher,
    ScrapePage,
)
from .engine import NO_TITLE_ERROR, ScrapeEngine
from .models import ScrapedMetadata
from .normalize import normalize_url

if TYPE_CHECKING:
    from mediavault.config import Settings

__all__ = [
    "BrowserLaunchError",
    "BrowserLauncher",
    "BrowserSession",
    "ChromiumLauncher",
    "NO_TITLE_ERROR",
    "ScrapeEngine",
    "ScrapePage",
    "ScrapedMetadata",
    "build_default_engine",
    "normalize_url",
]

logger = logging.getLogger(__name__)


def build_default_engine(settings: Settings) -> ScrapeEngine:
    """Build the scrape engine backed by headless Chromium."""
    launcher = ChromiumLauncher(
        user_agent=settings.scrape_user_agent,
        headless=settings.scrape_headless,
    )
    logger.debug(
        "scrape engine configured",
        extra={
            "batch_size": settings.scrape_batch_size,
            "navigation_timeout_ms": settings.scrape_navigation_timeout_ms,
            "settle_delay_ms": settings.scrape_settle_delay_ms,
        },
    )
    return ScrapeEngine(
        launcher,
        batch_size=settings.scrape_batch_size,
        navigation_timeout_ms=settings.scrape_navigation_timeout_ms,
        settle_delay_ms=settings.scrape_settle_delay_ms,
        page_timeout_seconds=settings.scrape_page_timeout_seconds,
    )
