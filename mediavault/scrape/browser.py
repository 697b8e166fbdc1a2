"""Headless browser capability used by the scrape engine."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from playwright.async_api import Browser, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

logger = logging.getLogger(__name__)


class BrowserLaunchError(RuntimeError):
    """The browser session could not be started at all."""


class ScrapePage(Protocol):
    """An isolated, single-use page. Closing it releases its whole context."""

    async def goto(self, url: str, *, wait_until: str, timeout: float) -> Any: ...

    async def evaluate(self, expression: str, arg: Any = None) -> Any: ...

    async def close(self) -> None: ...


class BrowserSession(Protocol):
    """A running browser that hands out isolated pages."""

    async def new_page(self) -> ScrapePage: ...

    async def close(self) -> None: ...


class BrowserLauncher(Protocol):
    """Starts a browser session; one session serves one ``scrape`` call."""

    async def open_session(self) -> BrowserSession: ...


class ChromiumSession:
    """Playwright Chromium browser plus the driver process that owns it."""

    def __init__(self, playwright: Playwright, browser: Browser, user_agent: str) -> None:
        self._playwright = playwright
        self._browser = browser
        self._user_agent = user_agent

    async def new_page(self) -> ScrapePage:
        # browser.new_page() creates a dedicated context that dies with the page
        return await self._browser.new_page(
            user_agent=self._user_agent,
            locale="en-US",
        )

    async def close(self) -> None:
        try:
            await self._browser.close()
        except PlaywrightError:
            logger.warning("browser close failed", exc_info=True)
        finally:
            await self._playwright.stop()


class ChromiumLauncher:
    """Launches headless Chromium through Playwright's async API."""

    def __init__(self, user_agent: str, headless: bool = True) -> None:
        self._user_agent = user_agent
        self._headless = headless

    async def open_session(self) -> ChromiumSession:
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(headless=self._headless)
        except PlaywrightError as exc:
            await playwright.stop()
            raise BrowserLaunchError(f"chromium launch failed: {exc}") from exc

        logger.debug("browser session opened", extra={"headless": self._headless})
        return ChromiumSession(playwright, browser, self._user_agent)
