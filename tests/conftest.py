"""Fixtures — fake browser session, in-memory Redis store."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis

from mediavault.store.redis import MediaStore


@dataclass
class FakeSite:
    """What a URL renders to: element text by selector, attributes by (selector, attr)."""

    text: dict[str, str] = field(default_factory=dict)
    attrs: dict[tuple[str, str], str] = field(default_factory=dict)
    delay: float = 0.0
    error: Exception | None = None


class FakePage:
    def __init__(self, session: FakeSession) -> None:
        self._session = session
        self._site: FakeSite | None = None
        self.url: str | None = None
        self.closed = False

    async def goto(self, url: str, *, wait_until: str, timeout: float) -> None:
        self.url = url
        self._session.events.append(("goto", url))
        self._session.goto_calls.append({"url": url, "wait_until": wait_until, "timeout": timeout})
        site = self._session.sites.get(url, FakeSite())
        if site.delay:
            await asyncio.sleep(site.delay)
        if site.error is not None:
            raise site.error
        self._site = site

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        assert self._site is not None, "evaluate before goto"
        self._session.events.append(("evaluate", self.url))
        if isinstance(arg, str):
            return self._site.text.get(arg)
        selector, attr = arg
        return self._site.attrs.get((selector, attr))

    async def close(self) -> None:
        self.closed = True
        self._session.open_pages -= 1
        self._session.events.append(("close", self.url))


class FakeSession:
    def __init__(self, sites: dict[str, FakeSite]) -> None:
        self.sites = sites
        self.pages: list[FakePage] = []
        self.events: list[tuple[str, Any]] = []
        self.goto_calls: list[dict[str, Any]] = []
        self.open_pages = 0
        self.max_open_pages = 0
        self.closed = False

    async def new_page(self) -> FakePage:
        page = FakePage(self)
        self.pages.append(page)
        self.open_pages += 1
        self.max_open_pages = max(self.max_open_pages, self.open_pages)
        return page

    async def close(self) -> None:
        self.closed = True


class FakeLauncher:
    def __init__(self, sites: dict[str, FakeSite] | None = None, error: Exception | None = None) -> None:
        self.sites = sites if sites is not None else {}
        self.error = error
        self.sessions: list[FakeSession] = []

    async def open_session(self) -> FakeSession:
        if self.error is not None:
            raise self.error
        session = FakeSession(self.sites)
        self.sessions.append(session)
        return session


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest_asyncio.fixture
async def redis_client():
    client = FakeRedis(decode_responses=True)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def media_store(redis_client) -> MediaStore:
    """MediaStore backed by an in-memory FakeRedis instance."""
    return MediaStore(redis_client)
