"""Ordered fallback extractors for page metadata.

Each field has a list of extractors tried in order; the first one that
returns non-blank text wins. Extractors run in the page via ``evaluate`` so
they see the DOM after client-side rendering.
"""

from __future__ import annotations

from typing import Awaitable, Callable

from .browser import ScrapePage

Extractor = Callable[[ScrapePage], Awaitable[str | None]]

_TEXT_JS = """(selector) => {
    const el = document.querySelector(selector);
    return el ? (el.textContent || '').trim() : null;
}"""

_ATTR_JS = """([selector, attr]) => {
    const el = document.querySelector(selector);
    return el ? el.getAttribute(attr) : null;
}"""


def text_of(selector: str) -> Extractor:
    """Trimmed text content of the first element matching *selector*."""

    async def extract(page: ScrapePage) -> str | None:
        return await page.evaluate(_TEXT_JS, selector)

    extract.__qualname__ = f"text_of({selector!r})"
    return extract


def attribute_of(selector: str, attr: str) -> Extractor:
    """Attribute *attr* of the first element matching *selector*."""

    async def extract(page: ScrapePage) -> str | None:
        return await page.evaluate(_ATTR_JS, [selector, attr])

    extract.__qualname__ = f"attribute_of({selector!r}, {attr!r})"
    return extract


def meta_property(prop: str) -> Extractor:
    return attribute_of(f'meta[property="{prop}"]', "content")


def meta_name(name: str) -> Extractor:
    return attribute_of(f'meta[name="{name}"]', "content")


TITLE_EXTRACTORS: tuple[Extractor, ...] = (
    text_of("h1"),
    text_of(".video-title"),
    text_of(".file-name"),
    text_of(".title"),
    text_of('[class*="title"]'),
    meta_property("og:title"),
)

DESCRIPTION_EXTRACTORS: tuple[Extractor, ...] = (
    text_of(".description"),
    text_of(".desc"),
    text_of("#description"),
    meta_property("og:description"),
    meta_name("description"),
)

THUMBNAIL_EXTRACTORS: tuple[Extractor, ...] = (
    meta_property("og:image"),
    attribute_of("video[poster]", "poster"),
    attribute_of("img[src]", "src"),
)


async def first_value(page: ScrapePage, extractors: tuple[Extractor, ...]) -> str | None:
    """Run *extractors* in order and return the first non-blank result."""
    for extract in extractors:
        value = await extract(page)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None
