"""Data models for the scrape submodule."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ScrapedMetadata:
    """Outcome of one scrape attempt.

    A result is either a success (non-empty ``title``, ``error`` is ``None``)
    or a failure (``title == ""`` and ``error`` set), never both.
    """

    url: str
    title: str = ""
    description: str | None = None
    thumbnail: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.title)

    @classmethod
    def failure(cls, url: str, error: str) -> ScrapedMetadata:
        return cls(url=url, title="", error=error)
