"""Scrape engine tests against a fake browser session."""

import asyncio
from unittest.mock import patch

import pytest

from conftest import FakeLauncher, FakeSite
from mediavault.scrape import NO_TITLE_ERROR, BrowserLaunchError, ScrapedMetadata, ScrapeEngine

pytestmark = pytest.mark.asyncio


def _engine(launcher, **overrides) -> ScrapeEngine:
    options = dict(settle_delay_ms=0, page_timeout_seconds=5.0)
    options.update(overrides)
    return ScrapeEngine(launcher, **options)


def _titled(title: str) -> FakeSite:
    return FakeSite(text={"h1": title})


async def test_successful_scrape_with_og_image():
    launcher = FakeLauncher(
        {
            "https://www.terabox.com/s/validshare": FakeSite(
                text={"h1": "My Video"},
                attrs={('meta[property="og:image"]', "content"): "https://x/img.png"},
            )
        }
    )

    results = await _engine(launcher).scrape(["https://www.terabox.com/s/validshare"])

    assert results == [
        ScrapedMetadata(
            url="https://www.terabox.com/s/validshare",
            title="My Video",
            thumbnail="https://x/img.png",
        )
    ]
    assert results[0].description is None
    assert results[0].error is None
    assert results[0].ok


async def test_missing_title_is_a_failure():
    launcher = FakeLauncher({"https://bad.example/missing": FakeSite()})

    results = await _engine(launcher).scrape(["https://bad.example/missing"])

    assert results == [ScrapedMetadata(url="https://bad.example/missing", title="", error=NO_TITLE_ERROR)]
    assert not results[0].ok


async def test_scrapes_normalized_url():
    launcher = FakeLauncher({"https://www.terabox.com/s/abc": _titled("Shared")})

    results = await _engine(launcher).scrape(["https://terabox.com/s/abc?ref=home"])

    assert results[0].url == "https://www.terabox.com/s/abc"
    assert results[0].title == "Shared"
    assert launcher.sessions[0].goto_calls[0]["url"] == "https://www.terabox.com/s/abc"


async def test_navigation_waits_for_network_idle_with_timeout():
    launcher = FakeLauncher({"https://a.example/": _titled("A")})

    await _engine(launcher, navigation_timeout_ms=1234).scrape(["https://a.example/"])

    call = launcher.sessions[0].goto_calls[0]
    assert call["wait_until"] == "networkidle"
    assert call["timeout"] == 1234


async def test_settle_delay_runs_after_network_idle_and_before_extraction():
    launcher = FakeLauncher({"https://a.example/": _titled("Late title")})

    async def settle(seconds):
        launcher.sessions[0].events.append(("sleep", seconds))

    with patch("mediavault.scrape.engine.asyncio.sleep", side_effect=settle) as sleep:
        results = await _engine(launcher, settle_delay_ms=1500).scrape(["https://a.example/"])

    assert results[0].title == "Late title"
    sleep.assert_awaited_once_with(1.5)
    kinds = [kind for kind, _ in launcher.sessions[0].events]
    assert kinds[:3] == ["goto", "sleep", "evaluate"]
    assert kinds[-1] == "close"


async def test_zero_settle_delay_skips_the_sleep():
    launcher = FakeLauncher({"https://a.example/": _titled("A")})

    with patch("mediavault.scrape.engine.asyncio.sleep") as sleep:
        await _engine(launcher, settle_delay_ms=0).scrape(["https://a.example/"])

    sleep.assert_not_awaited()


async def test_empty_input_does_not_open_browser(launcher):
    assert await _engine(launcher).scrape([]) == []
    assert launcher.sessions == []


# --- fallback extraction ---


async def test_title_falls_back_to_og_title():
    launcher = FakeLauncher(
        {"https://a.example/": FakeSite(attrs={('meta[property="og:title"]', "content"): "OG Title"})}
    )

    results = await _engine(launcher).scrape(["https://a.example/"])

    assert results[0].title == "OG Title"
    assert results[0].error is None


async def test_blank_title_element_is_skipped():
    launcher = FakeLauncher({"https://a.example/": FakeSite(text={"h1": "   ", ".video-title": " Real "})})

    results = await _engine(launcher).scrape(["https://a.example/"])

    assert results[0].title == "Real"


async def test_description_selector_before_og_description():
    launcher = FakeLauncher(
        {
            "https://a.example/": FakeSite(
                text={"h1": "T", ".desc": "from page"},
                attrs={('meta[property="og:description"]', "content"): "from og"},
            )
        }
    )

    results = await _engine(launcher).scrape(["https://a.example/"])

    assert results[0].description == "from page"


async def test_description_falls_back_to_og_description():
    launcher = FakeLauncher(
        {
            "https://a.example/": FakeSite(
                text={"h1": "T"},
                attrs={('meta[property="og:description"]', "content"): "from og"},
            )
        }
    )

    results = await _engine(launcher).scrape(["https://a.example/"])

    assert results[0].description == "from og"


async def test_thumbnail_prefers_og_image_over_poster():
    launcher = FakeLauncher(
        {
            "https://a.example/": FakeSite(
                text={"h1": "T"},
                attrs={
                    ('meta[property="og:image"]', "content"): "https://x/og.png",
                    ("video[poster]", "poster"): "https://x/poster.png",
                },
            )
        }
    )

    results = await _engine(launcher).scrape(["https://a.example/"])

    assert results[0].thumbnail == "https://x/og.png"


async def test_thumbnail_falls_back_to_poster_then_img():
    launcher = FakeLauncher(
        {
            "https://a.example/poster": FakeSite(
                text={"h1": "P"},
                attrs={("video[poster]", "poster"): "https://x/poster.png"},
            ),
            "https://a.example/img": FakeSite(
                text={"h1": "I"},
                attrs={("img[src]", "src"): "https://x/first.jpg"},
            ),
            "https://a.example/none": FakeSite(text={"h1": "N"}),
        }
    )

    results = await _engine(launcher).scrape(
        ["https://a.example/poster", "https://a.example/img", "https://a.example/none"]
    )

    assert [r.thumbnail for r in results] == ["https://x/poster.png", "https://x/first.jpg", None]
    assert all(r.error is None for r in results)


# --- failure isolation ---


async def test_navigation_error_is_captured_per_url():
    launcher = FakeLauncher(
        {
            "https://a.example/ok": _titled("OK"),
            "https://a.example/boom": FakeSite(error=RuntimeError("net::ERR_NAME_NOT_RESOLVED")),
        }
    )

    results = await _engine(launcher).scrape(["https://a.example/boom", "https://a.example/ok"])

    assert results[0] == ScrapedMetadata(
        url="https://a.example/boom", title="", error="net::ERR_NAME_NOT_RESOLVED"
    )
    assert results[1].title == "OK"
    assert results[1].error is None


async def test_blank_exception_message_uses_class_name():
    launcher = FakeLauncher({"https://a.example/": FakeSite(error=ValueError())})

    results = await _engine(launcher).scrape(["https://a.example/"])

    assert results[0].error == "ValueError"


async def test_hanging_page_times_out_without_blocking_siblings():
    launcher = FakeLauncher(
        {
            "https://a.example/slow": FakeSite(text={"h1": "never"}, delay=10),
            "https://a.example/fast": _titled("Fast"),
        }
    )

    results = await _engine(launcher, page_timeout_seconds=0.05).scrape(
        ["https://a.example/slow", "https://a.example/fast"]
    )

    assert results[0].title == ""
    assert results[0].error.startswith("Timed out")
    assert results[1].title == "Fast"


async def test_every_page_closed_on_success_and_failure():
    launcher = FakeLauncher(
        {
            "https://a.example/1": _titled("One"),
            "https://a.example/2": FakeSite(error=RuntimeError("down")),
            "https://a.example/3": FakeSite(),
        }
    )

    await _engine(launcher).scrape(["https://a.example/1", "https://a.example/2", "https://a.example/3"])

    session = launcher.sessions[0]
    assert len(session.pages) == 3
    assert all(page.closed for page in session.pages)
    assert session.open_pages == 0


async def test_page_close_error_does_not_fail_result(monkeypatch):
    launcher = FakeLauncher({"https://a.example/": _titled("Kept")})
    engine = _engine(launcher)

    original_open = launcher.open_session

    async def open_session():
        session = await original_open()
        original_new_page = session.new_page

        async def new_page():
            page = await original_new_page()

            async def broken_close():
                raise RuntimeError("target closed")

            page.close = broken_close
            return page

        session.new_page = new_page
        return session

    monkeypatch.setattr(launcher, "open_session", open_session)

    results = await engine.scrape(["https://a.example/"])

    assert results[0].title == "Kept"
    assert results[0].error is None


# --- session lifecycle ---


async def test_one_session_per_call_closed_once():
    launcher = FakeLauncher({f"https://a.example/{i}": _titled(str(i)) for i in range(7)})
    engine = _engine(launcher)

    await engine.scrape([f"https://a.example/{i}" for i in range(7)])
    await engine.scrape(["https://a.example/0"])

    assert len(launcher.sessions) == 2
    assert all(session.closed for session in launcher.sessions)


async def test_launch_failure_propagates():
    launcher = FakeLauncher(error=BrowserLaunchError("chromium launch failed: missing executable"))

    with pytest.raises(BrowserLaunchError):
        await _engine(launcher).scrape(["https://a.example/"])


async def test_session_closed_when_cancelled():
    launcher = FakeLauncher({"https://a.example/slow": FakeSite(text={"h1": "x"}, delay=10)})
    engine = _engine(launcher, page_timeout_seconds=30)

    task = asyncio.create_task(engine.scrape(["https://a.example/slow"]))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert launcher.sessions[0].closed
    assert launcher.sessions[0].pages[0].closed


# --- batching and ordering ---


async def test_results_keep_input_order_when_pages_finish_out_of_order():
    urls = [f"https://a.example/{i}" for i in range(8)]
    sites = {url: FakeSite(text={"h1": f"title {i}"}, delay=(8 - i) * 0.01) for i, url in enumerate(urls)}
    launcher = FakeLauncher(sites)

    results = await _engine(launcher).scrape(urls)

    assert len(results) == len(urls)
    assert [r.url for r in results] == urls
    assert [r.title for r in results] == [f"title {i}" for i in range(8)]


async def test_twelve_urls_run_as_windows_of_five_five_two():
    urls = [f"https://a.example/{i}" for i in range(12)]
    sites = {url: FakeSite(text={"h1": str(i)}, delay=0.01 + 0.01 * (i % 3)) for i, url in enumerate(urls)}
    launcher = FakeLauncher(sites)

    results = await _engine(launcher).scrape(urls)

    session = launcher.sessions[0]
    assert len(results) == 12
    assert session.max_open_pages == 5

    events = session.events
    for window_start, window_end in ((0, 5), (5, 10), (10, 12)):
        window = set(urls[window_start:window_end])
        later = set(urls[window_end:])
        last_close = max(i for i, (kind, url) in enumerate(events) if kind == "close" and url in window)
        first_later_goto = min(
            (i for i, (kind, url) in enumerate(events) if kind == "goto" and url in later),
            default=len(events),
        )
        assert last_close < first_later_goto

    first_close = next(i for i, (kind, _) in enumerate(events) if kind == "close")
    assert sum(1 for kind, _ in events[:first_close] if kind == "goto") == 5


async def test_concurrency_never_exceeds_batch_size():
    urls = [f"https://a.example/{i}" for i in range(23)]
    sites = {url: FakeSite(text={"h1": "t"}, delay=0.005) for url in urls}
    launcher = FakeLauncher(sites)

    await _engine(launcher, batch_size=5).scrape(urls)

    assert launcher.sessions[0].max_open_pages <= 5


async def test_custom_batch_size():
    urls = [f"https://a.example/{i}" for i in range(4)]
    launcher = FakeLauncher({url: FakeSite(text={"h1": "t"}, delay=0.005) for url in urls})

    results = await _engine(launcher, batch_size=2).scrape(urls)

    assert len(results) == 4
    assert launcher.sessions[0].max_open_pages == 2


async def test_rejects_zero_batch_size(launcher):
    with pytest.raises(ValueError):
        ScrapeEngine(launcher, batch_size=0)


async def test_success_and_failure_are_exclusive():
    urls = ["https://a.example/ok", "https://a.example/missing", "https://a.example/err"]
    launcher = FakeLauncher(
        {
            urls[0]: _titled("Fine"),
            urls[1]: FakeSite(text={".description": "no title here"}),
            urls[2]: FakeSite(error=RuntimeError("Timeout 30000ms exceeded")),
        }
    )

    results = await _engine(launcher).scrape(urls)

    for result in results:
        if result.error is None:
            assert result.title
        else:
            assert result.title == ""
            assert result.error
    assert [r.ok for r in results] == [True, False, False]
