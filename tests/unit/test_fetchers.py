"""Unit tests for the page fetchers' retry contract."""
import pytest
from aiohttp import web
from aiohttp import test_utils
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from src.core.errors import FetchFailure
from src.core.fetchers.base import PageFetcher
from src.core.fetchers.browser import DEFAULT_SETTLE_MARKERS, BrowserPageFetcher
from src.core.fetchers.http import HttpPageFetcher


async def _serve(handler) -> test_utils.TestServer:
    app = web.Application()
    app.router.add_get("/mainnet/home", handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    return server


class ScriptedFetcher(PageFetcher):
    """Raises the scripted errors in order, then returns the page."""

    def __init__(self, errors, retries=3):
        super().__init__(retries=retries, retry_backoff_seconds=0)
        self.errors = list(errors)
        self.call_count = 0

    @property
    def name(self) -> str:
        return "scripted"

    async def fetch_rendered(self, url: str, timeout_ms: int) -> str:
        async def attempt():
            self.call_count += 1
            if self.errors:
                raise self.errors.pop(0)
            return "<html>ok</html>"
        return await self._with_retries(url, attempt)


# ── Retry policy tests ───────────────────────────────────────────────────


class TestRetries:

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self):
        fetcher = ScriptedFetcher([ConnectionError("reset"), TimeoutError()])
        assert await fetcher.fetch_rendered("https://walruscan.com", 1000) == "<html>ok</html>"
        assert fetcher.call_count == 3

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        fetcher = ScriptedFetcher([ConnectionError("reset")] * 5)
        with pytest.raises(FetchFailure) as exc:
            await fetcher.fetch_rendered("https://walruscan.com", 1000)
        assert exc.value.attempts == 3
        assert exc.value.url == "https://walruscan.com"
        assert fetcher.call_count == 3

    @pytest.mark.asyncio
    async def test_non_transient_error_fails_immediately(self):
        fetcher = ScriptedFetcher([ValueError("bad url")])
        with pytest.raises(FetchFailure) as exc:
            await fetcher.fetch_rendered("nope", 1000)
        assert exc.value.attempts == 1
        assert exc.value.reason == "bad url"
        assert fetcher.call_count == 1

    def test_retries_floor_is_one(self):
        assert ScriptedFetcher([], retries=0).retries == 1


# ── HttpPageFetcher tests ────────────────────────────────────────────────


class TestHttpPageFetcher:

    @pytest.mark.asyncio
    async def test_fetches_page_body(self):
        async def handler(request):
            assert "Mozilla" in request.headers["User-Agent"]
            return web.Response(text="<p>Epoch 150</p>", content_type="text/html")

        server = await _serve(handler)
        try:
            fetcher = HttpPageFetcher(retry_backoff_seconds=0)
            body = await fetcher.fetch_rendered(str(server.make_url("/mainnet/home")), 5000)
            assert body == "<p>Epoch 150</p>"
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_server_errors_retry_then_fail(self):
        hits = []

        async def handler(request):
            hits.append(1)
            return web.Response(status=502)

        server = await _serve(handler)
        try:
            fetcher = HttpPageFetcher(retries=3, retry_backoff_seconds=0)
            with pytest.raises(FetchFailure) as exc:
                await fetcher.fetch_rendered(str(server.make_url("/mainnet/home")), 5000)
            assert exc.value.attempts == 3
            assert len(hits) == 3
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_recovers_after_one_failure(self):
        hits = []

        async def handler(request):
            hits.append(1)
            if len(hits) == 1:
                return web.Response(status=503)
            return web.Response(text="ok")

        server = await _serve(handler)
        try:
            fetcher = HttpPageFetcher(retry_backoff_seconds=0)
            assert await fetcher.fetch_rendered(str(server.make_url("/mainnet/home")), 5000) == "ok"
            assert len(hits) == 2
        finally:
            await server.close()


# ── BrowserPageFetcher tests ─────────────────────────────────────────────


class TestBrowserPageFetcher:

    def test_defaults(self):
        fetcher = BrowserPageFetcher()
        assert fetcher.name == "browser"
        assert fetcher.retries == 3
        assert fetcher.settle_markers == DEFAULT_SETTLE_MARKERS

    def test_navigation_timeouts_are_transient(self):
        fetcher = BrowserPageFetcher()
        assert fetcher.is_transient(PlaywrightTimeoutError("Timeout 45000ms exceeded"))
        assert not fetcher.is_transient(ValueError("bad"))
