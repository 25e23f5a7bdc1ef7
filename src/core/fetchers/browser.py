"""Headless Chromium page fetcher (Playwright) for client-rendered dashboards."""
import asyncio

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from src.core.errors import FetchFailure
from src.core.fetchers.base import DESKTOP_USER_AGENT, PageFetcher

logger = structlog.get_logger()

# Resource-trimmed flags for small container hosts
CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
    "--no-zygote",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-background-timer-throttling",
    "--disable-renderer-backgrounding",
    "--disable-default-apps",
    "--disable-sync",
    "--metrics-recording-only",
]

DEFAULT_SETTLE_MARKERS = ["Storage", "Epoch", "TB", "FROST"]

_CONTENT_READY_JS = """
([minLength, markers]) => {
    const text = document.body ? document.body.innerText : "";
    return text.length > minLength && markers.some((m) => text.includes(m));
}
"""


class BrowserPageFetcher(PageFetcher):

    def __init__(
        self,
        retries: int = 3,
        retry_backoff_seconds: float = 2.0,
        settle_timeout_ms: int = 15000,
        settle_markers: list[str] | None = None,
        min_content_length: int = 1000,
        post_settle_delay_seconds: float = 3.0,
        launch_timeout_ms: int = 30000,
        user_agent: str = DESKTOP_USER_AGENT,
    ):
        super().__init__(retries, retry_backoff_seconds)
        self.settle_timeout_ms = settle_timeout_ms
        self.settle_markers = settle_markers or DEFAULT_SETTLE_MARKERS
        self.min_content_length = min_content_length
        self.post_settle_delay_seconds = post_settle_delay_seconds
        self.launch_timeout_ms = launch_timeout_ms
        self.user_agent = user_agent

    @property
    def name(self) -> str:
        return "browser"

    def is_transient(self, error: Exception) -> bool:
        return isinstance(error, (PlaywrightError, asyncio.TimeoutError))

    async def fetch_rendered(self, url: str, timeout_ms: int) -> str:
        try:
            async with async_playwright() as p:
                browser = await p.chromium.launch(
                    headless=True, args=CHROMIUM_ARGS, timeout=self.launch_timeout_ms
                )
                try:
                    context = await browser.new_context(
                        viewport={"width": 1920, "height": 1080}, user_agent=self.user_agent
                    )
                    page = await context.new_page()
                    await self._with_retries(
                        url,
                        lambda: page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms),
                    )
                    await self._wait_for_content(page, url)
                    content = await page.content()
                finally:
                    await browser.close()
        except PlaywrightError as e:
            raise FetchFailure(url, str(e)) from e

        logger.info("fetch.ok", fetcher=self.name, url=url, chars=len(content))
        return content

    async def _wait_for_content(self, page: Page, url: str) -> None:
        try:
            await page.wait_for_function(
                _CONTENT_READY_JS,
                arg=[self.min_content_length, self.settle_markers],
                timeout=self.settle_timeout_ms,
            )
            logger.debug("fetch.content_settled", url=url)
        except PlaywrightTimeoutError:
            # A partially rendered page still goes to the extractor
            logger.warning("fetch.settle_timeout", url=url, timeout_ms=self.settle_timeout_ms)
        if self.post_settle_delay_seconds:
            await asyncio.sleep(self.post_settle_delay_seconds)
